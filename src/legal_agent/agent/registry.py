"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from time import perf_counter
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from legal_agent.types import RequestContext, ToolTrace

logger = logging.getLogger(__name__)

ToolHandler = Callable[[BaseModel, RequestContext], dict[str, Any]]


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    tags: list[str] = Field(default_factory=list)

    def invoke(self, payload: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        data = self.args_schema.model_validate(payload)
        return self.handler(data, context)

    def declaration(self) -> dict[str, Any]:
        """OpenAI function-tool declaration accepted by `bind_tools`."""
        parameters = self.args_schema.model_json_schema()
        parameters.pop("title", None)
        for prop in parameters.get("properties", {}).values():
            prop.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class ToolRegistry:
    """Stores tool specs, exports declarations and executes calls.

    Execution never raises for tool-level problems: unknown names, invalid
    arguments and handler failures come back as `{"error": ...}` payloads so
    the model can react.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def declarations(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        selected = self._tools.values() if names is None else [self._tools[n] for n in names]
        return [spec.declaration() for spec in selected]

    def execute(
        self,
        name: str,
        payload: dict[str, Any] | None,
        context: RequestContext,
        *,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> dict[str, Any]:
        payload = dict(payload or {})
        start = perf_counter()
        spec = self._tools.get(name)
        if spec is None:
            output: dict[str, Any] = {"error": f"Unknown tool {name}"}
        else:
            try:
                output = spec.invoke(payload, context)
            except ValidationError as exc:
                logger.warning("Invalid arguments for tool %s: %s", name, exc)
                output = {"error": f"Invalid arguments for {name}: {exc.errors(include_url=False)}"}
            except Exception as exc:
                logger.exception("Tool %s failed", name)
                output = {"error": str(exc) or exc.__class__.__name__}
        latency_ms = (perf_counter() - start) * 1000.0

        trace = ToolTrace(
            name=name,
            input_payload=payload,
            output_preview=json.dumps(output, ensure_ascii=False, default=str)[:320],
            latency_ms=latency_ms,
        )
        for callback in (self._observer, observer):
            if callback is not None:
                callback(trace)
        return output
