"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class RequestContext:
    """Per-request state threaded through every tool execution of one chat turn."""

    uid: str
    conversation_id: str
    last_tool_call_id: str | None = None
    last_title: str | None = None
    first_analyze_pending: bool = False
    searched: bool = False

    @property
    def has_searched(self) -> bool:
        return self.searched


@dataclass(slots=True)
class ToolCallRecord:
    """A persisted tool invocation result."""

    uid: str | None
    conversation_id: str
    tool_call_id: str
    key: str
    content: str
    created_at: str
    tokens_used: int = 0
    kind: str = "law_extract"


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class ChatResult:
    """Outcome of one dialogue loop run."""

    answer: str
    iterations: int
    tool_traces: list[ToolTrace] = field(default_factory=list)
    trace_id: str | None = None
