"""Bounded tool-calling dialogue loop for the legal assistant."""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage

from legal_agent.agent.messages import build_user_message, history_to_messages, message_text
from legal_agent.agent.registry import ToolRegistry
from legal_agent.agent.tools import ANALYZE_TOOL, SEARCH_TOOL
from legal_agent.config import AgentConfig
from legal_agent.obs.tracing import Timer, TraceStore, estimate_token_count
from legal_agent.types import ChatResult, RequestContext, ToolTrace

logger = logging.getLogger(__name__)

NO_RESPONSE = "[No response]"
NO_ANSWER = "[Error: no response]"

SEARCH_INTENT = re.compile(r"\bsearch\b|खोज", re.IGNORECASE)

_SYSTEM_PROMPT = f"""
You are a highly-skilled assistant for Nepali law.

TOOLS
- {SEARCH_TOOL}
    - run ONLY if the user clearly requests a *new* search.
- {ANALYZE_TOOL}
    - use this for every follow-up question about text that
      has already been extracted.

RULES
1. After a {SEARCH_TOOL} call finishes, your FIRST
   {ANALYZE_TOOL} reply MUST be an outline: headings
   only (Parts / Chapters / Sections).
2. NEVER translate Nepali into English.
3. Do NOT include section bodies unless explicitly asked.
4. For clarifications, call {ANALYZE_TOOL} - do NOT
   start a new search unless the user asks for one.
""".strip()


class NoCandidateError(RuntimeError):
    """Raised when the chat model returns no usable candidate."""


class LegalChatPlanner:
    """Drives model turns, executes the chosen tools and stops on a plain answer."""

    def __init__(
        self,
        *,
        llm: Any,
        tool_registry: ToolRegistry,
        trace_store: TraceStore,
        config: AgentConfig | None = None,
    ) -> None:
        self.llm = llm
        self.tool_registry = tool_registry
        self.trace_store = trace_store
        self.config = config or AgentConfig()

    def exposed_tools(self, message: str, context: RequestContext) -> list[str]:
        """Offer search only before the first search or on explicit search intent."""
        if not context.has_searched or SEARCH_INTENT.search(message):
            return [SEARCH_TOOL, ANALYZE_TOOL]
        return [ANALYZE_TOOL]

    def invoke(
        self,
        message: str,
        *,
        uid: str,
        conversation_id: str,
        history: list[dict[str, Any]] | None = None,
        files: list[dict[str, str]] | None = None,
    ) -> ChatResult:
        """Run one dialogue loop and persist its trace.

        Returns:
            The final answer with the number of model turns used, the tool
            traces observed and the trace id. Budget exhaustion yields the
            `[Error: no response]` sentinel instead of raising.
        """

        context = RequestContext(uid=uid, conversation_id=conversation_id)
        messages: list[BaseMessage] = [
            SystemMessage(content=_SYSTEM_PROMPT),
            *history_to_messages(history),
            build_user_message(message, files),
        ]
        observed_tools: list[ToolTrace] = []
        answer: str | None = None
        iterations = 0

        with Timer() as timer:
            for iterations in range(1, self.config.max_iterations + 1):
                exposed = self.exposed_tools(message, context)
                response = self._generate(messages, exposed)

                text = message_text(response)
                tool_call = response.tool_calls[0] if response.tool_calls else None

                if text and tool_call is None:
                    answer = text
                    break
                if tool_call is None:
                    answer = NO_RESPONSE
                    break

                call_id = tool_call.get("id") or f"call_{uuid.uuid4().hex}"
                name = tool_call["name"]
                args = tool_call.get("args") or {}
                messages.append(
                    AIMessage(
                        content=text,
                        tool_calls=[{"name": name, "args": args, "id": call_id}],
                    )
                )
                logger.info("Iteration %d: executing %s", iterations, name)
                result = self.tool_registry.execute(
                    name, args, context, observer=observed_tools.append
                )
                messages.append(
                    ToolMessage(
                        content=json.dumps(result, ensure_ascii=False, default=str),
                        tool_call_id=call_id,
                        name=name,
                    )
                )
            else:
                logger.warning(
                    "Turn budget of %d exhausted without an answer", self.config.max_iterations
                )

        final_answer = answer if answer is not None else NO_ANSWER
        record = self.trace_store.create_record(
            uid=uid,
            conversation_id=conversation_id,
            question=message,
            answer=final_answer,
            iterations=iterations,
            tool_traces=observed_tools,
            input_tokens=estimate_token_count(message),
            output_tokens=estimate_token_count(final_answer),
            latency_ms=timer.elapsed_ms,
            answered=answer is not None and answer != NO_RESPONSE,
        )
        return ChatResult(
            answer=final_answer,
            iterations=iterations,
            tool_traces=observed_tools,
            trace_id=record.trace_id,
        )

    def _generate(self, messages: list[BaseMessage], tool_names: list[str]) -> AIMessage:
        runnable = self.llm.bind_tools(self.tool_registry.declarations(tool_names))
        response = runnable.invoke(messages)
        if not isinstance(response, AIMessage):
            raise NoCandidateError("No candidate returned by the model")
        return response
