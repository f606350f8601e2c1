"""Legal search and analysis tools exposed to the chat model."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import BaseModel, Field

from legal_agent.agent.registry import ToolRegistry, ToolSpec
from legal_agent.config import AgentConfig
from legal_agent.search.chain import LegalSearchChain
from legal_agent.store.tool_calls import ToolCallStore
from legal_agent.types import RequestContext

logger = logging.getLogger(__name__)

SEARCH_TOOL = "legal_search"
ANALYZE_TOOL = "analyze_law_text"

OUTLINE_REQUEST = "List all Parts, Chapters and Section headings in hierarchy order."
DEFAULT_REQUEST = "Summarise the requested part."
NO_TEXT_PLACEHOLDER = "[No extracted law text found]"


class SearchToolInput(BaseModel):
    query: str = Field(default="", description="Search terms")
    extract: bool = Field(
        default=True,
        description="If true, extract the matching sections instead of returning raw commentary",
    )


class AnalyzeToolInput(BaseModel):
    user_request: str = Field(default="", description="What the user wants now")
    tool_call_id: str | None = Field(
        default=None, description="ID of an earlier search (optional)"
    )


def new_tool_call_id() -> str:
    return uuid.uuid4().hex


def register_legal_tools(
    registry: ToolRegistry,
    *,
    search_chain: LegalSearchChain,
    store: ToolCallStore,
    config: AgentConfig | None = None,
) -> None:
    """Register the two tools used by the dialogue loop.

    Tools:
    - `legal_search`: normalize, retrieve, extract and store law text.
    - `analyze_law_text`: hand previously extracted text back to the model.
    """

    config = config or AgentConfig()

    def _search(input_data: SearchToolInput, context: RequestContext) -> dict[str, Any]:
        query = input_data.query.strip()
        if not query:
            return {"error": "Missing query"}

        tool_call_id = new_tool_call_id()
        context.searched = True
        context.first_analyze_pending = True
        result = search_chain.run(
            query,
            extract=input_data.extract,
            uid=context.uid,
            conversation_id=context.conversation_id,
            tool_call_id=tool_call_id,
            title=query,
        )
        if "error" not in result:
            context.last_tool_call_id = tool_call_id
            context.last_title = query
        return result

    def _analyze(input_data: AnalyzeToolInput, context: RequestContext) -> dict[str, Any]:
        tool_call_id = input_data.tool_call_id or context.last_tool_call_id
        key = context.last_title
        law_text: str | None = None
        source = "none"

        if tool_call_id and key:
            law_text = store.retrieve(
                uid=context.uid,
                conversation_id=context.conversation_id,
                tool_call_id=tool_call_id,
                key=key,
            )
            if law_text is not None:
                source = "tool_call"

        if law_text is None:
            latest = store.latest(uid=context.uid, conversation_id=context.conversation_id)
            if latest is not None:
                logger.info(
                    "Falling back to latest tool call %s in conversation %s",
                    latest.tool_call_id,
                    context.conversation_id,
                )
                law_text = latest.content
                tool_call_id = latest.tool_call_id
                source = "latest"

        if law_text is None:
            law_text = NO_TEXT_PLACEHOLDER
            tool_call_id = None

        if context.first_analyze_pending:
            effective_request = OUTLINE_REQUEST
        else:
            effective_request = input_data.user_request.strip() or DEFAULT_REQUEST
        context.first_analyze_pending = False

        return {
            "userRequest": effective_request,
            "lawText": law_text[: config.max_law_text_chars],
            "toolCallId": tool_call_id,
            "source": source,
        }

    registry.register(
        ToolSpec(
            name=SEARCH_TOOL,
            description=(
                "Run a Nepali-law search and (optionally) extract the relevant sections. "
                "Use only when the user clearly asks for a new search."
            ),
            args_schema=SearchToolInput,
            handler=_search,
            tags=["retrieval", "extraction"],
        )
    )
    registry.register(
        ToolSpec(
            name=ANALYZE_TOOL,
            description=(
                "Analyse previously extracted law text for the user's follow-up request "
                "(never translate). The backend supplies the text."
            ),
            args_schema=AnalyzeToolInput,
            handler=_analyze,
            tags=["analysis"],
        )
    )
