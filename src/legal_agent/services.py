"""Construction of the long-lived service handles owned by the entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from legal_agent.agent.planner import LegalChatPlanner
from legal_agent.agent.registry import ToolRegistry
from legal_agent.agent.tools import register_legal_tools
from legal_agent.config import AgentConfig, Settings
from legal_agent.extraction.documents import DirectoryDocumentSource
from legal_agent.extraction.extractor import LawTextExtractor
from legal_agent.obs.tracing import TraceStore
from legal_agent.search.assistant import OpenAIAssistantRetriever
from legal_agent.search.chain import LegalSearchChain
from legal_agent.search.query import QueryNormalizer
from legal_agent.store.tool_calls import SqliteToolCallStore, ToolCallStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatServices:
    """Everything the HTTP layer needs; `planner` is None when no API key is configured."""

    planner: LegalChatPlanner | None
    trace_store: TraceStore
    store: ToolCallStore | None = None
    config: AgentConfig = field(default_factory=AgentConfig)


def build_services(settings: Settings) -> ChatServices:
    trace_store = TraceStore()
    store = SqliteToolCallStore(settings.store.sqlite_path)
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; chat endpoint will reject requests")
        return ChatServices(planner=None, trace_store=trace_store, store=store, config=settings.agent)

    from langchain_openai import ChatOpenAI
    from openai import OpenAI

    llm = ChatOpenAI(
        model=settings.agent.chat_model,
        temperature=settings.agent.temperature,
        api_key=settings.openai_api_key,
    )
    query_llm = ChatOpenAI(
        model=settings.search.query_model,
        temperature=0,
        api_key=settings.openai_api_key,
    )
    retriever = OpenAIAssistantRetriever(
        OpenAI(api_key=settings.openai_api_key),
        settings.search.assistant_id,
        poll_interval_seconds=settings.search.assistant_poll_interval_seconds,
        max_polls=settings.search.assistant_max_polls,
    )
    extractor = LawTextExtractor(
        DirectoryDocumentSource(settings.search.law_library_dir),
        suffix=settings.search.document_suffix,
    )
    search_chain = LegalSearchChain(QueryNormalizer(query_llm), retriever, extractor, store)

    registry = ToolRegistry()
    register_legal_tools(registry, search_chain=search_chain, store=store, config=settings.agent)
    planner = LegalChatPlanner(
        llm=llm,
        tool_registry=registry,
        trace_store=trace_store,
        config=settings.agent,
    )
    return ChatServices(planner=planner, trace_store=trace_store, store=store, config=settings.agent)
