from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from langchain_core.messages import AIMessage, BaseMessage

from legal_agent.agent.registry import ToolRegistry
from legal_agent.agent.tools import register_legal_tools
from legal_agent.config import AgentConfig
from legal_agent.extraction.documents import InMemoryDocumentSource
from legal_agent.extraction.extractor import LawTextExtractor
from legal_agent.search.chain import LegalSearchChain
from legal_agent.store.tool_calls import InMemoryToolCallStore

CIVIL_CODE = "\n".join(
    [
        "Muluki Civil Code",
        "P1-C1-S1",
        "Short title and commencement.",
        "P1-C1-S2",
        "Definitions.",
        "P1-C2-S1",
        "Capacity to contract.",
        "P1-C2-S3",
        "Void agreements.",
        "P1-C3-S1",
        "Succession.",
    ]
)

COMMENTARY = (
    "The relevant law is below.\n```json\n"
    '{"doc_name": "civil_code", "relevant_sections": ["P1-C2-S1",],}\n```'
)


class _BoundModel:
    def __init__(self, model: "ScriptedChatModel", tool_names: list[str]) -> None:
        self._model = model
        self._tool_names = tool_names

    def invoke(self, messages: list[BaseMessage]) -> Any:
        self._model.calls.append((self._tool_names, list(messages)))
        return self._model.next_response()


class ScriptedChatModel:
    """Chat model stand-in replaying scripted responses; the last one repeats."""

    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[list[str], list[BaseMessage]]] = []

    def bind_tools(self, tools: list[dict[str, Any]]) -> _BoundModel:
        return _BoundModel(self, [tool["function"]["name"] for tool in tools])

    def next_response(self) -> Any:
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


class SpyNormalizer:
    def __init__(self) -> None:
        self.queries: list[str] = []

    def normalize(self, query: str) -> str:
        self.queries.append(query)
        return f"{query} contract capacity"


class StaticRetriever:
    def __init__(self, commentary: str = COMMENTARY) -> None:
        self.commentary = commentary
        self.queries: list[str] = []

    def retrieve(self, query: str) -> str:
        self.queries.append(query)
        return self.commentary


def tool_call(name: str, args: dict[str, Any] | None = None, call_id: str = "call-1") -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": name, "args": args or {}, "id": call_id}])


@pytest.fixture
def store() -> InMemoryToolCallStore:
    return InMemoryToolCallStore()


@pytest.fixture
def normalizer() -> SpyNormalizer:
    return SpyNormalizer()


@pytest.fixture
def retriever() -> StaticRetriever:
    return StaticRetriever()


@pytest.fixture
def search_chain(
    normalizer: SpyNormalizer, retriever: StaticRetriever, store: InMemoryToolCallStore
) -> LegalSearchChain:
    extractor = LawTextExtractor(InMemoryDocumentSource({"civil_code.txt": CIVIL_CODE}))
    return LegalSearchChain(normalizer, retriever, extractor, store)


@pytest.fixture
def registry(search_chain: LegalSearchChain, store: InMemoryToolCallStore) -> ToolRegistry:
    tool_registry = ToolRegistry()
    register_legal_tools(
        tool_registry, search_chain=search_chain, store=store, config=AgentConfig()
    )
    return tool_registry


@pytest.fixture
def scripted_model() -> Callable[[list[Any]], ScriptedChatModel]:
    return ScriptedChatModel
