import json
import sqlite3

import pytest
from conftest import CIVIL_CODE, tool_call
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from legal_agent.agent.planner import NO_ANSWER, NO_RESPONSE, LegalChatPlanner, NoCandidateError
from legal_agent.agent.registry import ToolRegistry
from legal_agent.agent.tools import ANALYZE_TOOL, OUTLINE_REQUEST, SEARCH_TOOL, register_legal_tools
from legal_agent.config import AgentConfig
from legal_agent.extraction.documents import InMemoryDocumentSource
from legal_agent.extraction.extractor import LawTextExtractor
from legal_agent.obs.tracing import TraceStore
from legal_agent.search.chain import LegalSearchChain
from legal_agent.store.tool_calls import InMemoryToolCallStore


def _planner(model, registry, trace_store=None) -> LegalChatPlanner:
    return LegalChatPlanner(
        llm=model,
        tool_registry=registry,
        trace_store=trace_store or TraceStore(),
        config=AgentConfig(),
    )


def test_plain_text_answer_ends_loop_on_first_iteration(scripted_model, registry) -> None:
    model = scripted_model([AIMessage(content="Section 3 covers void agreements.")])

    result = _planner(model, registry).invoke("What is void?", uid="u1", conversation_id="c1")

    assert result.answer == "Section 3 covers void agreements."
    assert result.iterations == 1
    assert result.tool_traces == []
    exposed, messages = model.calls[0]
    assert exposed == [SEARCH_TOOL, ANALYZE_TOOL]
    assert isinstance(messages[-1], HumanMessage)


def test_search_then_text_takes_two_iterations_without_analyze(scripted_model, registry, store) -> None:
    model = scripted_model(
        [
            tool_call(SEARCH_TOOL, {"query": "contract capacity"}, call_id="call-search"),
            AIMessage(content="Here is what the Civil Code says."),
        ]
    )

    result = _planner(model, registry).invoke("search contract law", uid="u1", conversation_id="c1")

    assert result.answer == "Here is what the Civil Code says."
    assert result.iterations == 2
    assert [trace.name for trace in result.tool_traces] == [SEARCH_TOOL]

    _, second_turn = model.calls[1]
    request_turn, result_turn = second_turn[-2], second_turn[-1]
    assert isinstance(request_turn, AIMessage)
    assert request_turn.tool_calls[0]["name"] == SEARCH_TOOL
    assert isinstance(result_turn, ToolMessage)
    assert result_turn.name == SEARCH_TOOL
    assert result_turn.tool_call_id == "call-search"
    payload = json.loads(result_turn.content)
    assert "Capacity to contract." in payload["finalText"]
    assert store.latest(uid="u1", conversation_id="c1") is not None


def test_analyze_without_id_resolves_to_last_search(scripted_model, registry, store) -> None:
    model = scripted_model(
        [
            tool_call(SEARCH_TOOL, {"query": "foo"}, call_id="c-1"),
            tool_call(ANALYZE_TOOL, {"user_request": "section bodies please"}, call_id="c-2"),
            AIMessage(content="Outline ready."),
        ]
    )
    store.save(uid="u1", conversation_id="c1", tool_call_id="newer-noise", key="bar", content="noise")

    result = _planner(model, registry).invoke("find foo", uid="u1", conversation_id="c1")

    assert result.iterations == 3
    _, final_turn = model.calls[2]
    search_payload = json.loads(final_turn[-3].content)
    analyze_payload = json.loads(final_turn[-1].content)
    assert analyze_payload["toolCallId"] == search_payload["toolCallId"]
    assert analyze_payload["lawText"] == search_payload["finalText"]
    assert analyze_payload["userRequest"] == OUTLINE_REQUEST


def test_search_tool_hidden_after_search_unless_user_asks_again(scripted_model, registry) -> None:
    script = [
        tool_call(SEARCH_TOOL, {"query": "contract"}, call_id="c-1"),
        tool_call(ANALYZE_TOOL, {}, call_id="c-2"),
        AIMessage(content="done"),
    ]

    quiet = scripted_model(list(script))
    _planner(quiet, registry).invoke("what does the law say on contracts?", uid="u1", conversation_id="c1")
    explicit = scripted_model(list(script))
    _planner(explicit, registry).invoke("कृपया खोज्नुहोस्", uid="u1", conversation_id="c2")

    assert [names for names, _ in quiet.calls] == [
        [SEARCH_TOOL, ANALYZE_TOOL],
        [ANALYZE_TOOL],
        [ANALYZE_TOOL],
    ]
    assert all(names == [SEARCH_TOOL, ANALYZE_TOOL] for names, _ in explicit.calls)


def test_blank_search_query_is_fed_back_as_error(scripted_model, registry, normalizer) -> None:
    model = scripted_model(
        [tool_call(SEARCH_TOOL, {"query": " "}), AIMessage(content="Please tell me what to search.")]
    )

    result = _planner(model, registry).invoke("search", uid="u1", conversation_id="c1")

    assert result.answer == "Please tell me what to search."
    assert json.loads(model.calls[1][1][-1].content) == {"error": "Missing query"}
    assert normalizer.queries == []


def test_exhausted_budget_returns_sentinel(scripted_model, registry) -> None:
    model = scripted_model([tool_call(ANALYZE_TOOL, {"user_request": "more"})])
    trace_store = TraceStore()

    result = _planner(model, registry, trace_store).invoke("keep going", uid="u1", conversation_id="c1")

    assert result.answer == NO_ANSWER
    assert result.iterations == 6
    assert len(model.calls) == 6
    assert trace_store.get(result.trace_id).answer == NO_ANSWER
    assert trace_store.summary()["unanswered_requests"] == 1


def test_empty_model_turn_returns_no_response(scripted_model, registry) -> None:
    model = scripted_model([AIMessage(content="   ")])

    result = _planner(model, registry).invoke("hello", uid="u1", conversation_id="c1")

    assert result.answer == NO_RESPONSE
    assert result.iterations == 1


def test_missing_candidate_is_fatal(scripted_model, registry) -> None:
    model = scripted_model([None])

    with pytest.raises(NoCandidateError):
        _planner(model, registry).invoke("hello", uid="u1", conversation_id="c1")


def test_history_and_attachments_are_sent_to_model(scripted_model, registry) -> None:
    model = scripted_model([AIMessage(content="ok")])
    history = [
        {"role": "user", "parts": [{"text": "earlier question"}]},
        {"role": "model", "parts": [{"text": "earlier answer"}]},
        {"role": "function", "parts": [{"functionResponse": {"name": "x"}}]},
    ]
    files = [
        {"data": "aGVsbG8=", "mimeType": "image/png"},
        {"data": "JVBERi0=", "mimeType": "application/pdf"},
    ]

    _planner(model, registry).invoke(
        "read these", uid="u1", conversation_id="c1", history=history, files=files
    )

    _, messages = model.calls[0]
    assert [type(m).__name__ for m in messages] == [
        "SystemMessage",
        "HumanMessage",
        "AIMessage",
        "HumanMessage",
    ]
    content = messages[-1].content
    assert content[0] == {"type": "text", "text": "read these"}
    assert content[1]["image_url"]["url"] == "data:image/png;base64,aGVsbG8="
    assert content[2]["mime_type"] == "application/pdf"
    assert history[0] == {"role": "user", "parts": [{"text": "earlier question"}]}


def test_trace_is_recorded_per_request(scripted_model, registry) -> None:
    trace_store = TraceStore()
    model = scripted_model([tool_call(SEARCH_TOOL, {"query": "contract"}), AIMessage(content="answer")])

    result = _planner(model, registry, trace_store).invoke("search contract", uid="u1", conversation_id="c1")

    record = trace_store.get(result.trace_id)
    assert record.uid == "u1"
    assert record.iterations == 2
    assert [trace.name for trace in record.tool_traces] == [SEARCH_TOOL]
    assert trace_store.summary()["total_tool_calls"] == 1


class _LockedStore(InMemoryToolCallStore):
    def retrieve(self, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    def latest(self, **kwargs):
        raise sqlite3.OperationalError("database is locked")


class _FailingRetriever:
    def retrieve(self, query: str) -> str:
        raise RuntimeError("assistant unavailable")


def _registry(normalizer, retriever, store) -> ToolRegistry:
    extractor = LawTextExtractor(InMemoryDocumentSource({"civil_code.txt": CIVIL_CODE}))
    tool_registry = ToolRegistry()
    register_legal_tools(
        tool_registry,
        search_chain=LegalSearchChain(normalizer, retriever, extractor, store),
        store=store,
        config=AgentConfig(),
    )
    return tool_registry


def test_store_failure_during_analyze_is_fed_back_to_model(scripted_model, normalizer, retriever) -> None:
    model = scripted_model(
        [tool_call(ANALYZE_TOOL, {"user_request": "summarise"}, call_id="c-1"), AIMessage(content="sorry")]
    )
    registry = _registry(normalizer, retriever, _LockedStore())

    result = _planner(model, registry).invoke("summarise it", uid="u1", conversation_id="c1")

    assert result.answer == "sorry"
    assert result.iterations == 2
    assert json.loads(model.calls[1][1][-1].content) == {"error": "database is locked"}


def test_failed_search_still_hides_search_tool(scripted_model, normalizer, store) -> None:
    model = scripted_model(
        [
            tool_call(SEARCH_TOOL, {"query": "land tax"}, call_id="c-1"),
            tool_call(ANALYZE_TOOL, {}, call_id="c-2"),
            AIMessage(content="The search failed."),
        ]
    )
    registry = _registry(normalizer, _FailingRetriever(), store)

    result = _planner(model, registry).invoke("what about land tax?", uid="u1", conversation_id="c1")

    assert result.answer == "The search failed."
    assert [names for names, _ in model.calls] == [
        [SEARCH_TOOL, ANALYZE_TOOL],
        [ANALYZE_TOOL],
        [ANALYZE_TOOL],
    ]
    search_payload = json.loads(model.calls[1][1][-1].content)
    assert search_payload["error"] == "assistant unavailable"
    analyze_payload = json.loads(model.calls[2][1][-1].content)
    assert analyze_payload["source"] == "none"


def test_text_sent_alongside_tool_call_is_kept_in_history(scripted_model, registry) -> None:
    model = scripted_model(
        [
            AIMessage(
                content="Let me look that up.",
                tool_calls=[{"name": SEARCH_TOOL, "args": {"query": "contract"}, "id": "c-1"}],
            ),
            AIMessage(content="done"),
        ]
    )

    _planner(model, registry).invoke("search contract", uid="u1", conversation_id="c1")

    request_turn = model.calls[1][1][-2]
    assert request_turn.content == "Let me look that up."
    assert request_turn.tool_calls[0]["id"] == "c-1"
