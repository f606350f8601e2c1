"""Search chain: normalize -> retrieve commentary -> extract sections -> persist."""

from __future__ import annotations

import logging
from typing import Any

from legal_agent.extraction.extractor import LawTextExtractor
from legal_agent.obs.tracing import estimate_token_count
from legal_agent.search.assistant import CommentaryRetriever
from legal_agent.search.query import QueryNormalizer
from legal_agent.store.tool_calls import ToolCallStore

logger = logging.getLogger(__name__)


class LegalSearchChain:
    """Runs one legal search end to end.

    Failures anywhere in the chain are reported in the returned payload under
    `error`; nothing is persisted in that case.
    """

    def __init__(
        self,
        normalizer: QueryNormalizer,
        retriever: CommentaryRetriever,
        extractor: LawTextExtractor,
        store: ToolCallStore,
    ) -> None:
        self.normalizer = normalizer
        self.retriever = retriever
        self.extractor = extractor
        self.store = store

    def run(
        self,
        query: str,
        *,
        extract: bool,
        uid: str,
        conversation_id: str,
        tool_call_id: str,
        title: str,
    ) -> dict[str, Any]:
        logger.info("Legal search %s: %r (extract=%s)", tool_call_id, query, extract)
        try:
            processed = self.normalizer.normalize(query)
            commentary = self.retriever.retrieve(processed)
            output = self.extractor.process(commentary, extract=extract)
            self.store.save(
                uid=uid,
                conversation_id=conversation_id,
                tool_call_id=tool_call_id,
                key=title,
                content=output.extracted_text,
                tokens_used=estimate_token_count(output.extracted_text),
            )
        except Exception as exc:
            logger.exception("Legal search %s failed", tool_call_id)
            return {
                "finalText": "",
                "filesFetched": [],
                "error": str(exc) or exc.__class__.__name__,
            }

        return {
            "finalText": output.extracted_text,
            "filesFetched": output.files_used,
            "toolCallId": tool_call_id,
        }
