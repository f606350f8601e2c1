"""Keyword enrichment of free-text legal queries."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

logger = logging.getLogger(__name__)

_NORMALIZER_PROMPT = (
    "Your job is to append a processed version of a legal search query for maximum "
    "clarity and relevance. Add keywords related to the concept and even connected "
    "concepts/phrases - we want to retrieve various contents related to it. Keep it "
    "information-rich. Reply with the original query along with the appended keywords "
    "and phrases.\n\nUser query:\n{query}\n\nProcessed Query:"
)


class QueryNormalizer:
    """Rewrites a user query into a keyword-enriched version with one model call."""

    def __init__(self, llm: Any) -> None:
        self.llm = llm
        self._chain = ChatPromptTemplate.from_messages([("human", _NORMALIZER_PROMPT)]) | llm | StrOutputParser()

    def normalize(self, query: str) -> str:
        processed = str(self._chain.invoke({"query": query}) or "").strip()
        logger.debug("Normalized query %r -> %r", query, processed)
        return processed or query
