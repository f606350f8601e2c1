"""Retrieval of law-locating commentary from a hosted OpenAI assistant."""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_PENDING_STATUSES = frozenset({"queued", "in_progress", "cancelling"})


class AssistantRunError(RuntimeError):
    """Raised when an assistant run does not reach `completed`."""


class CommentaryRetriever(Protocol):
    """Returns free-text commentary that names a law document and its sections."""

    def retrieve(self, query: str) -> str:
        """Run one retrieval for `query`."""


class OpenAIAssistantRetriever:
    """Runs the query through an Assistants API thread and returns the reply text.

    The assistant is configured (outside this service) with the law library as
    its knowledge base and instructed to answer with a JSON object naming the
    document and the relevant section keys.
    """

    def __init__(
        self,
        client: Any,
        assistant_id: str,
        *,
        poll_interval_seconds: float = 0.1,
        max_polls: int = 60,
    ) -> None:
        if not assistant_id:
            raise ValueError("assistant_id is required")
        self.client = client
        self.assistant_id = assistant_id
        self.poll_interval_seconds = poll_interval_seconds
        self.max_polls = max_polls

    def retrieve(self, query: str) -> str:
        threads = self.client.beta.threads
        thread = threads.create()
        threads.messages.create(thread.id, role="user", content=query)
        run = threads.runs.create(thread.id, assistant_id=self.assistant_id)

        polls = 0
        while run.status in _PENDING_STATUSES and polls < self.max_polls:
            time.sleep(self.poll_interval_seconds)
            run = threads.runs.retrieve(run.id, thread_id=thread.id)
            polls += 1

        if run.status != "completed":
            raise AssistantRunError(f"Assistant did not complete. Status: {run.status}")

        messages = threads.messages.list(thread.id, order="desc", limit=5)
        reply = next((m for m in messages.data if m.role == "assistant"), None)
        parts: list[str] = []
        for block in getattr(reply, "content", None) or []:
            if block.type == "text" and block.text.value:
                parts.append(block.text.value)
        response = "\n".join(parts).strip()
        logger.debug("Assistant response after %d polls: %s", polls, response[:500])
        return response
