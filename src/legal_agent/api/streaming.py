"""Paced chunked delivery of a finished answer."""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import AsyncIterator, Callable, Iterable

STOPPED_MARKER = " (Stopped)"


async def stream_answer(
    text: str, *, chunk_size: int = 5, delay_seconds: float = 0.01
) -> AsyncIterator[str]:
    """Yield `text` in fixed-size chunks with a pause between chunks."""
    for start in range(0, len(text), chunk_size):
        yield text[start : start + chunk_size]
        if start + chunk_size < len(text) and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)


def read_answer_stream(chunks: Iterable[str | bytes], should_stop: Callable[[], bool]) -> str:
    """Collect streamed chunks; once stopped, drop the rest and mark the text.

    Client-side counterpart of `stream_answer`: the server keeps generating once
    a turn has started, so stopping is the reader's decision.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    received: list[str] = []
    for chunk in chunks:
        if should_stop():
            return "".join(received) + STOPPED_MARKER
        received.append(decoder.decode(chunk) if isinstance(chunk, bytes) else chunk)
    received.append(decoder.decode(b"", final=True))
    return "".join(received)
