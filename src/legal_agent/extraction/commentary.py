"""Tolerant parsing of the extraction instruction embedded in assistant commentary."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

_TRAILING_COMMA = re.compile(r",\s*([\]}])")


class CommentaryParseError(ValueError):
    """Raised when assistant commentary carries no usable extraction instruction."""


@dataclass(slots=True)
class ExtractionInstruction:
    doc_name: str
    sections: list[str]


def parse_assistant_instruction(text: str, *, suffix: str = ".txt") -> ExtractionInstruction:
    """Parse `{"doc_name": ..., "relevant_sections": [...]}` out of free text.

    The object is taken from the first `{` to the last `}` so Markdown fences and
    surrounding prose are ignored; trailing commas are dropped before parsing.
    """

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise CommentaryParseError(f"No JSON object found in assistant output: {text[:200]!r}")

    candidate = _TRAILING_COMMA.sub(r"\1", text[start : end + 1])
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise CommentaryParseError(f"Assistant output is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise CommentaryParseError("Assistant output JSON is not an object")

    doc_name = str(payload.get("doc_name") or "").strip()
    raw_sections = payload.get("relevant_sections")
    sections = (
        [str(item).strip() for item in raw_sections if str(item).strip()]
        if isinstance(raw_sections, list)
        else []
    )
    if not doc_name or not sections:
        raise CommentaryParseError(
            "JSON missing doc_name or relevant_sections. Got: "
            + json.dumps(payload, ensure_ascii=False)[:500]
        )

    if suffix and not doc_name.endswith(suffix):
        doc_name += suffix
    return ExtractionInstruction(doc_name=doc_name, sections=sections)
