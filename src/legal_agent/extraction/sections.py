"""Section extraction over law texts addressed by `P<n>-C<n>-S<n>` headers.

Law documents in the library mark every section with a header line such as
``P1-C2-S3`` (part 1, chapter 2, section 3). A section's body runs from its
header line up to the next header line anywhere in the document. Requests may
name single sections or whole chapters (``P1-C2``); both are widened to every
section of the chapter discovered in the document.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_QUOTE_VARIANTS = re.compile("[\u2018\u2019\u201c\u201d\u0060\u00ab\u00bb]")
_WHITESPACE = re.compile(r"\s+")
_LINE_BREAK = re.compile(r"\r?\n")
SECTION_PATTERN = re.compile(r"^P(\d+)-C(\d+)-S(\d+)$")
CHAPTER_PATTERN = re.compile(r"^P(\d+)-C(\d+)$")


@dataclass(slots=True, frozen=True)
class SectionHeader:
    line_index: int
    key: str
    part: int
    chapter: int
    section: int
    raw: str

    @property
    def chapter_key(self) -> str:
        return f"P{self.part}-C{self.chapter}"


@dataclass(slots=True)
class SectionExtraction:
    """Result of one extraction run; `found` and `not_found` partition `expanded`."""

    text: str
    found: list[str]
    not_found: list[str]
    expanded: list[str]


def normalize_header(text: str) -> str:
    normalized = _QUOTE_VARIANTS.sub('"', text or "")
    normalized = normalized.removeprefix("\ufeff")
    return _WHITESPACE.sub("", normalized)


def chapter_key_of(key: str) -> str | None:
    """Return the `P<n>-C<n>` prefix of a section or chapter key, if it is one."""
    normalized = normalize_header(key)
    match = SECTION_PATTERN.match(normalized) or CHAPTER_PATTERN.match(normalized)
    if match is None:
        return None
    return f"P{int(match.group(1))}-C{int(match.group(2))}"


def find_section_headers(lines: list[str]) -> list[SectionHeader]:
    headers: list[SectionHeader] = []
    for index, line in enumerate(lines):
        normalized = normalize_header(line)
        match = SECTION_PATTERN.match(normalized)
        if match:
            headers.append(
                SectionHeader(
                    line_index=index,
                    key=normalized,
                    part=int(match.group(1)),
                    chapter=int(match.group(2)),
                    section=int(match.group(3)),
                    raw=line,
                )
            )
    return headers


def expand_requested_sections(
    requested: list[str], headers: list[SectionHeader]
) -> list[str]:
    """Widen each requested key to all discovered sections of its chapter.

    Order follows the request; within one chapter, document order. A requested
    section that is absent from the document is kept after its chapter's
    sections so it can be reported as not found.
    """

    by_chapter: dict[str, list[str]] = {}
    for header in headers:
        by_chapter.setdefault(header.chapter_key, []).append(header.key)

    expanded: list[str] = []
    seen: set[str] = set()

    def _add(key: str) -> None:
        if key not in seen:
            seen.add(key)
            expanded.append(key)

    for raw_key in requested:
        key = normalize_header(raw_key)
        if not key:
            continue
        chapter = chapter_key_of(key)
        if chapter is None:
            _add(key)
            continue
        for section_key in by_chapter.get(chapter, []):
            _add(section_key)
        if SECTION_PATTERN.match(key):
            _add(key)
    return expanded


def extract_sections(full_text: str, requested: list[str]) -> SectionExtraction:
    lines = _LINE_BREAK.split(full_text)
    headers = find_section_headers(lines)
    if headers:
        logger.debug(
            "Detected %d section headers: %s",
            len(headers),
            ", ".join(f"{h.key}@{h.line_index}" for h in headers),
        )
    else:
        logger.debug("No section headers detected in document")

    expanded = expand_requested_sections(requested, headers)
    logger.debug("Expanded request %s -> %s", requested, expanded)

    first_index: dict[str, int] = {}
    for header in headers:
        first_index.setdefault(header.key, header.line_index)
    header_lines = [header.line_index for header in headers]

    chunks: list[str] = []
    found: list[str] = []
    not_found: list[str] = []
    for key in expanded:
        start = first_index.get(key)
        if start is None:
            not_found.append(key)
            logger.debug("Section header [%s] was not found", key)
            continue
        end = next((index for index in header_lines if index > start), len(lines))
        found.append(key)
        chunks.append(f"\n---- [{key}] ----\n" + "\n".join(lines[start:end]) + "\n")
        logger.debug("Section [%s] spans lines %d-%d", key, start, end - 1)

    text = "".join(chunks)
    if not text.strip():
        named = list(dict.fromkeys([*(k.strip() for k in requested if k.strip()), *expanded]))
        text = f"No relevant sections found: {', '.join(named)}"
    elif not_found:
        text += f"\n\n[WARN] Section(s) not found: {', '.join(not_found)}"

    logger.debug(
        "Extraction complete: requested=%d found=%d missing=%d",
        len(expanded),
        len(found),
        len(not_found),
    )
    return SectionExtraction(
        text=text.strip(), found=found, not_found=not_found, expanded=expanded
    )
