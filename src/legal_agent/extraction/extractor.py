"""Turns assistant commentary into extracted law text."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from legal_agent.extraction.commentary import parse_assistant_instruction
from legal_agent.extraction.documents import DocumentSource
from legal_agent.extraction.sections import extract_sections

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExtractorOutput:
    extracted_text: str
    files_used: list[str] = field(default_factory=list)


class LawTextExtractor:
    """Parses the assistant's instruction, loads the named law and slices its sections."""

    def __init__(self, source: DocumentSource, *, suffix: str = ".txt") -> None:
        self.source = source
        self.suffix = suffix

    def process(self, commentary: str, *, extract: bool = True) -> ExtractorOutput:
        if not extract:
            logger.debug("Extraction disabled, returning assistant commentary as-is")
            return ExtractorOutput(extracted_text=commentary)

        instruction = parse_assistant_instruction(commentary, suffix=self.suffix)
        logger.debug(
            "Loading %s for sections %s", instruction.doc_name, ", ".join(instruction.sections)
        )
        full_text = self.source.fetch(instruction.doc_name)
        result = extract_sections(full_text, instruction.sections)
        if result.not_found:
            logger.info(
                "Sections missing from %s: %s", instruction.doc_name, ", ".join(result.not_found)
            )
        return ExtractorOutput(
            extracted_text=result.text,
            files_used=[instruction.doc_name, *result.found],
        )
