"""Law library access: fetch full document text by name."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class DocumentNotFoundError(LookupError):
    """Raised when a named law document is not in the library."""


class DocumentSource(Protocol):
    """Minimal document library contract used by the extractor."""

    def fetch(self, name: str) -> str:
        """Return the full UTF-8 text of document `name`."""


class DirectoryDocumentSource:
    """Serves `.txt` law documents from a local directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def fetch(self, name: str) -> str:
        root = self.root.resolve()
        path = (root / name).resolve()
        if not path.is_relative_to(root):
            raise DocumentNotFoundError(f"Document outside library: {name}")
        if not path.is_file():
            raise DocumentNotFoundError(f"Document not found in library: {name}")
        return path.read_text(encoding="utf-8")


class InMemoryDocumentSource:
    """Deterministic document source used for tests and local prototyping."""

    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self._documents = dict(documents or {})

    def add(self, name: str, text: str) -> None:
        self._documents[name] = text

    def fetch(self, name: str) -> str:
        try:
            return self._documents[name]
        except KeyError:
            raise DocumentNotFoundError(f"Document not found in library: {name}") from None
