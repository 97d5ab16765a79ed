"""Core doccontext data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List


@dataclass(slots=True)
class Document:
    """Raw documentation text awaiting parsing."""

    path: str
    raw_text: str


@dataclass(slots=True)
class Frontmatter:
    title: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Section:
    """Token-bounded, title-addressable unit of a parsed document."""

    doc_path: str
    doc_title: str
    section_title: str
    content: str
    tokens: int
    has_code: bool = False


@dataclass(slots=True)
class ParsedDocument:
    path: str
    frontmatter: Frontmatter
    sections: List[Section] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class IndexedChunk:
    """Section paired with its build-assigned id and library identity.

    Ids grow in file-then-heading order and are the only basis for
    adjacency when search results are merged.
    """

    id: int
    library: tuple[str, str]
    section: Section


@dataclass(slots=True)
class QueryCandidate:
    """Ranked match returned by the index for one query."""

    chunk_id: int
    doc_path: str
    doc_title: str
    section_title: str
    content: str
    tokens: int
    score: float


@dataclass(frozen=True, slots=True)
class Snippet:
    """Externally visible search result, possibly merged from several chunks."""

    title: str
    content: str
    source_path: str

    def as_dict(self) -> Dict[str, str]:
        return {"title": self.title, "content": self.content, "source": self.source_path}


@dataclass(slots=True)
class SearchResponse:
    library: str
    version: str
    results: List[Snippet] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "library": self.library,
            "version": self.version,
            "results": [snippet.as_dict() for snippet in self.results],
        }
        if not self.results:
            payload["message"] = "No documentation found. Try different keywords."
        return payload


@dataclass(slots=True)
class PackageMeta:
    """Library identity and descriptive metadata stored in a package."""

    name: str
    version: str
    description: str | None = None
    source_url: str | None = None

    @property
    def library(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(slots=True)
class PackageInfo:
    meta: PackageMeta
    path: Path
    size_bytes: int
    section_count: int

    @property
    def library(self) -> str:
        return self.meta.library

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.meta.name,
            "version": self.meta.version,
            "library": self.library,
            "description": self.meta.description,
            "source_url": self.meta.source_url,
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "section_count": self.section_count,
        }
