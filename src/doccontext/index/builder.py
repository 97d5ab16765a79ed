"""Package build pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List

from doccontext.config import AppConfig
from doccontext.errors import ParseFailure
from doccontext.index.storage import PackageDatabase
from doccontext.ingestion.markdown_loader import parse_markdown
from doccontext.models import Document, IndexedChunk, PackageMeta, Section
from doccontext.utils.files import content_hash

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildStats:
    parsed: int = 0
    failed: int = 0
    sections: int = 0
    duplicates: int = 0
    processed_files: list[str] = field(default_factory=list)

    def increment(self, status: str, path: str) -> None:
        if status == "parsed":
            self.parsed += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


@dataclass(slots=True)
class BuildContext:
    """Mutable state owned by exactly one build.

    Holds the content hashes seen so far and the next chunk id. Both depend
    on processing order, so a context must never be shared between builds.
    """

    library: tuple[str, str]
    seen_hashes: set[str] = field(default_factory=set)
    next_id: int = 1
    chunks: List[IndexedChunk] = field(default_factory=list)
    stats: BuildStats = field(default_factory=BuildStats)

    def add_section(self, section: Section) -> IndexedChunk | None:
        """Assign the next id to ``section`` unless its content was already seen."""
        digest = content_hash(section.content)
        if digest in self.seen_hashes:
            self.stats.duplicates += 1
            return None
        self.seen_hashes.add(digest)
        chunk = IndexedChunk(id=self.next_id, library=self.library, section=section)
        self.next_id += 1
        self.chunks.append(chunk)
        self.stats.sections += 1
        return chunk

    @property
    def total_tokens(self) -> int:
        return sum(chunk.section.tokens for chunk in self.chunks)


@dataclass(slots=True)
class BuildResult:
    path: Path
    section_count: int
    total_tokens: int
    stats: BuildStats


class PackageBuilder:
    """Turns documents into a deduplicated, id-ordered chunk set and stores it."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config = config or AppConfig()

    def ingest(self, documents: Iterable[Document], context: BuildContext) -> BuildContext:
        """Parse documents in order into ``context``.

        A document that fails to parse is logged and counted, never fatal.
        """
        for document in documents:
            try:
                parsed = parse_markdown(
                    document.raw_text, document.path, config=self.config.chunking
                )
            except ParseFailure as exc:
                LOGGER.warning("Skipping %s: %s", document.path, exc.reason)
                context.stats.increment("failed", document.path)
                continue
            except Exception as exc:
                LOGGER.error("Failed to process %s: %s", document.path, exc)
                context.stats.increment("failed", document.path)
                continue

            for section in parsed.sections:
                context.add_section(section)
            context.stats.increment("parsed", document.path)
        return context

    def build(
        self,
        output_path: Path,
        documents: Iterable[Document],
        meta: PackageMeta,
    ) -> BuildResult:
        """Build a package file at ``output_path``, replacing any existing file."""
        context = self.ingest(documents, BuildContext(library=(meta.name, meta.version)))

        with PackageDatabase.create(output_path, meta, retrieval=self.config.retrieval) as store:
            store.insert_chunks(context.chunks)

        stats = context.stats
        LOGGER.info(
            "Built %s: %d sections from %d documents (%d failed, %d duplicates dropped)",
            meta.library,
            len(context.chunks),
            stats.parsed,
            stats.failed,
            stats.duplicates,
        )
        return BuildResult(
            path=Path(output_path),
            section_count=len(context.chunks),
            total_tokens=context.total_tokens,
            stats=stats,
        )


def build_package(
    output_path: Path,
    documents: Iterable[Document],
    meta: PackageMeta,
    *,
    config: AppConfig | None = None,
) -> BuildResult:
    return PackageBuilder(config).build(output_path, documents, meta)
