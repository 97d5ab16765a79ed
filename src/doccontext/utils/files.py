"""Utility helpers for working with documentation files."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Iterable, Iterator, List

from doccontext.models import Document

LOGGER = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".mdx")

DOCS_FOLDER_CANDIDATES = ("docs", "documentation", "doc")

# Repository files that are not user-facing documentation
IGNORED_FILES = frozenset(
    {
        "code_of_conduct.md",
        "contributing.md",
        "changelog.md",
        "history.md",
        "license.md",
        "security.md",
        "pull_request_template.md",
        "issue_template.md",
        "claude.md",
    }
)

IGNORED_DIRS = frozenset(
    {
        "__tests__",
        "__test__",
        "test",
        "tests",
        "spec",
        "specs",
        "fixtures",
        "__fixtures__",
        "__mocks__",
        "internal",
        "dev",
        "plans",
        "node_modules",
        "dist",
        "build",
        "out",
        "examples",
        "benchmarks",
        "benchmark",
    }
)

_FIXTURE_SUFFIXES = (".expect.md", ".test.md", ".spec.md")


def content_hash(text: str) -> str:
    """Short MD5 digest used to detect identical content."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()[:16]


def _is_doc_file(path: Path) -> bool:
    name = path.name.lower()
    if not name.endswith(MARKDOWN_SUFFIXES):
        return False
    if name in IGNORED_FILES:
        return False
    return not name.endswith(_FIXTURE_SUFFIXES)


def iter_markdown_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield markdown paths from input paths, descending into directories.

    Directories are walked in sorted order so that builds are reproducible.
    Hidden entries and well-known non-documentation folders are skipped.
    """
    for item in inputs:
        if item.is_dir():
            children = sorted(
                child
                for child in item.iterdir()
                if not child.name.startswith(".")
                and not (child.is_dir() and child.name.lower() in IGNORED_DIRS)
            )
            yield from iter_markdown_paths(children)
        elif item.is_file() and _is_doc_file(item):
            yield item


def detect_docs_folder(root: Path) -> Path | None:
    """Return the conventional docs folder under ``root`` if there is one."""
    folders = {child.name.lower(): child for child in root.iterdir() if child.is_dir()}
    for candidate in DOCS_FOLDER_CANDIDATES:
        if candidate in folders:
            return folders[candidate]
    return None


def read_markdown_documents(root: Path) -> List[Document]:
    """Read every markdown file under ``root`` into documents.

    Paths are stored relative to ``root`` using forward slashes. Files whose
    whole content repeats an earlier file are skipped; unreadable files are
    logged and skipped.
    """
    base = root if root.is_dir() else root.parent
    documents: List[Document] = []
    seen: set[str] = set()
    for path in iter_markdown_paths([root]):
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Skipping unreadable file %s: %s", path, exc)
            continue

        digest = content_hash(text)
        if digest in seen:
            LOGGER.debug("Skipping duplicate file %s", path)
            continue
        seen.add(digest)
        documents.append(Document(path=path.relative_to(base).as_posix(), raw_text=text))
    return documents
