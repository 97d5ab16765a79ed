"""Markdown/MDX parsing and section chunking.

Documents are cut at level-2 headings. Each heading's content is cleaned of
component markup, dropped when it looks like a table of contents, and split
further when it exceeds the configured token limits:

* paragraphs are packed greedily up to ``target_max_tokens``;
* a paragraph above ``hard_max_tokens`` is split at code fences, then by
  line, then (for a single enormous line) by character window.

Parsing is line based and keeps the raw markdown of each section, so code
fences and level-3+ headings survive untouched in the section content.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterator, List, Tuple

import yaml

from doccontext.config import ChunkingConfig
from doccontext.errors import ParseFailure
from doccontext.models import Frontmatter, ParsedDocument, Section
from doccontext.utils.text import (
    CHARS_PER_TOKEN,
    clean_mdx_content,
    estimate_tokens,
    has_code_block,
    iter_code_blocks,
    link_coverage,
)

LOGGER = logging.getLogger(__name__)

INTRODUCTION_TITLE = "Introduction"
UNTITLED = "Untitled"
TOC_TITLES = frozenset({"toc", "contents", "index"})

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\n(.*?)\n?^---[ \t]*$\n?", re.DOTALL | re.MULTILINE)
_FENCE_OPEN_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")
_ATX_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
_ATX_CLOSING_RE = re.compile(r"(?:^|[ \t]+)#+$")
_SETEXT_UNDERLINE_RE = re.compile(r"^ {0,3}(=+|-+)[ \t]*$")
# Paragraph starts that cannot be turned into a setext heading
_NON_PARAGRAPH_RE = re.compile(r"^\s*(?:[-*+>|<]|\d+[.)]\s)")
_MDX_IMPORT_RE = re.compile(r"^import\s")
_PARAGRAPH_BREAK_RE = re.compile(r"\n\n+")

_INLINE_LINK_RE = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_INLINE_CODE_RE = re.compile(r"`([^`]*)`")
_STRONG_RE = re.compile(r"\*\*(.+?)\*\*")
_EMPHASIS_RE = re.compile(r"\*(.+?)\*")
_UNDERSCORE_EMPHASIS_RE = re.compile(r"(?<!\w)(__|_)(.+?)\1(?!\w)")


@dataclass(slots=True)
class Block:
    """Run of raw markdown lines: either a single heading or body text."""

    kind: str
    raw: str
    level: int = 0
    title: str = ""


def split_frontmatter(text: str) -> Tuple[Frontmatter, str]:
    """Separate a leading YAML frontmatter block from the document body.

    Invalid YAML, or YAML that is not a mapping, yields empty frontmatter and
    the block is still removed from the body.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return Frontmatter(), text

    body = text[match.end() :]
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        LOGGER.debug("Ignoring invalid frontmatter: %s", exc)
        return Frontmatter(), body

    if not isinstance(data, dict):
        return Frontmatter(), body
    return Frontmatter(title=_as_text(data.get("title")), description=_as_text(data.get("description"))), body


def _as_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def heading_text(raw: str) -> str:
    """Plain text of a heading with inline markup removed."""
    text = _INLINE_LINK_RE.sub(r"\1", raw)
    text = _INLINE_CODE_RE.sub(r"\1", text)
    text = _STRONG_RE.sub(r"\1", text)
    text = _EMPHASIS_RE.sub(r"\1", text)
    text = _UNDERSCORE_EMPHASIS_RE.sub(r"\2", text)
    return clean_mdx_content(text)


def iter_blocks(body: str) -> Iterator[Block]:
    """Scan markdown into heading and text blocks.

    Lines inside fenced code blocks never start headings. Top-level MDX
    ``import`` paragraphs are dropped.
    """
    pending: List[str] = []
    fence: str | None = None
    in_import = False
    # Trailing lines of ``pending`` that form the current plain paragraph
    paragraph_len = 0

    def flush() -> Iterator[Block]:
        if pending:
            yield Block(kind="text", raw="\n".join(pending))
            pending.clear()

    for line in body.split("\n"):
        if fence is not None:
            pending.append(line)
            stripped = line.strip()
            if stripped.startswith(fence) and not stripped.strip(fence[0]):
                fence = None
            continue

        if in_import:
            in_import = bool(line.strip())
            if in_import:
                continue

        fence_match = _FENCE_OPEN_RE.match(line)
        if fence_match and not (fence_match.group(1)[0] == "`" and "`" in line[fence_match.end() :]):
            fence = fence_match.group(1)
            pending.append(line)
            paragraph_len = 0
            continue

        heading_match = _ATX_HEADING_RE.match(line)
        if heading_match:
            yield from flush()
            raw_title = _ATX_CLOSING_RE.sub("", heading_match.group(2) or "")
            yield Block(
                kind="heading",
                raw=line,
                level=len(heading_match.group(1)),
                title=heading_text(raw_title),
            )
            paragraph_len = 0
            continue

        if paragraph_len == 0 and _MDX_IMPORT_RE.match(line):
            in_import = True
            continue

        underline = _SETEXT_UNDERLINE_RE.match(line)
        if underline and paragraph_len and not _NON_PARAGRAPH_RE.match(pending[-paragraph_len]):
            paragraph = pending[-paragraph_len:]
            del pending[-paragraph_len:]
            yield from flush()
            yield Block(
                kind="heading",
                raw="\n".join(paragraph + [line]),
                level=1 if underline.group(1)[0] == "=" else 2,
                title=heading_text(" ".join(part.strip() for part in paragraph)),
            )
            paragraph_len = 0
            continue

        pending.append(line)
        paragraph_len = paragraph_len + 1 if line.strip() else 0

    yield from flush()


def is_table_of_contents(section_title: str, content: str, link_ratio: float = 0.5) -> bool:
    """Detect table-of-contents sections by title or by link density."""
    title = section_title.lower()
    if "table of contents" in title or title in TOC_TITLES:
        return True
    return link_coverage(content) > link_ratio


def _split_long_line(line: str, max_chars: int) -> List[str]:
    pieces: List[str] = []
    rest = line
    while len(rest) > max_chars:
        cut = rest.rfind(" ", 0, max_chars + 1)
        if cut <= max_chars // 2:
            cut = max_chars
        pieces.append(rest[:cut].rstrip())
        rest = rest[cut:].lstrip()
    if rest:
        pieces.append(rest)
    return pieces


def _split_by_lines(content: str, hard_max: int) -> List[str]:
    chunks: List[str] = []
    current = ""
    current_tokens = 0

    for line in content.split("\n"):
        line_tokens = estimate_tokens(f"{line}\n")

        if line_tokens > hard_max:
            if current.strip():
                chunks.append(current.strip())
            chunks.extend(_split_long_line(line, hard_max * CHARS_PER_TOKEN))
            current = ""
            current_tokens = 0
        elif current_tokens + line_tokens > hard_max and current:
            chunks.append(current.strip())
            current = line
            current_tokens = line_tokens
        else:
            current += ("\n" if current else "") + line
            current_tokens += line_tokens

    if current.strip():
        chunks.append(current.strip())
    return chunks


def split_oversized_content(content: str, hard_max: int = 1200) -> List[str]:
    """Split content above ``hard_max`` at code fences, falling back to lines."""
    if estimate_tokens(content) <= hard_max:
        return [content]

    parts: List[str] = []
    last_index = 0
    for match in iter_code_blocks(content):
        before = content[last_index : match.start()].strip()
        if before:
            parts.append(before)
        parts.append(match.group(0))
        last_index = match.end()
    after = content[last_index:].strip()
    if after:
        parts.append(after)

    if len(parts) > 1:
        return [piece for part in parts for piece in split_oversized_content(part, hard_max)]

    return _split_by_lines(content, hard_max)


def split_at_paragraphs(content: str, target_max: int = 800, hard_max: int = 1200) -> List[str]:
    """Pack paragraphs greedily into pieces of at most ``target_max`` tokens."""
    pieces: List[str] = []
    current = ""
    current_tokens = 0

    for paragraph in _PARAGRAPH_BREAK_RE.split(content):
        paragraph_tokens = estimate_tokens(paragraph)

        if paragraph_tokens > hard_max:
            if current:
                pieces.append(current)
                current = ""
                current_tokens = 0
            pieces.extend(split_oversized_content(paragraph, hard_max))
            continue

        if current_tokens + paragraph_tokens > target_max and current:
            pieces.append(current)
            current = paragraph
            current_tokens = paragraph_tokens
        else:
            current += ("\n\n" if current else "") + paragraph
            current_tokens += paragraph_tokens

    if current:
        pieces.append(current)
    return pieces


def _make_section(doc_path: str, doc_title: str, section_title: str, content: str) -> Section:
    return Section(
        doc_path=doc_path,
        doc_title=doc_title,
        section_title=section_title,
        content=content,
        tokens=estimate_tokens(content),
        has_code=has_code_block(content),
    )


def build_sections(
    doc_path: str,
    doc_title: str,
    section_title: str,
    content: str,
    config: ChunkingConfig | None = None,
) -> List[Section]:
    """Turn the raw content under one heading into bounded sections."""
    config = config or ChunkingConfig()
    cleaned = clean_mdx_content(content)
    if not cleaned or is_table_of_contents(section_title, cleaned, config.toc_link_ratio):
        return []

    tokens = estimate_tokens(cleaned)
    if tokens <= config.target_max_tokens:
        if tokens < config.min_tokens:
            return []
        return [_make_section(doc_path, doc_title, section_title, cleaned)]

    sections: List[Section] = []
    for piece in split_at_paragraphs(cleaned, config.target_max_tokens, config.hard_max_tokens):
        for part in split_oversized_content(piece, config.hard_max_tokens):
            part_content = clean_mdx_content(part)
            if not part_content or estimate_tokens(part_content) < config.min_tokens:
                continue
            part_num = len(sections) + 1
            title = f"{section_title} (part {part_num})" if part_num > 1 else section_title
            sections.append(_make_section(doc_path, doc_title, title, part_content))
    return sections


def title_from_path(path: str) -> str:
    name = PurePosixPath(path.replace("\\", "/")).name
    return re.sub(r"\.mdx?$", "", name) or UNTITLED


def parse_markdown(source: str, path: str, *, config: ChunkingConfig | None = None) -> ParsedDocument:
    """Parse one markdown/MDX document into sections.

    Raises ``ParseFailure`` for input that is not text.
    """
    if "\x00" in source:
        raise ParseFailure(path, "binary content")

    config = config or ChunkingConfig()
    text = source.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    frontmatter, body = split_frontmatter(text)
    doc_title = frontmatter.title or title_from_path(path)

    sections: List[Section] = []
    current_title: str | None = None
    current_blocks: List[str] = []

    def close_section() -> None:
        if current_title is not None and current_blocks:
            sections.extend(
                build_sections(path, doc_title, current_title, "\n".join(current_blocks), config)
            )

    for block in iter_blocks(body):
        if block.kind == "heading" and block.level == 2:
            close_section()
            current_title = block.title or doc_title
            current_blocks = []
        elif block.kind == "heading" and block.level == 1:
            continue
        else:
            if current_title is None:
                current_title = INTRODUCTION_TITLE
            current_blocks.append(block.raw)

    close_section()

    LOGGER.debug("Parsed %s into %d sections", path, len(sections))
    return ParsedDocument(path=path, frontmatter=frontmatter, sections=sections)
