"""Text helpers: token estimation and markup cleanup."""

from __future__ import annotations

import math
import re

CHARS_PER_TOKEN = 4

_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
# Pseudo-components such as <AppOnly>, </Tabs> or <Callout type="info" />
_COMPONENT_TAG_RE = re.compile(r"</?[A-Z][A-Za-z0-9.]*(?:\s+[^<>]*?)?\s*/?>")
_EXCESS_BLANK_LINES_RE = re.compile(r"\n(?:[ \t]*\n){2,}")
_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]*)\]\([^)]+\)")


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def has_code_block(text: str) -> bool:
    return _CODE_FENCE_RE.search(text) is not None


def iter_code_blocks(text: str):
    """Yield regex matches for complete triple-backtick fences, in order."""
    return _CODE_FENCE_RE.finditer(text)


def clean_mdx_content(text: str) -> str:
    """Strip uppercase component tags and collapse the blank lines they leave."""
    cleaned = _COMPONENT_TAG_RE.sub("", text)
    cleaned = _EXCESS_BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def link_coverage(text: str) -> float:
    """Return the share of characters taken up by ``[text](target)`` links."""
    if not text:
        return 0.0
    linked = sum(len(match.group(0)) for match in _MARKDOWN_LINK_RE.finditer(text))
    return linked / len(text)


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs into single spaces and trim."""
    return re.sub(r"\s+", " ", text).strip()
