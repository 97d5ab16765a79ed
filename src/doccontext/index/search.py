"""Full-text search and result assembly.

Raw index matches go through a fixed pipeline: relevance cut-off relative to
the best score, a greedy token budget, grouping by document with adjacent
chunks merged back together, and finally deduplication of identical
snippets.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Dict, List, Protocol

from doccontext.config import RetrievalConfig
from doccontext.index.storage import PackageDatabase
from doccontext.models import QueryCandidate, SearchResponse, Snippet
from doccontext.utils.files import content_hash
from doccontext.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)

_QUERY_STRIP_RE = re.compile(r'[^\w\s"]')


class ChunkIndex(Protocol):
    """Anything that can rank chunks for a full-text query."""

    def match(self, query: str, *, limit: int | None = None) -> List[QueryCandidate]: ...


def sanitize_query(topic: str) -> str:
    """Reduce a free-text topic to words, whitespace and balanced double quotes."""
    query = normalize_whitespace(_QUERY_STRIP_RE.sub(" ", topic))
    if query.count('"') % 2:
        query = normalize_whitespace(query.replace('"', " "))
    return query


def filter_by_relevance(candidates: List[QueryCandidate], relevance_drop: float = 0.5) -> List[QueryCandidate]:
    """Keep candidates scoring at least ``relevance_drop`` times the best score."""
    if not candidates:
        return []
    top_score = candidates[0].score
    min_score = min(top_score, top_score * relevance_drop)
    return [candidate for candidate in candidates if candidate.score >= min_score]


def apply_token_budget(candidates: List[QueryCandidate], max_tokens: int = 2000) -> List[QueryCandidate]:
    """Take candidates in rank order until the next one would overflow the budget."""
    selected: List[QueryCandidate] = []
    total = 0
    for candidate in candidates:
        if total + candidate.tokens > max_tokens:
            break
        selected.append(candidate)
        total += candidate.tokens
    return selected


def group_by_document(candidates: List[QueryCandidate]) -> Dict[str, List[QueryCandidate]]:
    """Group by document path; groups keep rank order, members document order."""
    groups: Dict[str, List[QueryCandidate]] = {}
    for candidate in candidates:
        groups.setdefault(candidate.doc_path, []).append(candidate)
    for members in groups.values():
        members.sort(key=lambda candidate: candidate.chunk_id)
    return groups


def merge_adjacent(chunks: List[QueryCandidate]) -> List[QueryCandidate]:
    """Merge runs of consecutive chunk ids into single candidates."""
    if len(chunks) <= 1:
        return list(chunks)

    merged: List[QueryCandidate] = []
    current = replace(chunks[0])
    last_id = current.chunk_id
    for chunk in chunks[1:]:
        if chunk.chunk_id == last_id + 1:
            current.section_title = f"{current.section_title} / {chunk.section_title}"
            current.content = f"{current.content}\n\n{chunk.content}"
            current.tokens += chunk.tokens
        else:
            merged.append(current)
            current = replace(chunk)
        last_id = chunk.chunk_id
    merged.append(current)
    return merged


def assemble_snippets(candidates: List[QueryCandidate]) -> List[Snippet]:
    snippets: List[Snippet] = []
    for chunks in group_by_document(candidates).values():
        for chunk in merge_adjacent(chunks):
            snippets.append(
                Snippet(
                    title=f"{chunk.doc_title} > {chunk.section_title}",
                    content=chunk.content,
                    source_path=chunk.doc_path,
                )
            )
    return snippets


def deduplicate_snippets(snippets: List[Snippet]) -> List[Snippet]:
    """Drop snippets whose title and content were already emitted."""
    seen: set[str] = set()
    unique: List[Snippet] = []
    for snippet in snippets:
        key = content_hash(f"{snippet.title}\n{snippet.content}")
        if key in seen:
            continue
        seen.add(key)
        unique.append(snippet)
    return unique


class Searcher:
    """High-level API to query one package index."""

    def __init__(self, index: ChunkIndex, *, retrieval: RetrievalConfig | None = None) -> None:
        self.index = index
        self.retrieval = retrieval or RetrievalConfig()

    def search(self, topic: str) -> List[Snippet]:
        query = sanitize_query(topic)
        if not query:
            return []

        matches = self.index.match(query, limit=self.retrieval.match_limit)
        filtered = filter_by_relevance(matches, self.retrieval.relevance_drop)
        budgeted = apply_token_budget(filtered, self.retrieval.max_tokens)
        results = deduplicate_snippets(assemble_snippets(budgeted))
        LOGGER.debug(
            "Query %r: %d matches, %d relevant, %d within budget, %d snippets",
            query,
            len(matches),
            len(filtered),
            len(budgeted),
            len(results),
        )
        return results


def search_package(store: PackageDatabase, topic: str, *, retrieval: RetrievalConfig | None = None) -> SearchResponse:
    """Search one package and wrap the snippets with its library identity."""
    name = store.get_meta_value("name") or "unknown"
    version = store.get_meta_value("version") or "unknown"
    results = Searcher(store, retrieval=retrieval or store.retrieval).search(topic)
    return SearchResponse(library=f"{name}@{version}", version=version, results=results)
