"""SQLite + FTS5 package database."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Sequence

from doccontext.config import RetrievalConfig
from doccontext.errors import IndexUnavailable
from doccontext.models import IndexedChunk, PackageMeta, QueryCandidate

LOGGER = logging.getLogger(__name__)

REQUIRED_TABLES = ("meta", "chunks", "chunks_fts")


class PackageDatabase:
    """One documentation package: metadata, chunks and their full-text index.

    Ranking uses weighted BM25 over ``doc_title``, ``section_title`` and
    ``content``; ``match`` returns candidates best-first with a positive
    score.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        readonly: bool = False,
        retrieval: RetrievalConfig | None = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.readonly = readonly
        self.retrieval = retrieval or RetrievalConfig()
        try:
            if readonly:
                if not Path(db_path).exists():
                    raise IndexUnavailable(f"Package not found at {db_path}")
                uri = f"{Path(db_path).resolve().as_uri()}?mode=ro"
                self._conn = sqlite3.connect(uri, uri=True)
            else:
                self._conn = sqlite3.connect(str(db_path))
        except sqlite3.Error as exc:
            raise IndexUnavailable(f"Unable to open package {db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def create(
        cls,
        db_path: Path | str,
        meta: PackageMeta,
        *,
        retrieval: RetrievalConfig | None = None,
    ) -> "PackageDatabase":
        """Create a fresh package file, replacing any existing one."""
        if str(db_path) != ":memory:":
            path = Path(db_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.unlink(missing_ok=True)
        store = cls(db_path, retrieval=retrieval)
        store._create_schema()
        store.set_meta(meta)
        return store

    @classmethod
    def open(cls, db_path: Path | str, *, retrieval: RetrievalConfig | None = None) -> "PackageDatabase":
        """Open an existing package read-only and validate its schema."""
        store = cls(db_path, readonly=True, retrieval=retrieval)
        try:
            store.validate_schema()
        except IndexUnavailable:
            store.close()
            raise
        return store

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "PackageDatabase":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _create_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute("CREATE TABLE meta (key TEXT PRIMARY KEY, value TEXT)")
            conn.execute(
                """
                CREATE TABLE chunks (
                    id INTEGER PRIMARY KEY,
                    doc_path TEXT NOT NULL,
                    doc_title TEXT NOT NULL,
                    section_title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    tokens INTEGER NOT NULL,
                    has_code INTEGER DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE VIRTUAL TABLE chunks_fts USING fts5(
                    doc_title, section_title, content,
                    content='chunks', content_rowid='id',
                    tokenize='porter unicode61'
                )
                """
            )

    def validate_schema(self) -> None:
        rows = self._execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        tables = {row["name"] for row in rows}
        for table in REQUIRED_TABLES:
            if table not in tables:
                raise IndexUnavailable(f"Invalid package: missing '{table}' table")

    def _execute(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.ProgrammingError as exc:
            raise IndexUnavailable(f"Package database is closed: {exc}") from exc
        except sqlite3.DatabaseError as exc:
            if isinstance(exc, sqlite3.OperationalError) and "fts5" in str(exc):
                raise
            raise IndexUnavailable(f"Package database unusable: {exc}") from exc

    def set_meta(self, meta: PackageMeta) -> None:
        values = {
            "name": meta.name,
            "version": meta.version,
            "description": meta.description,
            "source_url": meta.source_url,
        }
        with self.transaction() as conn:
            for key, value in values.items():
                if value:
                    conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))

    def get_meta_value(self, key: str) -> str | None:
        row = self._execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def read_meta(self) -> PackageMeta:
        values: Dict[str, str] = {
            row["key"]: row["value"] for row in self._execute("SELECT key, value FROM meta")
        }
        name = values.get("name")
        version = values.get("version")
        if not name or not version:
            raise IndexUnavailable("Invalid package: missing name or version in meta table")
        return PackageMeta(
            name=name,
            version=version,
            description=values.get("description"),
            source_url=values.get("source_url"),
        )

    def section_count(self) -> int:
        return int(self._execute("SELECT COUNT(*) AS count FROM chunks").fetchone()["count"])

    def insert_chunks(self, chunks: Sequence[IndexedChunk]) -> None:
        """Insert chunks with their build-assigned ids and rebuild the FTS index."""
        with self.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO chunks (id, doc_path, doc_title, section_title, content, tokens, has_code)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chunk.id,
                        chunk.section.doc_path,
                        chunk.section.doc_title,
                        chunk.section.section_title,
                        chunk.section.content,
                        chunk.section.tokens,
                        1 if chunk.section.has_code else 0,
                    )
                    for chunk in chunks
                ],
            )
            conn.execute("INSERT INTO chunks_fts(chunks_fts) VALUES('rebuild')")

    def match(self, query: str, *, limit: int | None = None) -> List[QueryCandidate]:
        """Run an FTS5 query and return candidates ranked best-first."""
        weights = self.retrieval
        limit = limit if limit is not None else weights.match_limit
        sql = """
            SELECT
                c.id AS id,
                c.doc_path AS doc_path,
                c.doc_title AS doc_title,
                c.section_title AS section_title,
                c.content AS content,
                c.tokens AS tokens,
                (bm25(chunks_fts, ?, ?, ?) * -1) AS score
            FROM chunks_fts
            JOIN chunks c ON chunks_fts.rowid = c.id
            WHERE chunks_fts MATCH ?
            ORDER BY score DESC
            LIMIT ?
        """
        params = (
            weights.doc_title_weight,
            weights.section_title_weight,
            weights.content_weight,
            query,
            limit,
        )
        try:
            rows = self._execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            # Stray FTS5 operators such as a lone "NOT" make the query invalid
            LOGGER.warning("Full-text query %r rejected: %s", query, exc)
            return []
        return [
            QueryCandidate(
                chunk_id=row["id"],
                doc_path=row["doc_path"],
                doc_title=row["doc_title"],
                section_title=row["section_title"],
                content=row["content"],
                tokens=row["tokens"],
                score=float(row["score"]),
            )
            for row in rows
        ]
