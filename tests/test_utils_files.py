"""Tests for file utility functions."""

from __future__ import annotations

from pathlib import Path

from doccontext.utils.files import (
    content_hash,
    detect_docs_folder,
    iter_markdown_paths,
    read_markdown_documents,
)


class TestContentHash:
    """Test content_hash function."""

    def test_short_hex_digest(self) -> None:
        """Should return the first 16 hex characters of the MD5 digest."""
        digest = content_hash("hello")

        assert len(digest) == 16
        assert digest == "5d41402abc4b2a76"

    def test_identical_content_same_hash(self) -> None:
        assert content_hash("same text") == content_hash("same text")

    def test_different_content_different_hash(self) -> None:
        assert content_hash("one") != content_hash("two")


class TestIterMarkdownPaths:
    """Test iter_markdown_paths function."""

    def test_single_markdown_file(self, tmp_path: Path) -> None:
        """Should yield a markdown file passed directly."""
        doc = tmp_path / "guide.md"
        doc.write_text("# Guide")

        assert list(iter_markdown_paths([doc])) == [doc]

    def test_md_and_mdx_only(self, tmp_path: Path) -> None:
        """Should ignore files that are not markdown."""
        (tmp_path / "a.md").write_text("a")
        (tmp_path / "b.mdx").write_text("b")
        (tmp_path / "c.txt").write_text("c")

        names = [path.name for path in iter_markdown_paths([tmp_path])]

        assert names == ["a.md", "b.mdx"]

    def test_sorted_nested_order(self, tmp_path: Path) -> None:
        """Should walk directories in sorted order."""
        (tmp_path / "b").mkdir()
        (tmp_path / "a").mkdir()
        (tmp_path / "b" / "z.md").write_text("z")
        (tmp_path / "a" / "y.md").write_text("y")
        (tmp_path / "root.md").write_text("root")

        relative = [p.relative_to(tmp_path).as_posix() for p in iter_markdown_paths([tmp_path])]

        assert relative == ["a/y.md", "b/z.md", "root.md"]

    def test_skips_ignored_directories_and_files(self, tmp_path: Path) -> None:
        """Should skip tests, node_modules, hidden entries and repo boilerplate."""
        for folder in ("tests", "node_modules", ".hidden"):
            (tmp_path / folder).mkdir()
            (tmp_path / folder / "doc.md").write_text("x")
        (tmp_path / "CHANGELOG.md").write_text("changes")
        (tmp_path / "button.test.md").write_text("fixture")
        (tmp_path / "guide.md").write_text("guide")

        names = [path.name for path in iter_markdown_paths([tmp_path])]

        assert names == ["guide.md"]


class TestDetectDocsFolder:
    """Test detect_docs_folder function."""

    def test_finds_docs_folder(self, tmp_path: Path) -> None:
        """Should find a docs folder regardless of case."""
        (tmp_path / "src").mkdir()
        (tmp_path / "Docs").mkdir()

        assert detect_docs_folder(tmp_path) == tmp_path / "Docs"

    def test_prefers_docs_over_doc(self, tmp_path: Path) -> None:
        """Should prefer docs over doc."""
        (tmp_path / "doc").mkdir()
        (tmp_path / "docs").mkdir()

        assert detect_docs_folder(tmp_path) == tmp_path / "docs"

    def test_no_docs_folder(self, tmp_path: Path) -> None:
        """Should return None without a docs folder."""
        (tmp_path / "src").mkdir()

        assert detect_docs_folder(tmp_path) is None


class TestReadMarkdownDocuments:
    """Test read_markdown_documents function."""

    def test_relative_posix_paths(self, tmp_path: Path) -> None:
        """Should store paths relative to the root with forward slashes."""
        (tmp_path / "api").mkdir()
        (tmp_path / "api" / "reference.md").write_text("## Ref\n\nReference docs.")

        documents = read_markdown_documents(tmp_path)

        assert [doc.path for doc in documents] == ["api/reference.md"]
        assert documents[0].raw_text.startswith("## Ref")

    def test_skips_duplicate_files(self, tmp_path: Path) -> None:
        """Should keep only the first file with a given content."""
        (tmp_path / "a.md").write_text("same content")
        (tmp_path / "b.md").write_text("same content")

        documents = read_markdown_documents(tmp_path)

        assert [doc.path for doc in documents] == ["a.md"]

    def test_skips_non_utf8_files(self, tmp_path: Path) -> None:
        """Should skip files that are not valid UTF-8."""
        (tmp_path / "bad.md").write_bytes(b"\xff\xfe\xfa")
        (tmp_path / "good.md").write_text("fine")

        documents = read_markdown_documents(tmp_path)

        assert [doc.path for doc in documents] == ["good.md"]
