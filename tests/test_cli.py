"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from doccontext.cli import _default_package_name, _format_bytes, _setup_logging, app
from doccontext.errors import IndexUnavailable
from doccontext.index.builder import build_package
from doccontext.index.registry import package_filename
from doccontext.index.storage import PackageDatabase
from doccontext.models import Document, PackageMeta

runner = CliRunner()

ROUTING_DOC = """---
title: Routing
---

## Middleware

Middleware runs before a request is completed and can rewrite the response.

## Redirects

Redirects send the visitor to a different path.
"""


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A project checkout with its docs in a docs/ folder."""
    root = tmp_path / "My_Repo"
    (root / "docs" / "guide").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "docs" / "guide" / "routing.md").write_text(ROUTING_DOC)
    (root / "src" / "notes.md").write_text("## Internal\n\nNot part of the published docs.")
    return root


@pytest.fixture
def packages_dir(tmp_path: Path) -> Path:
    return tmp_path / "packages"


def _install(packages_dir: Path, name: str = "next", version: str = "15.0") -> Path:
    path = packages_dir / package_filename(name, version)
    build_package(path, [Document(path="docs/routing.md", raw_text=ROUTING_DOC)], PackageMeta(name=name, version=version))
    return path


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("doccontext.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("doccontext.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestHelpers:
    """Tests for formatting helpers."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [(512, "512 B"), (2048, "2.0 KB"), (3 * 1024 * 1024, "3.0 MB")],
    )
    def test_format_bytes(self, size: int, expected: str) -> None:
        """Should pick B, KB or MB by size."""
        assert _format_bytes(size) == expected

    def test_default_package_name(self) -> None:
        """Should lowercase the directory name and replace other characters with dashes."""
        assert _default_package_name(Path("/src/My_Repo.js")) == "my-repo-js"


class TestAddCommand:
    """Tests for the add command."""

    def test_add_directory_detects_docs(self, repo: Path, packages_dir: Path) -> None:
        """Should build from the docs folder and prefix document paths with it."""
        result = runner.invoke(app, ["add", str(repo), "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0, result.output
        assert "Found docs at docs" in result.output
        assert "Installed: my-repo@latest" in result.output
        package = packages_dir / "my-repo@latest.db"
        with PackageDatabase.open(package) as store:
            paths = {c.doc_path for c in store.match("middleware OR internal")}
        assert paths == {"docs/guide/routing.md"}

    def test_add_with_name_version_and_path(self, repo: Path, packages_dir: Path) -> None:
        """Should honour --name, --pkg-version and --path."""
        result = runner.invoke(
            app,
            [
                "add",
                str(repo),
                "--name",
                "next",
                "--pkg-version",
                "15.0",
                "--path",
                "src",
                "--packages-dir",
                str(packages_dir),
            ],
        )

        assert result.exit_code == 0, result.output
        with PackageDatabase.open(packages_dir / "next@15.0.db") as store:
            assert [c.doc_path for c in store.match("internal")] == ["src/notes.md"]

    def test_add_warns_on_small_package(self, repo: Path, packages_dir: Path) -> None:
        """Should warn when fewer sections than the threshold were built."""
        result = runner.invoke(app, ["add", str(repo), "--packages-dir", str(packages_dir)])

        assert "Warning: only 2 sections found" in result.output

    def test_add_directory_without_markdown(self, tmp_path: Path, packages_dir: Path) -> None:
        """Should exit with an error when there is nothing to index."""
        empty = tmp_path / "empty"
        empty.mkdir()

        result = runner.invoke(app, ["add", str(empty), "--packages-dir", str(packages_dir)])

        assert result.exit_code == 1
        assert "No markdown files found" in result.output

    def test_add_missing_docs_path(self, repo: Path, packages_dir: Path) -> None:
        """Should reject a --path that does not exist."""
        result = runner.invoke(app, ["add", str(repo), "--path", "nope", "--packages-dir", str(packages_dir)])

        assert result.exit_code != 0

    def test_add_package_file(self, tmp_path: Path, packages_dir: Path) -> None:
        """Should copy a package file into the packages directory."""
        source = _install(tmp_path / "downloads")

        result = runner.invoke(app, ["add", str(source), "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0, result.output
        assert (packages_dir / "next@15.0.db").exists()
        assert "Installed: next@15.0" in result.output

    def test_add_invalid_package_file(self, tmp_path: Path, packages_dir: Path) -> None:
        """Should reject a .db file that is not a package."""
        source = tmp_path / "bad.db"
        source.write_bytes(b"not a database" * 100)

        result = runner.invoke(app, ["add", str(source), "--packages-dir", str(packages_dir)])

        assert result.exit_code != 0
        assert not packages_dir.exists() or not any(packages_dir.iterdir())

    def test_add_missing_source(self, tmp_path: Path, packages_dir: Path) -> None:
        """Should reject a source that is neither a file nor a directory."""
        result = runner.invoke(app, ["add", str(tmp_path / "missing"), "--packages-dir", str(packages_dir)])

        assert result.exit_code != 0


class TestListCommand:
    """Tests for the list command."""

    def test_list_empty(self, packages_dir: Path) -> None:
        """Should hint at the add command when nothing is installed."""
        result = runner.invoke(app, ["list", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0
        assert "No packages installed" in result.output

    def test_list_packages(self, packages_dir: Path) -> None:
        """Should show every installed package and a total."""
        _install(packages_dir)
        _install(packages_dir, "react", "18")

        result = runner.invoke(app, ["list", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0
        assert "next@15.0" in result.output
        assert "react@18" in result.output
        assert "Total: 2 packages" in result.output


class TestRemoveCommand:
    """Tests for the remove command."""

    def test_remove_package(self, packages_dir: Path) -> None:
        """Should delete the package file."""
        path = _install(packages_dir)

        result = runner.invoke(app, ["remove", "next@15.0", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0
        assert "Removed: next@15.0" in result.output
        assert not path.exists()

    def test_remove_unknown(self, packages_dir: Path) -> None:
        """Should exit with an error for an unknown package."""
        result = runner.invoke(app, ["remove", "next", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 1
        assert "Package not found" in result.output

    def test_remove_keeps_other_versions(self, packages_dir: Path) -> None:
        """Should delete only the named version when several are installed."""
        older = _install(packages_dir, "next", "14.0")
        newer = _install(packages_dir, "next", "15.0")

        result = runner.invoke(app, ["remove", "next@14.0", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0
        assert "Removed: next@14.0" in result.output
        assert not older.exists()
        assert newer.exists()

    def test_remove_bare_name_with_several_versions(self, packages_dir: Path) -> None:
        """Should refuse to guess a version and keep every file."""
        older = _install(packages_dir, "next", "14.0")
        newer = _install(packages_dir, "next", "15.0")

        result = runner.invoke(app, ["remove", "next", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 1
        assert "Several versions of next" in result.output
        assert older.exists()
        assert newer.exists()


class TestQueryCommand:
    """Tests for the query command."""

    def test_query_returns_json(self, packages_dir: Path) -> None:
        """Should print the search response as JSON."""
        _install(packages_dir)

        result = runner.invoke(app, ["query", "next@15.0", "middleware", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["library"] == "next@15.0"
        assert payload["results"][0]["title"] == "Routing > Middleware"
        assert payload["results"][0]["source"] == "docs/routing.md"

    def test_query_no_results(self, packages_dir: Path) -> None:
        """Should include the no-results message."""
        _install(packages_dir)

        result = runner.invoke(app, ["query", "next", "kubernetes", "--packages-dir", str(packages_dir)])

        payload = json.loads(result.stdout)
        assert payload["results"] == []
        assert "No documentation found" in payload["message"]

    def test_query_unknown_package(self, packages_dir: Path) -> None:
        """Should list the available packages when the library is unknown."""
        _install(packages_dir)

        result = runner.invoke(app, ["query", "vue@3", "router", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 1
        assert "Available packages: next@15.0" in result.output

    def test_query_named_version(self, packages_dir: Path) -> None:
        """Should search the requested version when several are installed."""
        _install(packages_dir, "next", "14.0")
        _install(packages_dir, "next", "15.0")

        result = runner.invoke(app, ["query", "next@14.0", "middleware", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["library"] == "next@14.0"

    def test_query_search_failure(self, packages_dir: Path) -> None:
        """Should report an unusable index and exit with an error."""
        _install(packages_dir)

        with patch("doccontext.cli.search_package", side_effect=IndexUnavailable("database is closed")):
            result = runner.invoke(app, ["query", "next@15.0", "middleware", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 1
        assert "Search failed for next@15.0" in result.output
        assert isinstance(result.exception, SystemExit)

    def test_query_nothing_installed(self, packages_dir: Path) -> None:
        """Should say that no packages are installed."""
        result = runner.invoke(app, ["query", "vue@3", "router", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 1
        assert "No packages installed" in result.output


class TestServeCommand:
    """Tests for the serve command."""

    def test_serve_starts_uvicorn(self, packages_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should run the web app under uvicorn on the requested port."""
        monkeypatch.setenv("DOCCONTEXT_PACKAGES_DIR", "unused")
        _install(packages_dir)

        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--port", "9000", "--packages-dir", str(packages_dir)])

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once()
        assert mock_run.call_args[1]["port"] == 9000
        assert "next@15.0" in result.output
