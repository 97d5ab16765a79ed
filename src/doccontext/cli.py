"""Command line interface for doccontext."""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from doccontext.config import PACKAGES_DIR_ENV_VAR, AppConfig
from doccontext.errors import IndexUnavailable, PackageNotFound
from doccontext.index.builder import PackageBuilder
from doccontext.index.registry import PackageRegistry, package_filename, read_package_info
from doccontext.index.search import search_package
from doccontext.models import Document, PackageMeta
from doccontext.utils.files import detect_docs_folder, read_markdown_documents
from doccontext.web.app import app as web_app

console = Console()
app = typer.Typer(help="doccontext - local documentation search for AI agents")

LOW_DOCS_THRESHOLD = 50
DEFAULT_VERSION = "latest"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _resolve_packages_dir(packages_dir: Path | None) -> Path:
    config = AppConfig(packages_dir=packages_dir)
    return config.resolve_packages_dir(Path.cwd())


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _default_package_name(directory: Path) -> str:
    return re.sub(r"[^a-z0-9-]", "-", directory.name.lower())


def _install_package_file(source: Path, packages_dir: Path) -> None:
    try:
        info = read_package_info(source)
    except IndexUnavailable as exc:
        raise typer.BadParameter(str(exc)) from exc

    packages_dir.mkdir(parents=True, exist_ok=True)
    destination = packages_dir / package_filename(info.meta.name, info.meta.version)
    if source.resolve() != destination.resolve():
        shutil.copyfile(source, destination)
        console.print(f"Copied to [bold]{destination}[/bold]")

    console.print(
        f"Installed: {info.library} ({_format_bytes(info.size_bytes)}, {info.section_count} sections)"
    )


def _install_directory(
    source: Path,
    packages_dir: Path,
    *,
    name: str | None,
    version: str | None,
    docs_path: str | None,
) -> None:
    package_name = name or _default_package_name(source)
    package_version = version or DEFAULT_VERSION

    docs_dir = source / docs_path if docs_path else detect_docs_folder(source) or source
    if not docs_dir.is_dir():
        raise typer.BadParameter(f"Directory not found: {docs_dir}")
    if docs_dir != source:
        console.print(f"Found docs at [bold]{docs_dir.relative_to(source).as_posix()}[/bold]")

    documents = read_markdown_documents(docs_dir)
    if not documents:
        console.print("[red]No markdown files found. Use --path to point at the docs folder.[/red]")
        raise typer.Exit(code=1)

    if docs_dir != source:
        prefix = docs_dir.relative_to(source).as_posix()
        documents = [Document(path=f"{prefix}/{doc.path}", raw_text=doc.raw_text) for doc in documents]

    console.print(f"Building {package_name}@{package_version} from {len(documents)} markdown files...")
    meta = PackageMeta(name=package_name, version=package_version, source_url=str(source))
    output_path = packages_dir / package_filename(package_name, package_version)
    result = PackageBuilder(AppConfig(packages_dir=packages_dir)).build(output_path, documents, meta)

    console.print(
        f"Installed: {meta.library} ({_format_bytes(output_path.stat().st_size)}, "
        f"{result.section_count} sections, {result.total_tokens} tokens)"
    )
    if result.stats.failed:
        console.print(f"[yellow]Skipped {result.stats.failed} documents that failed to parse.[/yellow]")
    if result.section_count < LOW_DOCS_THRESHOLD:
        console.print(
            f"[yellow]Warning: only {result.section_count} sections found "
            f"(threshold: {LOW_DOCS_THRESHOLD}). The docs may live in a separate "
            "repository; try --path to pick a different folder.[/yellow]"
        )


@app.command()
def add(
    source: Path = typer.Argument(..., help="Package .db file or directory of markdown docs."),
    name: Optional[str] = typer.Option(None, "--name", help="Custom package name"),
    version: Optional[str] = typer.Option(None, "--pkg-version", help="Custom version label"),
    docs_path: Optional[str] = typer.Option(None, "--path", help="Docs folder inside the directory"),
    packages_dir: Path = typer.Option(None, "--packages-dir", help="Installed packages directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Install a documentation package from a package file or a local directory."""
    _setup_logging(verbose)
    resolved_dir = _resolve_packages_dir(packages_dir)

    if source.is_file() and source.suffix == ".db":
        _install_package_file(source, resolved_dir)
    elif source.is_dir():
        resolved_dir.mkdir(parents=True, exist_ok=True)
        _install_directory(source, resolved_dir, name=name, version=version, docs_path=docs_path)
    else:
        raise typer.BadParameter(f"Expected a package .db file or a directory: {source}")


@app.command("list")
def list_packages(
    packages_dir: Path = typer.Option(None, "--packages-dir", help="Installed packages directory"),
) -> None:
    """Show installed packages."""
    registry = PackageRegistry.from_directory(_resolve_packages_dir(packages_dir))
    packages = registry.list()
    if not packages:
        console.print("[yellow]No packages installed.[/yellow]")
        console.print("Run: doccontext add <package.db | docs directory>")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Package")
    table.add_column("Size", justify="right")
    table.add_column("Sections", justify="right")

    total_size = 0
    for info in packages:
        total_size += info.size_bytes
        table.add_row(info.library, _format_bytes(info.size_bytes), str(info.section_count))

    console.print(table)
    console.print(f"Total: {len(packages)} packages ({_format_bytes(total_size)})")


@app.command()
def remove(
    name: str = typer.Argument(..., help="Package name, e.g. 'next' or 'next@15.0'"),
    packages_dir: Path = typer.Option(None, "--packages-dir", help="Installed packages directory"),
) -> None:
    """Remove a documentation package."""
    registry = PackageRegistry.from_directory(_resolve_packages_dir(packages_dir))
    info = registry.remove(name)
    if info is None:
        versions = registry.versions(name)
        if len(versions) > 1:
            shown = ", ".join(candidate.library for candidate in versions)
            console.print(f"[red]Several versions of {name} are installed: {shown}[/red]")
            console.print("Pass the full name@version to remove one.")
        else:
            console.print(f"[red]Package not found: {name}[/red]")
        raise typer.Exit(code=1)

    console.print(f"Removed: {info.library}")


@app.command()
def query(
    library: str = typer.Argument(..., help="Package with version, e.g. nextjs@15.0"),
    topic: str = typer.Argument(..., help="What to look up, e.g. 'middleware authentication'"),
    packages_dir: Path = typer.Option(None, "--packages-dir", help="Installed packages directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Query documentation from an installed package."""
    _setup_logging(verbose)
    registry = PackageRegistry.from_directory(_resolve_packages_dir(packages_dir))

    try:
        store = registry.open(library)
    except PackageNotFound:
        available = [info.library for info in registry.list()]
        if not available:
            console.print("[red]No packages installed.[/red]")
        else:
            shown = ", ".join(available[:5])
            more = f", ... (+{len(available) - 5} more)" if len(available) > 5 else ""
            console.print(f"[red]Package not found: {library}[/red]")
            console.print(f"Available packages: {shown}{more}")
        raise typer.Exit(code=1)
    except IndexUnavailable as exc:
        console.print(f"[red]Failed to open package {library}: {exc}[/red]")
        raise typer.Exit(code=1)

    try:
        response = search_package(store, topic)
    except IndexUnavailable as exc:
        console.print(f"[red]Search failed for {library}: {exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        store.close()
    console.print_json(data=response.as_dict())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    packages_dir: Path = typer.Option(None, "--packages-dir", help="Installed packages directory"),
) -> None:
    """Start the HTTP search service."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    resolved_dir = _resolve_packages_dir(packages_dir)
    os.environ[PACKAGES_DIR_ENV_VAR] = str(resolved_dir)

    registry = PackageRegistry.from_directory(resolved_dir)
    names = ", ".join(info.library for info in registry.list()) or "none"
    console.print(f"Starting search service on http://{host}:{port} (packages: {names})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
