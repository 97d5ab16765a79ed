"""Registry of installed documentation packages."""

from __future__ import annotations

import glob
import logging
from pathlib import Path
from typing import Dict, List

from doccontext.config import RetrievalConfig
from doccontext.errors import IndexUnavailable, PackageNotFound
from doccontext.index.storage import PackageDatabase
from doccontext.models import PackageInfo

LOGGER = logging.getLogger(__name__)

PACKAGE_SUFFIX = ".db"


def read_package_info(package_path: Path) -> PackageInfo:
    """Validate a package file and read its identity and size."""
    with PackageDatabase.open(package_path) as store:
        meta = store.read_meta()
        section_count = store.section_count()
    return PackageInfo(
        meta=meta,
        path=Path(package_path),
        size_bytes=Path(package_path).stat().st_size,
        section_count=section_count,
    )


def package_filename(name: str, version: str) -> str:
    return f"{name}@{version}{PACKAGE_SUFFIX}"


def find_package_file(packages_dir: Path, library: str) -> Path | None:
    """Locate the installed file for ``library`` without opening any package.

    ``name@version`` maps to exactly one file; a bare name picks the last
    installed version in sorted order.
    """
    if not library or "/" in library or "\\" in library:
        return None
    if library.find("@", 1) > 0:
        path = packages_dir / f"{library}{PACKAGE_SUFFIX}"
        return path if path.is_file() else None
    matches = sorted(
        packages_dir.glob(f"{glob.escape(library)}@*{PACKAGE_SUFFIX}"),
        key=lambda path: path.name[: -len(PACKAGE_SUFFIX)],
    )
    return matches[-1] if matches else None


class PackageRegistry:
    """In-memory view of the packages available for searching.

    Packages are keyed by library identity (``name@version``), so several
    versions of one library can be installed side by side.
    """

    def __init__(self, retrieval: RetrievalConfig | None = None) -> None:
        self.retrieval = retrieval or RetrievalConfig()
        self._packages: Dict[str, PackageInfo] = {}

    @classmethod
    def from_directory(cls, packages_dir: Path, retrieval: RetrievalConfig | None = None) -> "PackageRegistry":
        """Load every valid package file in ``packages_dir``; invalid ones are skipped."""
        registry = cls(retrieval)
        if not packages_dir.is_dir():
            return registry
        for path in sorted(packages_dir.glob(f"*{PACKAGE_SUFFIX}")):
            try:
                registry.add(read_package_info(path))
            except IndexUnavailable as exc:
                LOGGER.warning("Skipping invalid package %s: %s", path, exc)
        return registry

    def add(self, info: PackageInfo) -> None:
        if info.library in self._packages:
            LOGGER.warning(
                "Duplicate package %s at %s; keeping %s", info.library, info.path, self._packages[info.library].path
            )
            return
        self._packages[info.library] = info

    def list(self) -> List[PackageInfo]:
        return sorted(self._packages.values(), key=lambda info: (info.meta.name, info.meta.version))

    def versions(self, name: str) -> List[PackageInfo]:
        return [info for info in self.list() if info.meta.name == name]

    def get(self, library: str) -> PackageInfo | None:
        """Exact ``name@version`` lookup; a bare name only matches a sole installed version."""
        info = self._packages.get(library)
        if info is not None:
            return info
        candidates = self.versions(library)
        return candidates[0] if len(candidates) == 1 else None

    def remove(self, library: str) -> PackageInfo | None:
        """Uninstall ``library``: forget it and delete its package file."""
        info = self.get(library)
        if info is None:
            return None
        del self._packages[info.library]
        info.path.unlink(missing_ok=True)
        LOGGER.info("Removed %s (%s)", info.library, info.path)
        return info

    def resolve(self, library: str) -> PackageInfo:
        """Find a package by ``name@version``, or by bare name (last version wins)."""
        info = self._packages.get(library)
        if info is not None:
            return info
        candidates = self.versions(library)
        if candidates:
            return candidates[-1]
        raise PackageNotFound(library)

    def open(self, library: str) -> PackageDatabase:
        """Open the package for ``library`` read-only."""
        info = self.resolve(library)
        return PackageDatabase.open(info.path, retrieval=self.retrieval)
