"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

PACKAGES_DIR_ENV_VAR = "DOCCONTEXT_PACKAGES_DIR"


def _get_default_packages_dir() -> Path:
    """Get the default package directory, honouring ``DOCCONTEXT_PACKAGES_DIR``."""
    configured = os.environ.get(PACKAGES_DIR_ENV_VAR)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".doccontext" / "packages"


@dataclass(slots=True)
class ChunkingConfig:
    """Size limits applied while splitting documents into sections."""

    min_tokens: int = 5
    target_max_tokens: int = 800
    hard_max_tokens: int = 1200
    # Sections where link markup covers more than this share are dropped as TOCs
    toc_link_ratio: float = 0.5

    def __post_init__(self) -> None:
        if not 0 < self.min_tokens <= self.target_max_tokens <= self.hard_max_tokens:
            raise ValueError(
                "Expected 0 < min_tokens <= target_max_tokens <= hard_max_tokens"
            )


@dataclass(slots=True)
class RetrievalConfig:
    """Knobs for turning ranked matches into the final snippet list."""

    max_tokens: int = 2000
    relevance_drop: float = 0.5
    match_limit: int = 20
    doc_title_weight: float = 5.0
    section_title_weight: float = 10.0
    content_weight: float = 1.0


@dataclass(slots=True)
class AppConfig:
    packages_dir: Path | None = None
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)

    def __post_init__(self) -> None:
        if self.packages_dir is None:
            self.packages_dir = _get_default_packages_dir()

    def resolve_packages_dir(self, base_dir: Path | None = None) -> Path:
        if self.packages_dir is None:
            self.packages_dir = _get_default_packages_dir()
        packages_dir = Path(self.packages_dir).expanduser()
        if packages_dir.is_absolute() or base_dir is None:
            return packages_dir
        return base_dir / packages_dir
