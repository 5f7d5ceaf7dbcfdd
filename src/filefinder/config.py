"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TOP_K = 100
INDEX_DIR_ENV = "FILEFINDER_INDEX_DIR"


def _get_default_index_dir() -> Path:
    """Get the default index directory based on environment and execution context."""
    env_dir = os.environ.get(INDEX_DIR_ENV)
    if env_dir:
        return Path(env_dir)

    # When running from source, prefer local data/ if it exists
    local_dir = Path("data/index")
    if local_dir.exists():
        return local_dir

    return Path.home() / ".local" / "share" / "filefinder" / "index"


@dataclass(slots=True)
class AppConfig:
    index_dir: Path | None = None
    top_k: int = DEFAULT_TOP_K
    case_sensitive: bool = True
    follow_symlinks: bool = False
    serialize_sessions: bool = True

    def __post_init__(self) -> None:
        if self.index_dir is None:
            self.index_dir = _get_default_index_dir()
        if self.top_k < 1:
            raise ValueError(f"top_k must be positive, got {self.top_k}")

    def resolve_index_dir(self, base_dir: Path | None = None) -> Path:
        if self.index_dir is None:
            self.index_dir = _get_default_index_dir()
        if Path(self.index_dir).is_absolute() or base_dir is None:
            return Path(self.index_dir)
        return base_dir / self.index_dir
