"""Core FileFinder data models."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Document:
    """One indexed file, keyed by its absolute path."""

    path: str
    filename: str
    modified: float

    @classmethod
    def from_path(cls, path: str, stat: os.stat_result | None = None) -> "Document":
        absolute = os.path.abspath(path)
        if stat is None:
            stat = os.stat(absolute)
        return cls(path=absolute, filename=os.path.basename(absolute), modified=stat.st_mtime)


@dataclass(frozen=True, slots=True)
class Query:
    """Filename pattern scoped to a target folder.

    ``pattern`` is ``None`` only when the search string was empty, in which
    case the whole search is a no-op.
    """

    pattern: re.Pattern[str] | None
    target_folder: str

    @property
    def is_empty(self) -> bool:
        return self.pattern is None

    @property
    def path_prefix(self) -> str:
        """Target folder with a trailing separator, so sibling folders are excluded."""
        folder = self.target_folder
        if folder.endswith(os.sep):
            return folder
        return folder + os.sep

    def matches(self, filename: str) -> bool:
        if self.pattern is None:
            return False
        return self.pattern.fullmatch(filename) is not None


@dataclass(slots=True)
class SearchHit:
    """Ranked index hit."""

    path: str
    filename: str
    modified: float
    score: float = 1.0
