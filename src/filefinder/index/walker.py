"""Recursive, cancellable filesystem traversal."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Set

from filefinder.models import Document

LOGGER = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]


def _never_cancelled() -> bool:
    return False


@dataclass(slots=True)
class WalkStats:
    visited: int = 0
    errors: int = 0
    cancelled: bool = False


class FilesystemWalker:
    """Depth-first walk yielding a :class:`Document` for every regular file.

    Symlinks are skipped unless ``follow_symlinks`` is set, in which case
    directory cycles are broken by remembering resolved directory paths.
    I/O errors on single files or directories are logged and skipped.
    """

    def __init__(self, *, follow_symlinks: bool = False) -> None:
        self.follow_symlinks = follow_symlinks

    def iter_documents(
        self,
        root: str | os.PathLike[str],
        *,
        is_cancelled: Optional[CancelCheck] = None,
        stats: Optional[WalkStats] = None,
    ) -> Iterator[Document]:
        is_cancelled = is_cancelled or _never_cancelled
        stats = stats if stats is not None else WalkStats()
        root_path = os.path.abspath(os.fspath(root))

        if not os.path.isdir(root_path):
            LOGGER.warning("Root directory not found: %s", root_path)
            stats.errors += 1
            return

        seen_dirs: Set[str] = {os.path.realpath(root_path)}
        pending = [root_path]
        while pending:
            if is_cancelled():
                stats.cancelled = True
                return
            directory = pending.pop()
            try:
                with os.scandir(directory) as iterator:
                    entries = sorted(iterator, key=lambda entry: entry.name)
            except OSError as exc:
                LOGGER.warning("Cannot list %s: %s", directory, exc)
                stats.errors += 1
                continue

            subdirs = []
            for entry in entries:
                if is_cancelled():
                    stats.cancelled = True
                    return
                try:
                    if entry.is_symlink() and not self.follow_symlinks:
                        continue
                    if entry.is_dir(follow_symlinks=self.follow_symlinks):
                        if self.follow_symlinks:
                            real = os.path.realpath(entry.path)
                            if real in seen_dirs:
                                LOGGER.debug("Skipping already visited directory %s", entry.path)
                                continue
                            seen_dirs.add(real)
                        subdirs.append(entry.path)
                        continue
                    if not entry.is_file(follow_symlinks=self.follow_symlinks):
                        continue
                    document = Document.from_path(
                        entry.path, entry.stat(follow_symlinks=self.follow_symlinks)
                    )
                except OSError as exc:
                    LOGGER.warning("Skipping %s: %s", entry.path, exc)
                    stats.errors += 1
                    continue

                stats.visited += 1
                yield document

            # Reversed so the stack pops subdirectories in name order
            pending.extend(reversed(subdirs))

    def walk(
        self,
        root: str | os.PathLike[str],
        visit: Callable[[Document], None],
        *,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> WalkStats:
        """Call ``visit`` for each file under ``root`` until done or cancelled."""
        stats = WalkStats()
        for document in self.iter_documents(root, is_cancelled=is_cancelled, stats=stats):
            visit(document)
        return stats
