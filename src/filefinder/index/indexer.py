"""Reindexing pass: walk a folder and upsert every file into the index."""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from typing import Callable, Optional

from filefinder.index.storage import SQLiteIndexStore
from filefinder.index.walker import CancelCheck, FilesystemWalker, WalkStats
from filefinder.models import Document

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    walk: WalkStats = field(default_factory=WalkStats)

    @property
    def cancelled(self) -> bool:
        return self.walk.cancelled

    def increment(self, status: str) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        else:
            self.failed += 1


class Indexer:
    """Coordinates the filesystem walk and index persistence."""

    def __init__(self, store: SQLiteIndexStore, walker: FilesystemWalker | None = None) -> None:
        self.store = store
        self.walker = walker or FilesystemWalker()

    def index(
        self,
        root: str | os.PathLike[str],
        *,
        is_cancelled: Optional[CancelCheck] = None,
        on_document: Optional[Callable[[Document], None]] = None,
    ) -> IndexStats:
        """Upsert every file under ``root`` in a single writer transaction.

        The writer is closed, committing whatever was upserted, whether the
        walk completes or is cancelled. ``on_document`` is called for every
        walked document, including those whose upsert failed.
        """
        stats = IndexStats()
        writer = self.store.writer()
        try:
            for document in self.walker.iter_documents(
                root, is_cancelled=is_cancelled, stats=stats.walk
            ):
                try:
                    status = writer.upsert(document)
                except (sqlite3.Error, ValueError) as exc:
                    # ValueError covers names sqlite cannot encode
                    LOGGER.error("Failed to index %r: %s", document.path, exc)
                    stats.increment("failed")
                else:
                    LOGGER.debug("%s %r", status, document.path)
                    stats.increment(status)
                if on_document is not None:
                    on_document(document)
        finally:
            writer.close()

        LOGGER.info(
            "Indexed %s: inserted=%d updated=%d failed=%d errors=%d%s",
            root,
            stats.inserted,
            stats.updated,
            stats.failed,
            stats.walk.errors,
            " (cancelled)" if stats.cancelled else "",
        )
        return stats
