"""Separate live index hits from stale ones and purge the stale records."""

from __future__ import annotations

import logging
import os
import sqlite3
from typing import Callable, Dict, Iterable, Iterator, Optional

from filefinder.index.storage import SQLiteIndexStore
from filefinder.index.walker import CancelCheck
from filefinder.models import SearchHit

LOGGER = logging.getLogger(__name__)


class StaleSet:
    """Paths whose backing file has disappeared, in discovery order."""

    def __init__(self) -> None:
        self._paths: Dict[str, None] = {}

    def add(self, path: str) -> None:
        self._paths[path] = None

    def clear(self) -> None:
        self._paths.clear()

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._paths))

    def __len__(self) -> int:
        return len(self._paths)


class Reconciler:
    """Checks index hits against the live filesystem."""

    def __init__(self, exists: Callable[[str], bool] = os.path.exists) -> None:
        self.exists = exists

    def reconcile(
        self,
        hits: Iterable[SearchHit],
        stale: StaleSet,
        on_confirmed: Callable[[str], None],
        *,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> int:
        """Report hits whose file exists and collect the rest into ``stale``.

        Returns the number of confirmed hits.
        """
        confirmed = 0
        for hit in hits:
            if is_cancelled is not None and is_cancelled():
                break
            if self.exists(hit.path):
                confirmed += 1
                on_confirmed(hit.path)
            else:
                LOGGER.debug("Stale index entry: %s", hit.path)
                stale.add(hit.path)
        return confirmed

    def flush(self, store: SQLiteIndexStore, stale: StaleSet) -> int:
        """Delete every stale path in one writer transaction, then clear ``stale``.

        Failures are logged; the set is cleared regardless so the next
        session starts from a clean slate.
        """
        if not stale:
            return 0

        removed = 0
        try:
            writer = store.writer()
        except sqlite3.Error as exc:
            LOGGER.error("Cannot open index writer to purge %d stale entries: %s", len(stale), exc)
            stale.clear()
            return 0

        try:
            for path in stale:
                try:
                    removed += writer.delete(path)
                except sqlite3.Error as exc:
                    LOGGER.error("Failed to remove %s from index: %s", path, exc)
            writer.close()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to commit stale entry removal: %s", exc)
            removed = 0
        finally:
            writer.abort()
            stale.clear()

        if removed:
            LOGGER.info("Removed %d stale entries from index", removed)
        return removed
