"""Background search session.

A session queries the existing index, purges entries whose files have gone,
reindexes the target folder while streaming fresh matches, then queries and
purges once more. Results go to a :class:`~filefinder.search.sink.ResultSink`
as they are found, never twice for the same path.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, Optional

from filefinder.config import AppConfig
from filefinder.index.indexer import Indexer, IndexStats
from filefinder.index.reconcile import Reconciler, StaleSet
from filefinder.index.storage import IndexOpenError, SQLiteIndexStore
from filefinder.index.walker import FilesystemWalker
from filefinder.models import Document
from filefinder.search.query import QueryEngine, build_query
from filefinder.search.sink import DeliveredSet, ResultSink

LOGGER = logging.getLogger(__name__)

LOCK_POLL_SECONDS = 0.1

_LOCATION_LOCKS: Dict[str, threading.Lock] = {}
_LOCATION_LOCKS_GUARD = threading.Lock()


def _location_lock(index_dir: Path) -> threading.Lock:
    key = os.path.realpath(index_dir)
    with _LOCATION_LOCKS_GUARD:
        lock = _LOCATION_LOCKS.get(key)
        if lock is None:
            lock = _LOCATION_LOCKS[key] = threading.Lock()
        return lock


class SessionState(str, Enum):
    IDLE = "idle"
    QUERY_OLD = "query_old"
    RECONCILE_OLD = "reconcile_old"
    REINDEXING = "reindexing"
    QUERY_FRESH = "query_fresh"
    RECONCILE_FRESH = "reconcile_fresh"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(slots=True)
class SessionStats:
    matches: int = 0
    stale_removed: int = 0
    indexing: Optional[IndexStats] = None


class SearchTask:
    """One search session over ``target_folder`` for ``search_string``.

    Call :meth:`start` to run on a dedicated worker thread or :meth:`run` to
    run on the current one. :meth:`cancel` is cooperative: it stops the walk
    at the next file and skips the remaining phases, but pending stale
    entries are still purged and ``on_complete`` is still delivered.
    """

    def __init__(
        self,
        target_folder: str | os.PathLike[str],
        search_string: str | None,
        sink: ResultSink,
        *,
        config: AppConfig | None = None,
        store: SQLiteIndexStore | None = None,
        walker: FilesystemWalker | None = None,
        reconciler: Reconciler | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.query = build_query(
            target_folder, search_string, case_sensitive=self.config.case_sensitive
        )
        self.sink = sink
        self.stats = SessionStats()
        self._store = store
        self._walker = walker or FilesystemWalker(follow_symlinks=self.config.follow_symlinks)
        self._reconciler = reconciler or Reconciler()
        self._stale = StaleSet()
        self._delivered = DeliveredSet()
        self._cancel = threading.Event()
        self._finished = threading.Event()
        self._thread: threading.Thread | None = None
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def delivered(self) -> DeliveredSet:
        return self._delivered

    def start(self) -> "SearchTask":
        if self._thread is not None:
            raise RuntimeError("Search task already started")
        self._thread = threading.Thread(target=self.run, name="filefinder-search", daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        LOGGER.debug("Cancellation requested for search under %s", self.query.target_folder)
        self._cancel.set()

    def is_cancelled(self) -> bool:
        return self._cancel.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the session has ended; returns False on timeout."""
        return self._finished.wait(timeout)

    def run(self) -> SessionState:
        if self._state is not SessionState.IDLE:
            raise RuntimeError("Search task can only run once")

        if self.query.is_empty:
            LOGGER.debug("Empty search string, nothing to do")
            self._finish(SessionState.DONE)
            return self._state

        index_dir = self._index_dir()
        try:
            with self._exclusive(index_dir) as acquired:
                if not acquired:
                    terminal = SessionState.CANCELLED
                else:
                    terminal = self._run_phases(index_dir)
        except IndexOpenError as exc:
            LOGGER.error("Cannot open index: %s", exc)
            self._finish(SessionState.FAILED, failure=str(exc))
            return self._state
        except Exception as exc:
            LOGGER.exception("Search session failed: %s", exc)
            self._finish(SessionState.FAILED, failure=str(exc) or exc.__class__.__name__)
            return self._state

        self._finish(terminal)
        return self._state

    def _index_dir(self) -> Path:
        if self._store is not None:
            return self._store.index_dir
        return self.config.resolve_index_dir(Path.cwd())

    @contextmanager
    def _exclusive(self, index_dir: Path) -> Iterator[bool]:
        """Hold the per-location session lock, giving up if cancelled while waiting."""
        if not self.config.serialize_sessions:
            yield True
            return

        lock = _location_lock(index_dir)
        while not lock.acquire(timeout=LOCK_POLL_SECONDS):
            if self.is_cancelled():
                yield False
                return
        try:
            yield True
        finally:
            lock.release()

    def _open_store(self, index_dir: Path) -> SQLiteIndexStore:
        if self._store is None:
            self._store = SQLiteIndexStore.open(index_dir, top_k=self.config.top_k)
        return self._store

    def _run_phases(self, index_dir: Path) -> SessionState:
        if self.is_cancelled():
            return SessionState.CANCELLED

        store = self._open_store(index_dir)
        engine = QueryEngine(store, top_k=self.config.top_k)
        try:
            self._set_state(SessionState.QUERY_OLD)
            self._query_and_reconcile(engine)
            if self.is_cancelled():
                return SessionState.CANCELLED

            self._set_state(SessionState.RECONCILE_OLD)
            self._flush(store)
            if self.is_cancelled():
                return SessionState.CANCELLED

            self._set_state(SessionState.REINDEXING)
            self._reindex(store)
            if self.is_cancelled():
                return SessionState.CANCELLED

            self._set_state(SessionState.QUERY_FRESH)
            self._query_and_reconcile(engine)
            if self.is_cancelled():
                return SessionState.CANCELLED

            self._set_state(SessionState.RECONCILE_FRESH)
            self._flush(store)
            return SessionState.DONE
        finally:
            # Stale entries found before a cancellation are still purged
            self._flush(store)

    def _query_and_reconcile(self, engine: QueryEngine) -> None:
        hits = engine.execute(self.query)
        self._reconciler.reconcile(
            hits, self._stale, self._deliver, is_cancelled=self.is_cancelled
        )

    def _flush(self, store: SQLiteIndexStore) -> None:
        self.stats.stale_removed += self._reconciler.flush(store, self._stale)

    def _reindex(self, store: SQLiteIndexStore) -> None:
        def on_document(document: Document) -> None:
            if self.query.matches(document.filename):
                self._deliver(document.path)

        indexer = Indexer(store, self._walker)
        try:
            self.stats.indexing = indexer.index(
                self.query.target_folder,
                is_cancelled=self.is_cancelled,
                on_document=on_document,
            )
        except sqlite3.Error as exc:
            LOGGER.error("Reindexing %s failed: %s", self.query.target_folder, exc)

    def _deliver(self, path: str) -> None:
        if not self._delivered.add(path):
            return
        self.stats.matches += 1
        try:
            self.sink.on_match(path)
        except Exception:
            LOGGER.exception("Result sink rejected %s", path)

    def _set_state(self, state: SessionState) -> None:
        LOGGER.debug("Search session %s -> %s", self._state.value, state.value)
        self._state = state

    def _finish(self, state: SessionState, *, failure: str | None = None) -> None:
        self._set_state(state)
        try:
            if failure is not None:
                self.sink.on_failure(failure)
            else:
                self.sink.on_complete()
        except Exception:
            LOGGER.exception("Result sink failed to handle session end")
        finally:
            self._finished.set()
        LOGGER.info(
            "Search for %s under %s ended %s: %d matches, %d stale removed",
            self.query.pattern.pattern if self.query.pattern else "''",
            self.query.target_folder,
            state.value,
            self.stats.matches,
            self.stats.stale_removed,
        )
