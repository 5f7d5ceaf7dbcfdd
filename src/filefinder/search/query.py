"""Filename query construction and execution."""

from __future__ import annotations

import logging
import os
import sqlite3
from typing import List

from filefinder.config import DEFAULT_TOP_K
from filefinder.index.storage import SQLiteIndexStore
from filefinder.models import Query, SearchHit
from filefinder.search.pattern import compile_pattern

LOGGER = logging.getLogger(__name__)


def build_query(
    target_folder: str | os.PathLike[str],
    search_string: str | None,
    *,
    case_sensitive: bool = True,
) -> Query:
    return Query(
        pattern=compile_pattern(search_string, case_sensitive=case_sensitive),
        target_folder=os.path.abspath(os.fspath(target_folder)),
    )


class QueryEngine:
    """Runs ``filename MATCHES pattern AND path STARTS-WITH folder`` against the index."""

    def __init__(self, store: SQLiteIndexStore, *, top_k: int = DEFAULT_TOP_K) -> None:
        self.store = store
        self.top_k = top_k

    def execute(self, query: Query) -> List[SearchHit]:
        """Return up to ``top_k`` hits; errors are logged and yield no hits."""
        if query.is_empty:
            return []
        try:
            with self.store.reader() as reader:
                hits = reader.search(query, top_k=self.top_k)
        except (sqlite3.Error, OSError, ValueError) as exc:
            LOGGER.error("Query under %r failed: %s", query.target_folder, exc)
            return []
        LOGGER.debug("Query under %s returned %d hits", query.target_folder, len(hits))
        return hits
