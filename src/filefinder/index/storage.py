"""SQLite-backed filename index."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, List

from filefinder.config import DEFAULT_TOP_K
from filefinder.models import Document, Query, SearchHit

LOGGER = logging.getLogger(__name__)

DB_FILENAME = "index.db"
BUSY_TIMEOUT_SECONDS = 30.0


class OpenMode(str, Enum):
    """How an index location is opened."""

    CREATE = "create"
    CREATE_OR_APPEND = "create_or_append"
    APPEND = "append"


class IndexOpenError(RuntimeError):
    """Raised when the index location cannot be opened or created."""


class IndexWriter:
    """Single write transaction against the index.

    Mutations become visible to new readers only once :meth:`close` commits.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._closed = False

    def __enter__(self) -> "IndexWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    @property
    def closed(self) -> bool:
        return self._closed

    def upsert(self, document: Document) -> str:
        """Insert or replace the record for ``document.path``.

        Returns ``"inserted"`` or ``"updated"``.
        """
        existing = self._conn.execute(
            "SELECT 1 FROM documents WHERE path = ?", (document.path,)
        ).fetchone()
        self._conn.execute(
            """
            INSERT INTO documents(path, filename, modified)
            VALUES (?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                filename = excluded.filename,
                modified = excluded.modified,
                indexed_at = CURRENT_TIMESTAMP
            """,
            (document.path, document.filename, document.modified),
        )
        return "updated" if existing else "inserted"

    def delete(self, path: str) -> int:
        """Remove every record for ``path``. Missing paths are not an error."""
        cursor = self._conn.execute("DELETE FROM documents WHERE path = ?", (path,))
        return cursor.rowcount

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.commit()
        finally:
            self._conn.close()

    def abort(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.rollback()
        finally:
            self._conn.close()


class IndexReader:
    """Read-only handle executing ranked searches."""

    def __init__(self, conn: sqlite3.Connection, *, top_k: int = DEFAULT_TOP_K) -> None:
        self._conn = conn
        self.top_k = top_k

    def __enter__(self) -> "IndexReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def search(self, query: Query, *, top_k: int | None = None) -> List[SearchHit]:
        """Return up to ``top_k`` hits matching the filename pattern under the target folder.

        Every hit scores the same; ties are ordered by insertion order.
        """
        if query.is_empty:
            return []

        limit = top_k if top_k is not None else self.top_k
        prefix = query.path_prefix
        # Bound to this query's pattern; re-registering replaces the previous one
        self._conn.create_function("filename_matches", 1, query.matches, deterministic=True)
        rows = self._conn.execute(
            """
            SELECT path, filename, modified
            FROM documents
            WHERE substr(path, 1, ?) = ? AND filename_matches(filename)
            ORDER BY id
            LIMIT ?
            """,
            (len(prefix), prefix, limit),
        ).fetchall()
        return [
            SearchHit(path=row["path"], filename=row["filename"], modified=row["modified"])
            for row in rows
        ]

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def close(self) -> None:
        self._conn.close()


class SQLiteIndexStore:
    """Persistent index of documents stored under a fixed directory."""

    def __init__(self, index_dir: Path, *, top_k: int = DEFAULT_TOP_K) -> None:
        self.index_dir = Path(index_dir)
        self.db_path = self.index_dir / DB_FILENAME
        self.top_k = top_k

    @classmethod
    def open(
        cls,
        index_dir: Path,
        *,
        mode: OpenMode = OpenMode.CREATE_OR_APPEND,
        top_k: int = DEFAULT_TOP_K,
    ) -> "SQLiteIndexStore":
        """Open or create the index at ``index_dir``.

        Raises:
            IndexOpenError: if the location cannot be created or read, or if
                ``mode`` is APPEND and no index exists yet.
        """
        store = cls(index_dir, top_k=top_k)
        store._initialize(OpenMode(mode))
        return store

    def _initialize(self, mode: OpenMode) -> None:
        if mode is OpenMode.APPEND and not self.db_path.exists():
            raise IndexOpenError(f"No index found at {self.index_dir}")
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IndexOpenError(f"Cannot create index directory {self.index_dir}: {exc}") from exc

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise IndexOpenError(f"Cannot open index at {self.db_path}: {exc}") from exc
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            self._ensure_schema(conn)
            if mode is OpenMode.CREATE:
                conn.execute("DELETE FROM documents")
                LOGGER.info("Cleared existing index at %s", self.db_path)
            conn.commit()
        except sqlite3.Error as exc:
            raise IndexOpenError(f"Cannot initialize index at {self.db_path}: {exc}") from exc
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY,
                path TEXT NOT NULL UNIQUE,
                filename TEXT NOT NULL,
                modified REAL NOT NULL,
                indexed_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.execute(
            """CREATE INDEX IF NOT EXISTS idx_documents_filename
                ON documents(filename)
            """
        )

    def writer(self) -> IndexWriter:
        return IndexWriter(self._connect())

    def reader(self) -> IndexReader:
        conn = self._connect()
        conn.execute("PRAGMA query_only=ON;")
        return IndexReader(conn, top_k=self.top_k)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def count(self) -> int:
        with self.reader() as reader:
            return reader.count()

    def list_documents(self) -> List[dict[str, Any]]:
        """List every indexed document, ordered by path."""
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT id, path, filename, modified, indexed_at FROM documents ORDER BY path"
            ).fetchall()
        return [dict(row) for row in rows]

    def get_stats(self) -> dict[str, Any]:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS document_count, MAX(indexed_at) AS last_indexed FROM documents"
            ).fetchone()
        return {
            "document_count": row["document_count"],
            "last_indexed": row["last_indexed"],
            "index_path": str(self.db_path),
        }

    def delete_document_by_path(self, path: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (path,))
        return cursor.rowcount > 0

    def remove_missing_files(self) -> int:
        """Remove documents whose files no longer exist."""
        with self.transaction() as conn:
            rows = conn.execute("SELECT id, path FROM documents").fetchall()
            missing = [row for row in rows if not Path(row["path"]).exists()]
            for row in missing:
                conn.execute("DELETE FROM documents WHERE id = ?", (row["id"],))
        return len(missing)
