"""Result delivery interfaces."""

from __future__ import annotations

import threading
from typing import List, Optional, Protocol, Set


class ResultSink(Protocol):
    """Receives matches from a search session.

    ``on_match`` is called once per confirmed path in discovery order.
    Exactly one of ``on_complete`` or ``on_failure`` ends the session.
    """

    def on_match(self, path: str) -> None: ...

    def on_complete(self) -> None: ...

    def on_failure(self, reason: str) -> None: ...


class DeliveredSet:
    """Paths already reported during one session."""

    def __init__(self) -> None:
        self._paths: Set[str] = set()
        self._lock = threading.Lock()

    def add(self, path: str) -> bool:
        """Record ``path``; returns False if it was already delivered."""
        with self._lock:
            if path in self._paths:
                return False
            self._paths.add(path)
            return True

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


class CollectingSink:
    """Sink that keeps every match in memory and signals when the session ends."""

    def __init__(self) -> None:
        self.matches: List[str] = []
        self.completed = False
        self.failure: Optional[str] = None
        self.finished = threading.Event()
        self._lock = threading.Lock()

    def on_match(self, path: str) -> None:
        with self._lock:
            self.matches.append(path)

    def on_complete(self) -> None:
        self.completed = True
        self.finished.set()

    def on_failure(self, reason: str) -> None:
        self.failure = reason
        self.finished.set()
