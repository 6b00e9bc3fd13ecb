from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    refs: int = 0


class KeyedLocks:
    """
    One mutex per key, created on demand and dropped when nobody holds or waits on it.

    Used to serialize acknowledgment rollups per (event, university) inside
    this process; the repository upsert stays atomic across processes.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, _Entry())
            entry.refs += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.refs -= 1
                if entry.refs == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
