"""Per-key mutual exclusion for session and device read-modify-write."""
from collections.abc import Iterator
from contextlib import contextmanager
import threading


class KeyedLock:
    """Re-entrant locks created on demand per key and dropped once idle.

    Holders of different keys never block each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}  # key -> [RLock, holders]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


# Lock order: device before account, never the reverse.
account_locks = KeyedLock()
device_locks = KeyedLock()
