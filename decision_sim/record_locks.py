# decision_sim/record_locks.py

import threading
from contextlib import contextmanager


class RecordLocks:
    """
    Process-local, per-simulation mutex registry.

    Every read-modify-write on one simulation (team turn, finish, analysis) runs
    under that simulation's lock; different simulations never wait on each other.
    An entry lives only while someone holds or waits on it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # record_id -> [lock, holders + waiters]
        self._locks: dict[str, list] = {}

    def _acquire_entry(self, record_id: str) -> threading.Lock:
        with self._lock:
            entry = self._locks.get(record_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[record_id] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, record_id: str) -> None:
        with self._lock:
            entry = self._locks[record_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[record_id]

    @contextmanager
    def hold(self, record_id: str):
        record_id = str(record_id)
        lock = self._acquire_entry(record_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(record_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._locks)
