"""Per-ticket critical sections.

Inbound and outbound sync both read-modify-write the same document and the
same remote record, so every operation on a ticket id runs under that id's
lock.  Operations on different ids never contend.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class TicketLocks:
    """Lazily created ``threading.Lock`` per ticket id.

    Locks are never evicted: the registry holds one entry for every id seen
    since startup, which stays small at ticket-count scale.  Evicting would
    need reference counting so a waiter never ends up on a discarded lock.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, ticket_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(ticket_id)
            if lock is None:
                lock = self._locks[ticket_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, *ticket_ids: str) -> Iterator[None]:
        """Hold the locks of every id given.

        Locks are taken in sorted order so two callers holding overlapping
        id sets cannot deadlock.
        """
        locks = [self._lock_for(tid) for tid in sorted(set(ticket_ids))]
        acquired: list[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def is_held(self, ticket_id: str) -> bool:
        return self._lock_for(ticket_id).locked()
