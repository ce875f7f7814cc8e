"""Concurrent write-once membership store for claimed identity keys."""

from __future__ import annotations

import threading
from typing import Iterator, Set

from .models import IdentityKey


class VisitedSet:
    """Set of claimed keys with an atomic check-and-insert.

    The lock only guards the insert itself, so callers on any thread or
    event-loop task can claim concurrently. The set never shrinks.
    """

    def __init__(self) -> None:
        self._keys: Set[IdentityKey] = set()
        self._lock = threading.Lock()

    def claim(self, key: IdentityKey) -> bool:
        """Insert ``key`` if absent.

        Returns:
            True iff this call inserted the key (the caller owns the work).
        """
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def contains(self, key: IdentityKey) -> bool:
        """Membership read for pre-filtering; ownership is decided by claim()."""
        return key in self._keys

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[IdentityKey]:
        with self._lock:
            snapshot = list(self._keys)
        return iter(snapshot)
