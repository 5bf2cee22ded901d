"""
Process-local named locks.

Entries are held weakly: a lock lives while some caller holds a reference
(a ``with`` block keeps one), then drops out of the registry.
"""

import threading
import weakref
from typing import Hashable, Tuple

_LOCKS: "weakref.WeakValueDictionary[Tuple[Hashable, ...], threading.Lock]" = weakref.WeakValueDictionary()
_LOCKS_GUARD = threading.Lock()


def _named_lock(key: Tuple[Hashable, ...]) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCKS[key] = lock
        return lock


def cohort_lock(tournament_id: int, round_number: int, phase: str) -> threading.Lock:
    return _named_lock(("cohort", tournament_id, round_number, phase))


def tournament_lock(tournament_id: int) -> threading.Lock:
    return _named_lock(("tournament", tournament_id))


def registered_locks() -> int:
    return len(_LOCKS)
