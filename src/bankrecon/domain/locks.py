"""In-process per-account locks.

Imports, rollbacks and manual transaction changes on the same account must
not interleave: each renumbers sequences and cascades checkpoints across
the whole account.
"""

import threading

_ACCOUNT_LOCKS: dict[int, threading.Lock] = {}
_REGISTRY_LOCK = threading.Lock()


def account_lock(account_id: int) -> threading.Lock:
    """Return the lock serializing writes to one account."""
    with _REGISTRY_LOCK:
        lock = _ACCOUNT_LOCKS.get(account_id)
        if lock is None:
            lock = threading.Lock()
            _ACCOUNT_LOCKS[account_id] = lock
        return lock
