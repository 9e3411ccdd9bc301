"""
KeyedLockRegistry -- in-process exclusive locks keyed by entity.

Responsibility:
    Serializes state-mutating operations per entity (``request:<id>``,
    ``asset:<id>``) and globally for gate-pass minting (``gate-pass:mint``).

Architecture position:
    Kernel > Services -- used only by CustodyOrchestrator, which acquires
    every key it needs BEFORE opening a database transaction.

Invariants enforced:
    - Keys are acquired in sorted order, so two callers needing
      overlapping key sets cannot deadlock.
    - No acquisition blocks indefinitely: each waits at most
      ``timeout_seconds`` and then raises LockTimeoutError, releasing
      whatever it already held.

Non-goals:
    - Cross-process exclusion.  The database (``BEGIN IMMEDIATE`` on
      SQLite, ``SELECT ... FOR UPDATE`` on PostgreSQL) covers that.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from custody_kernel.exceptions import LockTimeoutError
from custody_kernel.logging_config import get_logger

logger = get_logger("services.locks")

MINT_LOCK_KEY = "gate-pass:mint"


def request_key(request_id: str) -> str:
    return f"request:{request_id}"


def asset_key(asset_id: str) -> str:
    return f"asset:{asset_id}"


class KeyedLockRegistry:
    """Hands out one ``threading.Lock`` per key, created on first use."""

    def __init__(self, timeout_seconds: float = 10.0):
        self._timeout_seconds = timeout_seconds
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: str, timeout: float | None = None) -> Iterator[None]:
        """
        Hold every lock in ``keys`` for the duration of the block.

        Raises:
            LockTimeoutError: If any key is not acquired within the timeout.
        """
        wait = self._timeout_seconds if timeout is None else timeout
        acquired: list[threading.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                if not lock.acquire(timeout=wait):
                    logger.warning(
                        "lock_timeout",
                        extra={"lock_key": key, "timeout_seconds": wait},
                    )
                    raise LockTimeoutError(key, wait)
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
