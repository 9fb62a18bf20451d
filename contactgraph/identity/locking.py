"""Per-identity serialization for concurrent resolves.

Every resolve takes one lock per supplied identity value, so two
observations naming the same email or the same phone number run one
after the other while observations on disjoint identities proceed in
parallel.

Lock keys are signed 63-bit integers so they can be handed straight to
PostgreSQL's ``pg_advisory_xact_lock``.  ``KeyedLock`` provides the same
semantics in-process for stores without advisory locks.
"""
from __future__ import annotations

import hashlib
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager


def identity_lock_key(kind: str, value: str) -> int:
    """Return a stable lock key for one identity value (``kind`` is ``email`` or ``phone``)."""
    digest = hashlib.blake2b(f"{kind}:{value}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") & 0x7FFF_FFFF_FFFF_FFFF


def identity_lock_keys(email: str | None, phone_number: str | None) -> list[int]:
    """Return the sorted, de-duplicated lock keys for an observation."""
    keys: set[int] = set()
    if email:
        keys.add(identity_lock_key("email", email))
    if phone_number:
        keys.add(identity_lock_key("phone", phone_number))
    return sorted(keys)


class KeyedLock:
    """Registry of reference-counted locks, one per integer key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}
        self._waiters: dict[int, int] = {}

    def _checkout(self, key: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            self._waiters[key] = self._waiters.get(key, 0) + 1
            return lock

    def _checkin(self, key: int) -> None:
        with self._guard:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[int]) -> Iterator[None]:
        """Acquire every key in ascending order and release them on exit."""
        ordered = sorted(set(keys))
        acquired: list[tuple[int, threading.Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every store in this process that lacks native advisory locks
process_locks = KeyedLock()
