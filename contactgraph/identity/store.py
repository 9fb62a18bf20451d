"""Contact store interface consumed by the identity resolver.

``ContactStore`` is the only surface the resolver talks to.  Every read
excludes soft-deleted contacts.  ``transaction`` wraps one resolve: it
serializes callers that share a lock key and either commits every write
made inside it or none of them.

``InMemoryContactStore`` is a thread-safe implementation used by the
resolver tests and local experiments.  The SQL-backed implementation
lives in ``contactgraph.db.repositories``.
"""
from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from contactgraph.identity.errors import StoreError
from contactgraph.identity.locking import KeyedLock
from contactgraph.identity.types import ContactRecord, LinkPrecedence, as_utc


class ContactStore(Protocol):
    def find_by_email_or_phone(self, email: str | None, phone_number: str | None) -> list[ContactRecord]:
        """Contacts whose email equals *email* or whose phone equals *phone_number*.

        Only clauses for supplied values are applied; with neither value
        supplied the result is empty.
        """
        ...

    def find_by_linkage_frontier(self, ids: Iterable[int]) -> list[ContactRecord]:
        """Contacts linked to any of *ids*, plus the contacts those ids link to."""
        ...

    def find_by_ids(self, ids: Iterable[int]) -> list[ContactRecord]:
        ...

    def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> ContactRecord:
        """Create a contact; the store assigns ``id`` and ``created_at``."""
        ...

    def update_precedence(
        self,
        contact_id: int,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None:
        ...

    def transaction(self, lock_keys: Iterable[int]) -> AbstractContextManager[None]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryContactStore:
    """Dictionary-backed ``ContactStore`` with soft-delete and rollback support."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._rows: dict[int, ContactRecord] = {}
        self._next_id = 1
        self._mutex = threading.RLock()
        self._locks = KeyedLock()
        self._local = threading.local()

    # ------------------------------------------------------------------
    # ContactStore
    # ------------------------------------------------------------------

    def find_by_email_or_phone(self, email: str | None, phone_number: str | None) -> list[ContactRecord]:
        if not email and not phone_number:
            return []
        return self._select(
            lambda c: (bool(email) and c.email == email)
            or (bool(phone_number) and c.phone_number == phone_number)
        )

    def find_by_linkage_frontier(self, ids: Iterable[int]) -> list[ContactRecord]:
        wanted = set(ids)
        if not wanted:
            return []
        with self._mutex:
            targets = {
                row.linked_id
                for row in self._rows.values()
                if row.id in wanted and row.deleted_at is None and row.linked_id is not None
            }
        return self._select(lambda c: c.linked_id in wanted or c.id in targets)

    def find_by_ids(self, ids: Iterable[int]) -> list[ContactRecord]:
        wanted = set(ids)
        return self._select(lambda c: c.id in wanted)

    def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> ContactRecord:
        return self.add_contact(
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=link_precedence,
        )

    def update_precedence(
        self,
        contact_id: int,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None:
        with self._mutex:
            current = self._rows.get(contact_id)
            if current is None or current.deleted_at is not None:
                raise StoreError(f"contact id={contact_id} not found")
            updated = replace(current, link_precedence=link_precedence, linked_id=linked_id)
            self._rows[contact_id] = updated
            self._record_undo(contact_id, current, updated)

    @contextmanager
    def transaction(self, lock_keys: Iterable[int]) -> Iterator[None]:
        with self._locks.hold(lock_keys):
            self._local.journal = []
            try:
                yield
            except BaseException as exc:
                conflicts = self._rollback(self._local.journal)
                if conflicts:
                    raise StoreError(
                        f"rollback skipped contacts changed by another transaction: {conflicts}"
                    ) from exc
                raise
            finally:
                self._local.journal = None

    # ------------------------------------------------------------------
    # Administration and inspection
    # ------------------------------------------------------------------

    def add_contact(
        self,
        *,
        email: str | None = None,
        phone_number: str | None = None,
        linked_id: int | None = None,
        link_precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
        created_at: datetime | None = None,
        deleted_at: datetime | None = None,
    ) -> ContactRecord:
        """Insert a contact directly, bypassing resolution (fixtures, imports)."""
        with self._mutex:
            record = ContactRecord(
                id=self._next_id,
                email=email,
                phone_number=phone_number,
                linked_id=linked_id,
                link_precedence=link_precedence,
                created_at=as_utc(created_at) or self._clock(),
                deleted_at=as_utc(deleted_at),
            )
            self._next_id += 1
            self._rows[record.id] = record
            self._record_undo(record.id, None, record)
            return record

    def soft_delete(self, contact_id: int, at: datetime | None = None) -> None:
        with self._mutex:
            self._rows[contact_id] = replace(self._rows[contact_id], deleted_at=as_utc(at) or self._clock())

    def get(self, contact_id: int) -> ContactRecord | None:
        """Return the stored row, soft-deleted or not."""
        with self._mutex:
            return self._rows.get(contact_id)

    def all(self) -> list[ContactRecord]:
        with self._mutex:
            return sorted(self._rows.values(), key=lambda c: c.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select(self, predicate: Callable[[ContactRecord], bool]) -> list[ContactRecord]:
        with self._mutex:
            rows = [c for c in self._rows.values() if c.deleted_at is None and predicate(c)]
        return sorted(rows, key=lambda c: c.sort_key)

    def _record_undo(self, contact_id: int, previous: ContactRecord | None, written: ContactRecord) -> None:
        journal = getattr(self._local, "journal", None)
        if journal is not None:
            journal.append((contact_id, previous, written))

    def _rollback(self, journal: list[tuple[int, ContactRecord | None, ContactRecord]]) -> list[int]:
        """Undo *journal* newest first; return ids left alone because they changed since."""
        conflicts: list[int] = []
        with self._mutex:
            for contact_id, previous, written in reversed(journal):
                if self._rows.get(contact_id) != written:
                    conflicts.append(contact_id)
                elif previous is None:
                    del self._rows[contact_id]
                else:
                    self._rows[contact_id] = previous
        return sorted(conflicts)
