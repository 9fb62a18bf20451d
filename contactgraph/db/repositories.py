from __future__ import annotations

import functools
from collections.abc import Iterable, Iterator
from contextlib import contextmanager, nullcontext
from typing import Generic, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from contactgraph.db import models
from contactgraph.identity.errors import StoreError
from contactgraph.identity.locking import process_locks
from contactgraph.identity.types import ContactRecord, LinkPrecedence, as_utc

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: int) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def update(self, entity: ModelT, **kwargs) -> ModelT:
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.db.flush()
        return entity


def _to_record(row: models.Contact) -> ContactRecord:
    return ContactRecord(
        id=row.id,
        email=row.email,
        phone_number=row.phone_number,
        linked_id=row.linked_id,
        link_precedence=LinkPrecedence(row.link_precedence),
        created_at=as_utc(row.created_at),
        deleted_at=as_utc(row.deleted_at),
    )


def _store_errors(method):
    """Re-raise SQLAlchemy failures as ``StoreError``."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            raise StoreError(f"{method.__name__} failed: {type(exc).__name__}") from exc

    return wrapper


class ContactRepository(BaseRepository[models.Contact]):
    """SQLAlchemy implementation of ``ContactStore``.

    Every query filters out soft-deleted rows.  ``transaction`` owns the
    commit: it takes PostgreSQL advisory locks (or in-process locks on
    other dialects), runs the body, then commits or rolls back.
    """

    model = models.Contact

    def _live(self, *criteria):
        return (
            select(models.Contact)
            .where(models.Contact.deleted_at.is_(None), *criteria)
            .order_by(models.Contact.created_at, models.Contact.id)
        )

    def _fetch(self, stmt) -> list[ContactRecord]:
        return [_to_record(row) for row in self.db.execute(stmt).scalars().all()]

    @_store_errors
    def find_by_email_or_phone(self, email: str | None, phone_number: str | None) -> list[ContactRecord]:
        clauses = []
        if email:
            clauses.append(models.Contact.email == email)
        if phone_number:
            clauses.append(models.Contact.phone_number == phone_number)
        if not clauses:
            return []
        return self._fetch(self._live(or_(*clauses)))

    @_store_errors
    def find_by_linkage_frontier(self, ids: Iterable[int]) -> list[ContactRecord]:
        ids = list(ids)
        if not ids:
            return []
        link_targets = select(models.Contact.linked_id).where(
            models.Contact.id.in_(ids),
            models.Contact.linked_id.is_not(None),
            models.Contact.deleted_at.is_(None),
        )
        return self._fetch(
            self._live(or_(models.Contact.linked_id.in_(ids), models.Contact.id.in_(link_targets)))
        )

    @_store_errors
    def find_by_ids(self, ids: Iterable[int]) -> list[ContactRecord]:
        ids = list(ids)
        if not ids:
            return []
        return self._fetch(self._live(models.Contact.id.in_(ids)))

    @_store_errors
    def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> ContactRecord:
        row = self.create(
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=link_precedence,
        )
        return _to_record(row)

    @_store_errors
    def update_precedence(
        self,
        contact_id: int,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None:
        row = self.get(contact_id)
        if row is None or row.deleted_at is not None:
            raise StoreError(f"contact id={contact_id} not found")
        self.update(row, link_precedence=link_precedence, linked_id=linked_id)

    def _uses_advisory_locks(self) -> bool:
        return self.db.get_bind().dialect.name == "postgresql"

    @contextmanager
    def transaction(self, lock_keys: Iterable[int]) -> Iterator[None]:
        keys = sorted(set(lock_keys))
        advisory = self._uses_advisory_locks()
        with nullcontext() if advisory else process_locks.hold(keys):
            try:
                if advisory:
                    # Released by PostgreSQL at commit or rollback
                    for key in keys:
                        self.db.execute(select(func.pg_advisory_xact_lock(key)))
                yield
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise StoreError(f"transaction failed: {type(exc).__name__}") from exc
            except BaseException:
                self.db.rollback()
                raise
