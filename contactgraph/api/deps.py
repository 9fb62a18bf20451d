"""FastAPI dependency injection: database sessions and the resolver."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from contactgraph.db.repositories import ContactRepository
from contactgraph.db.session import get_session_factory
from contactgraph.identity.resolver import IdentityResolver


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_contact_store(db: Session = Depends(get_db)) -> ContactRepository:
    """Return the contact store bound to the current DB session."""
    return ContactRepository(db)


def get_identity_resolver(store: ContactRepository = Depends(get_contact_store)) -> IdentityResolver:
    return IdentityResolver(store)
