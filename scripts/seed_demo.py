#!/usr/bin/env python3
"""Seed demo data: two separate contact clusters, then bridge them.

Cluster one is a primary with a secondary sharing its phone number.
Cluster two is an independent primary created an hour later.  The final
observation names cluster one's email and cluster two's phone, which
merges both clusters under cluster one's primary.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from contactgraph.core.settings import get_settings
from contactgraph.db.base import Base
from contactgraph.db.models import Contact
from contactgraph.db.repositories import ContactRepository
from contactgraph.identity.resolver import IdentityResolver
from contactgraph.identity.types import LinkPrecedence


def seed(session: Session) -> None:
    """Insert the two demo clusters and resolve the bridging observation."""
    start = datetime.now(timezone.utc) - timedelta(days=1)

    lorraine = Contact(
        email="lorraine@hillvalley.edu",
        phone_number="123456",
        link_precedence=LinkPrecedence.PRIMARY,
        created_at=start,
    )
    session.add(lorraine)
    session.flush()

    session.add(
        Contact(
            email="mcfly@hillvalley.edu",
            phone_number="123456",
            linked_id=lorraine.id,
            link_precedence=LinkPrecedence.SECONDARY,
            created_at=start + timedelta(minutes=5),
        )
    )
    session.add(
        Contact(
            email="biffsucks@hillvalley.edu",
            phone_number="717171",
            link_precedence=LinkPrecedence.PRIMARY,
            created_at=start + timedelta(hours=1),
        )
    )
    session.commit()
    print("Seeded 3 contacts in 2 clusters.")

    summary = IdentityResolver(ContactRepository(session)).resolve(
        email="lorraine@hillvalley.edu",
        phone_number="717171",
    )
    print(f"Primary contact: {summary.primary_contact_id}")
    print(f"Emails: {', '.join(summary.emails)}")
    print(f"Phone numbers: {', '.join(summary.phone_numbers)}")
    print(f"Secondary contacts: {summary.secondary_contact_ids}")


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
