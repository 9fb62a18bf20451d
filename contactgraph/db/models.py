from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column

from contactgraph.db.base import Base
from contactgraph.identity.types import LinkPrecedence


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (
        Index("ix_contacts_email", "email"),
        Index("ix_contacts_phone_number", "phone_number"),
        Index("ix_contacts_linked_id", "linked_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    linked_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id"), nullable=True)
    link_precedence: Mapped[LinkPrecedence] = mapped_column(
        SqlEnum(
            LinkPrecedence,
            name="link_precedence",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    # Python-side default keeps sub-second precision on SQLite
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
