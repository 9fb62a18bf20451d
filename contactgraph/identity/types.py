"""Identity resolution value types.

``ContactRecord`` is the resolver's view of one stored contact; stores
convert their own rows into it so the resolver never touches ORM state.
``ClusterSummary`` is the consolidated answer returned for an observation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class LinkPrecedence(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class ContactRecord:
    """A single non-deleted contact as seen by the resolver."""

    id: int
    email: str | None
    phone_number: str | None
    linked_id: int | None
    link_precedence: LinkPrecedence
    created_at: datetime
    deleted_at: datetime | None = None

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """Canonical ordering: earliest ``created_at`` first, then smallest id."""
        return (self.created_at, self.id)

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LinkPrecedence.PRIMARY


@dataclass
class ClusterSummary:
    """Deduplicated contact surface of one identity cluster."""

    primary_contact_id: int
    emails: list[str] = field(default_factory=list)
    phone_numbers: list[str] = field(default_factory=list)
    secondary_contact_ids: list[int] = field(default_factory=list)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat a naive timestamp as UTC so contacts order consistently."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
