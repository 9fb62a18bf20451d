"""Identity resolver.

Consolidates an observation (an email and/or a phone number) into the
identity cluster it belongs to.  One call runs four stages inside a
single store transaction:

  match          seed contacts sharing the observed email or phone
  closure        breadth-first reachability over ``linked_id`` edges in
                 both directions, starting from the seeds
  canonicalize   earliest ``created_at`` (ties: smallest id) becomes the
                 PRIMARY; every other member is relinked to it directly
  project        distinct emails and phones in canonical order plus the
                 secondary ids

A novel observation (an email or phone the seeds do not already carry)
is stored as a SECONDARY linked straight to the canonical contact, after
the closure has been computed.  Seeds matched through different fields
bridge their clusters immediately.

The closure never re-queries by the values of the contacts it reaches.
Two unlinked clusters that happen to share a value (rows written by
another system without the transaction lock) stay apart until an
observation carrying that shared value is resolved; that call seeds both
and merges them.

Safety rule: raw emails and phone numbers are never logged.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from contactgraph.identity.errors import InvalidInput, InvariantViolation
from contactgraph.identity.locking import identity_lock_keys
from contactgraph.identity.store import ContactStore
from contactgraph.identity.types import ClusterSummary, ContactRecord, LinkPrecedence

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def select_canonical(contacts: Iterable[ContactRecord]) -> ContactRecord:
    """Return the contact with the earliest ``created_at``, ties broken by smallest id."""
    return min(contacts, key=lambda c: c.sort_key)


def project_summary(canonical: ContactRecord, cluster: Iterable[ContactRecord]) -> ClusterSummary:
    """Build the deduplicated summary of *cluster* around *canonical*."""
    ordered = sorted(cluster, key=lambda c: c.sort_key)
    # Canonical sorts first already; pinning it keeps that true for hand-built clusters
    ordered.sort(key=lambda c: c.id != canonical.id)

    emails: list[str] = []
    phone_numbers: list[str] = []
    for contact in ordered:
        if contact.email and contact.email not in emails:
            emails.append(contact.email)
        if contact.phone_number and contact.phone_number not in phone_numbers:
            phone_numbers.append(contact.phone_number)

    return ClusterSummary(
        primary_contact_id=canonical.id,
        emails=emails,
        phone_numbers=phone_numbers,
        secondary_contact_ids=sorted(c.id for c in ordered if c.id != canonical.id),
    )


class IdentityResolver:
    """Resolve observations against a ``ContactStore``."""

    def __init__(self, store: ContactStore) -> None:
        self.store = store

    def resolve(self, email: str | None = None, phone_number: str | None = None) -> ClusterSummary:
        """Return the cluster summary for an observation, creating or merging contacts as needed.

        Raises ``InvalidInput`` when neither value is supplied, before any
        store access.  ``StoreError`` and ``InvariantViolation`` propagate
        after the store has rolled back this call's writes.
        """
        email = _clean(email)
        phone_number = _clean(phone_number)
        if email is None and phone_number is None:
            raise InvalidInput("Either email or phoneNumber must be provided")

        with self.store.transaction(identity_lock_keys(email, phone_number)):
            return self._resolve_locked(email, phone_number)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _resolve_locked(self, email: str | None, phone_number: str | None) -> ClusterSummary:
        seeds = self.store.find_by_email_or_phone(email, phone_number)
        if not seeds:
            contact = self.store.insert(
                email=email,
                phone_number=phone_number,
                linked_id=None,
                link_precedence=LinkPrecedence.PRIMARY,
            )
            logger.info("Created primary contact id=%d", contact.id)
            return project_summary(contact, [contact])

        cluster = self.closure(seeds)
        canonical = select_canonical(cluster.values())
        updated = self._canonicalize(canonical, cluster)

        if self._is_novel(email, phone_number, seeds):
            contact = self.store.insert(
                email=email,
                phone_number=phone_number,
                linked_id=canonical.id,
                link_precedence=LinkPrecedence.SECONDARY,
            )
            cluster[contact.id] = contact
            logger.info("Created secondary contact id=%d linked_id=%d", contact.id, canonical.id)

        if updated:
            logger.info(
                "Relinked %d contact(s) to primary id=%d (cluster size %d)",
                len(updated),
                canonical.id,
                len(cluster),
            )

        view = self._verify(canonical, cluster)
        return project_summary(view[canonical.id], view.values())

    def closure(self, seeds: Iterable[ContactRecord]) -> dict[int, ContactRecord]:
        """Return every contact reachable from *seeds* over link edges, keyed by id.

        Each contact is expanded at most once, so the walk terminates on
        any finite store, cycles included.
        """
        cluster: dict[int, ContactRecord] = {c.id: c for c in seeds}
        frontier = set(cluster)
        while frontier:
            discovered = self.store.find_by_linkage_frontier(frontier)
            frontier = set()
            for contact in discovered:
                if contact.id not in cluster:
                    cluster[contact.id] = contact
                    frontier.add(contact.id)
        return cluster

    def _canonicalize(self, canonical: ContactRecord, cluster: dict[int, ContactRecord]) -> list[int]:
        """Write the single-primary, flat-link shape into the store; return the ids touched."""
        updated: list[int] = []
        for contact in sorted(cluster.values(), key=lambda c: c.id):
            if contact.id == canonical.id:
                target = (LinkPrecedence.PRIMARY, None)
            else:
                target = (LinkPrecedence.SECONDARY, canonical.id)
            if (contact.link_precedence, contact.linked_id) == target:
                continue
            if contact.id != canonical.id and contact.is_primary:
                logger.info("Demoting primary id=%d under id=%d", contact.id, canonical.id)
            self.store.update_precedence(contact.id, target[0], target[1])
            updated.append(contact.id)
        return updated

    @staticmethod
    def _is_novel(email: str | None, phone_number: str | None, seeds: list[ContactRecord]) -> bool:
        if email is not None and all(c.email != email for c in seeds):
            return True
        if phone_number is not None and all(c.phone_number != phone_number for c in seeds):
            return True
        return False

    def _verify(self, canonical: ContactRecord, cluster: dict[int, ContactRecord]) -> dict[int, ContactRecord]:
        """Re-read the cluster and check the single-primary invariant."""
        view = {c.id: c for c in self.store.find_by_ids(cluster)}

        missing = set(cluster) - set(view)
        if missing:
            raise InvariantViolation(
                f"{len(missing)} contact(s) disappeared from cluster of primary id={canonical.id}"
            )

        primaries = sorted(c.id for c in view.values() if c.is_primary)
        if primaries != [canonical.id]:
            raise InvariantViolation(
                f"cluster of primary id={canonical.id} has primaries {primaries}"
            )

        stray = sorted(c.id for c in view.values() if c.id != canonical.id and c.linked_id != canonical.id)
        if stray:
            raise InvariantViolation(
                f"contacts {stray} are not linked to primary id={canonical.id}"
            )
        return view
