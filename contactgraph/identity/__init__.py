"""Identity consolidation over email/phone contact records."""
from contactgraph.identity.errors import IdentityError, InvalidInput, InvariantViolation, StoreError
from contactgraph.identity.resolver import IdentityResolver
from contactgraph.identity.store import ContactStore, InMemoryContactStore
from contactgraph.identity.types import ClusterSummary, ContactRecord, LinkPrecedence

__all__ = [
    "ClusterSummary",
    "ContactRecord",
    "ContactStore",
    "IdentityError",
    "IdentityResolver",
    "InMemoryContactStore",
    "InvalidInput",
    "InvariantViolation",
    "LinkPrecedence",
    "StoreError",
]
