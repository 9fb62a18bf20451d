"""Errors raised by identity resolution."""
from __future__ import annotations


class IdentityError(Exception):
    """Base class for identity resolution failures."""


class InvalidInput(IdentityError):
    """The observation carried neither an email nor a phone number."""


class StoreError(IdentityError):
    """The contact store failed or could not be reached."""


class InvariantViolation(IdentityError):
    """The store returned data that canonicalization could not reconcile."""
