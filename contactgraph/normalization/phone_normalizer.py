"""Phone number normalizer.

Converts a phone string to E.164 (e.g. ``+12125551234``) using
``phonenumbers``.  *default_region* is assumed when the raw string has no
international prefix.  Values that do not parse as a valid number are
returned stripped but otherwise untouched, so short internal numbers
still match themselves exactly.

Safety rule: raw values are never logged.
"""
from __future__ import annotations

import logging

import phonenumbers

logger = logging.getLogger(__name__)

_DEFAULT_REGION = "US"


def to_e164(raw: str, *, default_region: str = _DEFAULT_REGION) -> str | None:
    """Return *raw* in E.164 format, or ``None`` if it is not a valid number."""
    try:
        parsed = phonenumbers.parse(raw, default_region)
    except phonenumbers.NumberParseException:
        # SAFETY: do not log raw value
        logger.debug("phone_normalizer: could not parse input (length=%d)", len(raw))
        return None

    if not phonenumbers.is_valid_number(parsed):
        logger.debug("phone_normalizer: parsed but invalid number")
        return None

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def normalize_phone(raw: str | None, *, default_region: str = _DEFAULT_REGION) -> str | None:
    """Return the E.164 form of *raw*, the stripped input if unparseable, or ``None`` when empty."""
    if raw is None or not raw.strip():
        return None
    stripped = raw.strip()
    return to_e164(stripped, default_region=default_region) or stripped
