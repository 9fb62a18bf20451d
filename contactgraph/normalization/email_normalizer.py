"""Email normalizer.

Lowercases and strips an address.  Dots in the local part of
``@gmail.com`` and ``@googlemail.com`` addresses are dropped because
those mailboxes ignore them.  Sub-address tags (``user+tag@domain``) are
kept: two tags may belong to different people sharing a mailbox.

Safety rule: raw values are never logged.
"""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

_GMAIL_DOMAINS = frozenset({"gmail.com", "googlemail.com"})


def normalize_email(raw: str | None, *, fold_gmail_dots: bool = True) -> str | None:
    """Return *raw* in canonical lowercase form, or ``None`` when empty."""
    if raw is None:
        return None
    stripped = raw.strip().lower()
    if not stripped:
        return None

    local, at, domain = stripped.rpartition("@")
    if not at or not local:
        logger.debug("normalize_email: no mailbox part found (length=%d)", len(stripped))
        return stripped

    if fold_gmail_dots and domain in _GMAIL_DOMAINS:
        local = local.replace(".", "")

    return f"{local}@{domain}"
