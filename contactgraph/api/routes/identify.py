"""POST /identify: consolidate an observation into its identity cluster.

The body carries an optional ``email`` and an optional ``phoneNumber``
(string or number).  The response reports the cluster's primary contact
id, its distinct emails and phone numbers in canonical order, and the
ids of its secondary contacts.

Storage failures and invariant violations are logged and answered with
a generic 500; their details never reach the caller.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from contactgraph.api.deps import get_identity_resolver
from contactgraph.core.settings import get_settings
from contactgraph.identity.errors import InvalidInput, InvariantViolation, StoreError
from contactgraph.identity.resolver import IdentityResolver
from contactgraph.identity.types import ClusterSummary
from contactgraph.normalization.email_normalizer import normalize_email
from contactgraph.normalization.phone_normalizer import normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(tags=["identity"])


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class IdentifyBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")

    @field_validator("phone_number", mode="before")
    @classmethod
    def phone_as_text(cls, value):
        # Clients commonly send phone numbers as JSON numbers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("email", "phone_number")
    @classmethod
    def blank_as_missing(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class ContactPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    primary_contact_id: int = Field(alias="primaryContactId")
    emails: list[str]
    phone_numbers: list[str] = Field(alias="phoneNumbers")
    secondary_contact_ids: list[int] = Field(alias="secondaryContactIds")


class IdentifyResponse(BaseModel):
    contact: ContactPayload


def _payload(summary: ClusterSummary) -> IdentifyResponse:
    return IdentifyResponse(
        contact=ContactPayload(
            primary_contact_id=summary.primary_contact_id,
            emails=summary.emails,
            phone_numbers=summary.phone_numbers,
            secondary_contact_ids=summary.secondary_contact_ids,
        )
    )


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

@router.post(
    "/identify",
    response_model=IdentifyResponse,
    response_model_by_alias=True,
    summary="Resolve an email and/or phone number to its contact cluster",
)
def identify(
    body: IdentifyBody,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> IdentifyResponse:
    email, phone_number = body.email, body.phone_number

    settings = get_settings()
    if settings.normalize_identifiers:
        email = normalize_email(email, fold_gmail_dots=settings.fold_gmail_dots)
        phone_number = normalize_phone(phone_number, default_region=settings.default_phone_region)

    try:
        summary = resolver.resolve(email=email, phone_number=phone_number)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (StoreError, InvariantViolation) as exc:
        logger.error("identify failed: %s: %s", type(exc).__name__, exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return _payload(summary)
