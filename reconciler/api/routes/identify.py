"""POST /identify: resolve a partial fingerprint to a consolidated contact.

Request body::

    {"email": "doc@future.com", "phoneNumber": "123456"}

Both fields are optional but at least one must be present.  Strings are
trimmed here; blank values count as absent.  Malformed emails and phone
numbers are rejected with 400 before the resolver runs.
"""
from __future__ import annotations

import re

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

from reconciler.api.deps import get_identity_service
from reconciler.identity.service import MISSING_IDENTIFIER_MESSAGE, IdentityService
from reconciler.identity.types import IdentifyInput

router = APIRouter(tags=["identify"])

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-().]{1,20}$")


# ---------------------------------------------------------------------------
# Request model
# ---------------------------------------------------------------------------

class IdentifyBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not EMAIL_RE.match(value):
            raise PydanticCustomError("invalid_email", "Invalid email format")
        return value

    @field_validator("phone_number")
    @classmethod
    def valid_phone_number(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not PHONE_RE.match(value):
            raise PydanticCustomError("invalid_phone_number", "Invalid phone number format")
        return value

    @model_validator(mode="after")
    def at_least_one_identifier(self):
        if self.email is None and self.phone_number is None:
            raise PydanticCustomError("missing_identifier", MISSING_IDENTIFIER_MESSAGE)
        return self


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/identify", summary="Resolve and consolidate a contact identity")
def identify(body: IdentifyBody, service: IdentityService = Depends(get_identity_service)):
    outcome = service.identify(IdentifyInput(email=body.email, phone_number=body.phone_number))
    if outcome.fault is not None:
        return JSONResponse(status_code=400, content={"error": outcome.fault.message})

    return {"contact": outcome.result.to_payload()}
