# backend/reflist/schemas/phone_verification.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from reflist.schemas.auth import normalize_optional_phone
from reflist.schemas.commissions import UnclaimedPreviewOut


def _required_phone(v: str) -> str:
    normalized = normalize_optional_phone(v)
    if normalized is None:
        raise ValueError("phone_number is required")
    return normalized


class PhoneSendRequest(BaseModel):
    phone_number: str = Field(max_length=32)

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return _required_phone(v)


class PhoneSendResponse(BaseModel):
    ok: bool
    message: str
    expires_in_minutes: int


class PhoneVerifyRequest(BaseModel):
    phone_number: str = Field(max_length=32)
    code: str = Field(min_length=4, max_length=12)

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return _required_phone(v)


class PhoneVerifyResponse(BaseModel):
    status: str
    verified: bool
    phone_number: str

    # Present only when verified
    claim_ticket: Optional[str] = None
    claim_ticket_expires_in_minutes: Optional[int] = None
    unclaimed: Optional[UnclaimedPreviewOut] = None
