# backend/reflist/schemas/auth.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from reflist.core.errors import InvalidInputError
from reflist.core.phone import normalize_phone_number


def normalize_optional_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = value.strip()
    if not v:
        return None
    try:
        return normalize_phone_number(v)
    except InvalidInputError as e:
        raise ValueError(e.message)


def _normalize_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = " ".join(value.strip().split())
    return v or None


class MagicCodeRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=200)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_name(v)


class MagicCodeVerify(BaseModel):
    email: EmailStr
    code: str = Field(min_length=4, max_length=64)

    # Phone verified before signup/login whose earnings should be claimed
    phone_number: Optional[str] = Field(default=None, max_length=32)
    claim_ticket: Optional[str] = Field(default=None, max_length=128)

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: Optional[str]) -> Optional[str]:
        return normalize_optional_phone(v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    is_new_account: bool = False


class ParticipantOut(BaseModel):
    id: str
    name: str
    phone_number: Optional[str] = None
    status: str


class MeResponse(BaseModel):
    id: str
    email: EmailStr
    name: Optional[str] = None
    is_active: bool
    is_admin: bool

    default_participant_id: Optional[str] = None
    participants: List[ParticipantOut] = Field(default_factory=list)
