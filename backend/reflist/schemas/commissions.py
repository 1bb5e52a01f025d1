# backend/reflist/schemas/commissions.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from reflist.schemas.auth import normalize_optional_phone


class UnclaimedItemOut(BaseModel):
    split_id: str
    earnings: int
    currency: str
    label: str
    program_id: Optional[str] = None
    created_at: datetime


class UnclaimedPreviewOut(BaseModel):
    phone_number: str
    count: int
    total_earnings: int
    items: List[UnclaimedItemOut] = Field(default_factory=list)


class ClaimRequest(BaseModel):
    phone_number: str = Field(max_length=32)
    claim_ticket: str = Field(min_length=1, max_length=128)
    participant_ids: Optional[List[uuid.UUID]] = None

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        normalized = normalize_optional_phone(v)
        if normalized is None:
            raise ValueError("phone_number is required")
        return normalized


class ParticipantSummaryOut(BaseModel):
    id: str
    name: str
    role: str
    is_default: bool
    newly_associated: bool


class ClaimResponse(BaseModel):
    outcome: str
    claimed_count: int
    total_earnings: int
    participants: List[ParticipantSummaryOut] = Field(default_factory=list)
    workspace_id: Optional[str] = None
