# backend/reflist/schemas/sales.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from reflist.core.enums import EventType


class TrackedEventIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event: EventType
    link_id: uuid.UUID
    participant_id: Optional[uuid.UUID] = None
    program_id: Optional[str] = Field(default=None, max_length=64)
    event_id: Optional[str] = Field(default=None, max_length=120)
    customer_id: Optional[str] = Field(default=None, max_length=64)
    invoice_id: Optional[str] = Field(default=None, max_length=190)

    # minor units (cents)
    amount: int = Field(default=0, ge=0)
    quantity: int = Field(default=1, ge=0)
    currency: str = Field(default="usd", min_length=3, max_length=10)


class ManualSaleIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    link_id: uuid.UUID
    amount: int = Field(ge=0)
    currency: str = Field(default="usd", min_length=3, max_length=10)
    payment_processor: str = Field(min_length=1, max_length=64)
    event_name: str = Field(default="Manual Sale", max_length=120)
    customer_id: Optional[str] = Field(default=None, max_length=64)
    invoice_id: Optional[str] = Field(default=None, max_length=190)
    notes: Optional[str] = Field(default=None, max_length=2000)

    # Operator override; both or neither
    commission_amount: Optional[int] = Field(default=None, ge=0)
    user_take_rate: Optional[Decimal] = None


class SplitOutcomeOut(BaseModel):
    status: str
    reason: Optional[str] = None
    fallback: bool = False
    primary_earning_id: Optional[str] = None
    split_earning_ids: List[str] = Field(default_factory=list)
    total_earnings: Optional[int] = None


class EarningOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participant_id: str
    program_id: str
    link_id: Optional[str] = None
    event_id: Optional[str] = None
    type: str
    amount: int
    quantity: int
    currency: str
    earnings: int
    status: str
    created_at: datetime


class EarningsPageOut(BaseModel):
    items: List[EarningOut]
    limit: int
    offset: int
    total: int
