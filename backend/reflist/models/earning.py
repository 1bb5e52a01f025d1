# backend/reflist/models/earning.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reflist.core.enums import EarningStatus
from reflist.db.base import Base


class Earning(Base):
    """
    Commission ledger row: one computed payout for one beneficiary of one
    tracked event.

    Stores:
      - amount (sale amount) and quantity of the tracked event
      - earnings (what the participant earns), integer cents
      - type (click | lead | sale) and currency
      - status (pending | processed | paid | canceled | disputed)

    NOTE:
      - Rows are append-mostly: only status changes after creation.
      - Split recipients get their own row whose event_id is
        "<event_id>_split_<participant_id>".
    """

    __tablename__ = "earnings"
    __table_args__ = (
        Index("ix_earnings_participant_customer_type", "participant_id", "customer_id", "type"),
        Index("ix_earnings_participant_program_type", "participant_id", "program_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    participant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    program_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    link_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("links.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # the converting customer; first-sale / duration rules key on it
    customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    event_id: Mapped[Optional[str]] = mapped_column(String(190), nullable=True, index=True)
    invoice_id: Mapped[Optional[str]] = mapped_column(String(190), nullable=True)

    # click | lead | sale
    type: Mapped[str] = mapped_column(String(10), nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="usd", server_default="usd")
    earnings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EarningStatus.PENDING.value,
        server_default=EarningStatus.PENDING.value,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
