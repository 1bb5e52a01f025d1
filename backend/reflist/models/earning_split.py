from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reflist.db.base import Base


class EarningSplit(Base):
    """
    Share of a primary Earning owed to a phone-number-identified recipient.

    Created unclaimed (unless the recipient already has an account) and
    flipped to claimed exactly once; never back.
    """

    __tablename__ = "earning_splits"
    __table_args__ = (
        Index("ix_earning_splits_phone_claimed", "phone_number", "claimed"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # the link owner's (primary) earning this split was carved from
    earning_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("earnings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # the recipient's own earning row
    split_earning_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("earnings.id", ondelete="SET NULL"),
        nullable=True,
    )
    # placeholder participant at split time; rebound to the claimant's participant on claim
    participant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True,
    )

    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    split_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    earnings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_by_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
