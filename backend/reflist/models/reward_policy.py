from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reflist.core.earnings import RewardTerms
from reflist.core.enums import EventType, RewardType
from reflist.db.base import Base


class RewardPolicy(Base):
    """
    How much a tracked event is worth inside a program.

    participant_id NULL + is_default=True is the program-wide reward for the
    event; a row with participant_id set overrides it for that participant.
    """

    __tablename__ = "reward_policies"
    __table_args__ = (
        Index("ix_reward_policies_program_event", "program_id", "event"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    program_id: Mapped[str] = mapped_column(String(64), nullable=False)
    participant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=True,
    )

    # click | lead | sale
    event: Mapped[str] = mapped_column(String(10), nullable=False)
    # percentage | flat
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=RewardType.FLAT.value)

    # percent for percentage rewards, cents for flat rewards
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # lifetime cap in cents across the participant's earnings for this event type
    max_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # months after the first sale the reward keeps paying; 0 = first sale only
    max_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_terms(self) -> RewardTerms:
        return RewardTerms(
            event=EventType(self.event),
            type=RewardType(self.type),
            amount=Decimal(self.amount),
            max_amount=self.max_amount,
            max_duration=self.max_duration,
        )
