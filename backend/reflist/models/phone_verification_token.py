from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reflist.core.enums import VerificationPurpose
from reflist.db.base import Base


class PhoneVerificationToken(Base):
    """Hashed one-time secrets: SMS codes and the claim tickets minted after a code checks out."""

    __tablename__ = "phone_verification_tokens"
    __table_args__ = (
        Index("ix_phone_verification_tokens_phone_purpose", "phone_number", "purpose"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    # code | claim_ticket
    purpose: Mapped[str] = mapped_column(String(20), nullable=False, default=VerificationPurpose.CODE.value)

    token_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
