from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reflist.core.enums import ParticipantStatus
from reflist.db.base import Base


class Participant(Base):
    """
    Anything that can own links and earn commissions ("partner").

    Placeholders are created from a phone number alone when a link owner
    shares earnings with someone who has no account yet. Rows are never
    deleted; claiming only links them to accounts.
    """

    __tablename__ = "participants"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    # Canonical form (see reflist.core.phone). At most one participant per phone.
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, unique=True, index=True)

    # placeholder | active
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ParticipantStatus.ACTIVE.value, server_default=ParticipantStatus.ACTIVE.value
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
