from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reflist.db.base import Base


class EarningAuditEntry(Base):
    """
    Structured audit trail for the ledger (who recorded a manual sale, which
    processor, fallbacks, claims).

    NOTE: attribute `details` is stored in a JSONB column; the Python name
    cannot be "metadata" because SQLAlchemy Declarative uses it.
    """

    __tablename__ = "earning_audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    earning_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("earnings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # commission_created | manual_sale_recorded | fallback_commission | splits_claimed
    action: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    # admin email / account id / "system"
    actor: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    # pipeline | manual | claim
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="pipeline")

    details: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict, server_default="{}")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
