"""Structured audit trail writes."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from reflist.models.earning_audit_entry import EarningAuditEntry
from reflist.repositories.base import BaseRepository


class AuditRepository(BaseRepository[EarningAuditEntry]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(EarningAuditEntry, session)

    async def record(
        self,
        *,
        action: str,
        earning_id: Optional[uuid.UUID] = None,
        actor: Optional[str] = None,
        source: str = "pipeline",
        details: Optional[dict[str, Any]] = None,
    ) -> EarningAuditEntry:
        return await self.create(
            action=action,
            earning_id=earning_id,
            actor=actor,
            source=source,
            details=details or {},
        )
