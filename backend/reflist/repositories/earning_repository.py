"""Earning (commission ledger) repository."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.core.enums import CAP_COUNTED_STATUSES, EventType
from reflist.models.earning import Earning
from reflist.repositories.base import BaseRepository


class EarningRepository(BaseRepository[Earning]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Earning, session)

    async def create(self, **fields: Any) -> Earning:
        return await super().create(**fields)

    async def get_many(self, earning_ids: list[uuid.UUID]) -> list[Earning]:
        return await self.get_many_by_ids(earning_ids)

    async def first_sale_for(self, participant_id: uuid.UUID, customer_id: Optional[str]) -> Optional[Earning]:
        stmt = select(Earning).where(
            Earning.participant_id == participant_id,
            Earning.type == EventType.SALE.value,
        )
        if customer_id is not None:
            stmt = stmt.where(Earning.customer_id == customer_id)
        stmt = stmt.order_by(Earning.created_at.asc()).limit(1)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def sum_toward_cap(self, participant_id: uuid.UUID, program_id: str, event: str) -> int:
        stmt = select(func.coalesce(func.sum(Earning.earnings), 0)).where(
            Earning.participant_id == participant_id,
            Earning.program_id == program_id,
            Earning.type == event,
            Earning.earnings > 0,
            Earning.status.in_([s.value for s in CAP_COUNTED_STATUSES]),
        )
        return int((await self.session.execute(stmt)).scalar_one() or 0)

    async def list_for_participants(
        self, participant_ids: list[uuid.UUID], *, limit: int, offset: int
    ) -> tuple[list[Earning], int]:
        if not participant_ids:
            return [], 0

        total_stmt = select(func.count()).select_from(Earning).where(Earning.participant_id.in_(participant_ids))
        total = (await self.session.execute(total_stmt)).scalar_one()

        stmt = (
            select(Earning)
            .where(Earning.participant_id.in_(participant_ids))
            .order_by(Earning.created_at.desc(), Earning.id.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return list(rows), int(total)
