"""EarningSplit repository: the claimable side of the ledger."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.models.earning_split import EarningSplit
from reflist.repositories.base import BaseRepository


class EarningSplitRepository(BaseRepository[EarningSplit]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(EarningSplit, session)

    async def create(self, **fields: Any) -> EarningSplit:
        return await super().create(**fields)

    async def find_unclaimed_by_phone(self, phone_number: str) -> list[EarningSplit]:
        stmt = (
            select(EarningSplit)
            .where(EarningSplit.phone_number == phone_number, EarningSplit.claimed.is_(False))
            .order_by(EarningSplit.created_at.asc(), EarningSplit.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_claimed(
        self,
        split_ids: list[uuid.UUID],
        *,
        account_id: uuid.UUID,
        participant_id: uuid.UUID,
        claimed_at: datetime,
    ) -> list[tuple[uuid.UUID, int]]:
        if not split_ids:
            return []

        # WHERE claimed = false is the guard: a concurrent claimer that got
        # here first leaves nothing for this statement to update.
        stmt = (
            update(EarningSplit)
            .where(EarningSplit.id.in_(split_ids), EarningSplit.claimed.is_(False))
            .values(
                claimed=True,
                claimed_at=claimed_at,
                claimed_by_account_id=account_id,
                participant_id=participant_id,
            )
            .returning(EarningSplit.id, EarningSplit.earnings)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return [(row[0], int(row[1])) for row in result.all()]

    async def count_claimed_by(self, phone_number: str, account_id: uuid.UUID) -> int:
        stmt = select(func.count(EarningSplit.id)).where(
            EarningSplit.phone_number == phone_number,
            EarningSplit.claimed.is_(True),
            EarningSplit.claimed_by_account_id == account_id,
        )
        return int((await self.session.execute(stmt)).scalar() or 0)
