"""Reward policy lookups."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.models.reward_policy import RewardPolicy
from reflist.repositories.base import BaseRepository


class RewardPolicyRepository(BaseRepository[RewardPolicy]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(RewardPolicy, session)

    async def find_for_participant(
        self, participant_id: uuid.UUID, program_id: str, event: str
    ) -> Optional[RewardPolicy]:
        stmt = (
            select(RewardPolicy)
            .where(
                RewardPolicy.participant_id == participant_id,
                RewardPolicy.program_id == program_id,
                RewardPolicy.event == event,
            )
            .order_by(RewardPolicy.created_at.desc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def find_program_default(self, program_id: str, event: str) -> Optional[RewardPolicy]:
        stmt = (
            select(RewardPolicy)
            .where(
                RewardPolicy.participant_id.is_(None),
                RewardPolicy.program_id == program_id,
                RewardPolicy.event == event,
                RewardPolicy.is_default.is_(True),
            )
            .order_by(RewardPolicy.created_at.desc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()
