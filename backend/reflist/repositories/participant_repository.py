"""Participant repository."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.models.participant import Participant
from reflist.models.participant_account import ParticipantAccount
from reflist.repositories.base import BaseRepository


class ParticipantRepository(BaseRepository[Participant]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Participant, session)

    async def get(self, participant_id: uuid.UUID) -> Optional[Participant]:
        return await self.get_by_id(participant_id)

    async def get_many(self, participant_ids: list[uuid.UUID]) -> list[Participant]:
        return await self.get_many_by_ids(participant_ids)

    async def find_by_phone(self, phone_number: str) -> Optional[Participant]:
        return await self.get_by(phone_number=phone_number)

    async def create(
        self,
        *,
        name: str,
        status: str,
        phone_number: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Participant:
        return await super().create(name=name, status=status, phone_number=phone_number, email=email)

    async def set_phone(self, participant: Participant, phone_number: str) -> None:
        await self.update(participant, phone_number=phone_number)

    async def list_for_account(self, account_id: uuid.UUID) -> list[Participant]:
        stmt = (
            select(Participant)
            .join(ParticipantAccount, ParticipantAccount.participant_id == Participant.id)
            .where(ParticipantAccount.account_id == account_id)
            .order_by(ParticipantAccount.created_at.asc(), Participant.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
