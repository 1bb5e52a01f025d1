"""Account repository (accounts + participant associations)."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.models.account import Account
from reflist.models.participant_account import ParticipantAccount
from reflist.repositories.base import BaseRepository


class AccountRepository(BaseRepository[Account]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Account, session)
        self.associations = BaseRepository(ParticipantAccount, session)

    async def get(self, account_id: uuid.UUID) -> Optional[Account]:
        return await self.get_by_id(account_id)

    async def get_by_email(self, email: str) -> Optional[Account]:
        return await self.get_by(email=email)

    async def create(self, *, email: str, name: Optional[str] = None) -> Account:
        return await super().create(email=email, name=name)

    async def save(self, account: Account, **fields: Any) -> Account:
        return await self.update(account, **fields)

    async def get_association(self, participant_id: uuid.UUID, account_id: uuid.UUID) -> Optional[ParticipantAccount]:
        return await self.associations.get_by(participant_id=participant_id, account_id=account_id)

    async def add_association(self, participant_id: uuid.UUID, account_id: uuid.UUID, role: str) -> ParticipantAccount:
        return await self.associations.create(participant_id=participant_id, account_id=account_id, role=role)

    async def first_account_for_participant(self, participant_id: uuid.UUID) -> Optional[uuid.UUID]:
        stmt = (
            select(ParticipantAccount.account_id)
            .where(ParticipantAccount.participant_id == participant_id)
            .order_by(ParticipantAccount.created_at.asc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()
