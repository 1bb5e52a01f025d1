"""Hashed phone verification codes and claim tickets."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.models.phone_verification_token import PhoneVerificationToken
from reflist.repositories.base import BaseRepository


class VerificationTokenRepository(BaseRepository[PhoneVerificationToken]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(PhoneVerificationToken, session)

    async def delete_for(self, phone_number: str, purpose: str) -> int:
        stmt = delete(PhoneVerificationToken).where(
            PhoneVerificationToken.phone_number == phone_number,
            PhoneVerificationToken.purpose == purpose,
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def create(
        self, *, phone_number: str, purpose: str, token_hash: str, expires_at: datetime
    ) -> PhoneVerificationToken:
        return await super().create(
            phone_number=phone_number,
            purpose=purpose,
            token_hash=token_hash,
            expires_at=expires_at,
        )

    async def list_for(self, phone_number: str, purpose: str) -> list[PhoneVerificationToken]:
        stmt = (
            select(PhoneVerificationToken)
            .where(
                PhoneVerificationToken.phone_number == phone_number,
                PhoneVerificationToken.purpose == purpose,
            )
            .order_by(PhoneVerificationToken.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def consume(self, token_id: uuid.UUID) -> bool:
        stmt = (
            delete(PhoneVerificationToken)
            .where(PhoneVerificationToken.id == token_id)
            .returning(PhoneVerificationToken.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def record_failed_attempt(self, token_id: uuid.UUID) -> int:
        stmt = (
            update(PhoneVerificationToken)
            .where(PhoneVerificationToken.id == token_id)
            .values(failed_attempts=PhoneVerificationToken.failed_attempts + 1)
            .returning(PhoneVerificationToken.failed_attempts)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one_or_none() or 0)
