"""Link configuration reads used by the commission pipeline."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.models.link import Link, LinkSplitRecipient
from reflist.repositories.base import BaseRepository


class LinkRepository(BaseRepository[Link]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Link, session)

    async def get(self, link_id: uuid.UUID) -> Optional[Link]:
        return await self.get_by_id(link_id)

    async def get_many(self, link_ids: list[uuid.UUID]) -> list[Link]:
        return await self.get_many_by_ids(link_ids)

    async def split_recipients(self, link_id: uuid.UUID) -> list[LinkSplitRecipient]:
        stmt = (
            select(LinkSplitRecipient)
            .where(LinkSplitRecipient.link_id == link_id)
            .order_by(LinkSplitRecipient.created_at.asc(), LinkSplitRecipient.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
