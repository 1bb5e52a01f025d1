"""Workspace repository."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.core.roles import WorkspaceRole
from reflist.models.workspace import Workspace
from reflist.models.workspace_membership import WorkspaceMembership
from reflist.repositories.base import BaseRepository


class WorkspaceRepository(BaseRepository[Workspace]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Workspace, session)
        self.memberships = BaseRepository(WorkspaceMembership, session)

    async def list_for_account(self, account_id: uuid.UUID) -> list[Workspace]:
        stmt = (
            select(Workspace)
            .join(WorkspaceMembership, WorkspaceMembership.workspace_id == Workspace.id)
            .where(WorkspaceMembership.account_id == account_id)
            .order_by(Workspace.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def slug_exists(self, slug: str) -> bool:
        return await self.count(slug=slug) > 0

    async def create(self, *, name: str, slug: str, owner_account_id: uuid.UUID) -> Workspace:
        workspace = await super().create(name=name, slug=slug)
        await self.memberships.create(
            workspace_id=workspace.id,
            account_id=owner_account_id,
            role=WorkspaceRole.OWNER.value,
        )
        return workspace
