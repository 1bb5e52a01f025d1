"""
Base repository.

Generic async operations shared by the ledger repositories.
"""

from __future__ import annotations

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reflist.core.errors import DuplicateRecordError
from reflist.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository over an AsyncSession.

    Example:
        class LinkRepository(BaseRepository[Link]):
            def __init__(self, session: AsyncSession):
                super().__init__(Link, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def get_by_id(self, id: uuid.UUID) -> ModelType | None:
        return await self.session.get(self.model, id)

    async def get_by(self, **filters: Any) -> ModelType | None:
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_by(self, **filters: Any) -> list[ModelType]:
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_many_by_ids(self, ids: list[uuid.UUID]) -> list[ModelType]:
        if not ids:
            return []
        stmt = select(self.model).where(self.model.id.in_(ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **data: Any) -> ModelType:
        """
        Insert one row inside a savepoint.

        A unique-constraint violation rolls back only the savepoint and is
        raised as DuplicateRecordError, so the surrounding transaction stays
        usable for a re-read.
        """
        entity = self.model(**data)
        try:
            async with self.session.begin_nested():
                self.session.add(entity)
                await self.session.flush()
        except IntegrityError as e:
            raise DuplicateRecordError(f"{self.model.__tablename__}: {e.orig}") from e
        await self.session.refresh(entity)
        return entity

    async def update(self, entity: ModelType, **data: Any) -> ModelType:
        for key, value in data.items():
            setattr(entity, key, value)
        await self.session.flush()
        return entity

    async def count(self, **filters: Any) -> int:
        stmt = select(func.count()).select_from(self.model)
        if filters:
            stmt = stmt.filter_by(**filters)
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)
