"""
Generic async CRUD repository base class.

Provides reusable data access methods that all entity-specific
repositories inherit from.
"""

import uuid
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common CRUD operations.

    Subclasses specify the model class and add entity-specific queries.
    Writes only flush; the request-scoped session commits.
    """

    def __init__(self, session: AsyncSession, model: type[ModelType]):
        self.session = session
        self.model = model

    async def get_by_id(self, record_id: uuid.UUID) -> ModelType | None:
        """Get a single record by primary key."""
        return await self.session.get(self.model, record_id)

    async def create(self, **kwargs) -> ModelType:
        """Create a new record."""
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def update(self, instance: ModelType, **kwargs) -> ModelType:
        """Apply field changes to a loaded record."""
        for key, value in kwargs.items():
            if hasattr(instance, key):
                setattr(instance, key, value)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def delete(self, instance: ModelType) -> None:
        """Delete a loaded record."""
        await self.session.delete(instance)
        await self.session.flush()

    async def count(self, user_id: uuid.UUID | None = None) -> int:
        """Count records, optionally filtered by user_id."""
        stmt = select(func.count()).select_from(self.model)
        if user_id is not None and hasattr(self.model, "user_id"):
            stmt = stmt.where(self.model.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def _paginate(
        self,
        stmt: Select,
        limit: int,
        offset: int,
    ) -> tuple[list[ModelType], int]:
        """
        Run a filtered select as one page plus the total match count.

        ``stmt`` must already carry its filters and ordering.
        """
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()
        result = await self.session.execute(stmt.limit(limit).offset(offset))
        return list(result.scalars().all()), total
