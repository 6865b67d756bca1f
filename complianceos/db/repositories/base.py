"""
Generic async CRUD repository with explicit tenant scoping.

Every query is filtered by the repository's scope column (client_id for
workspace rows, organization_id for organization rows). A row that exists
under another scope behaves exactly like a missing row.
"""

import uuid
from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.engine import Base

ModelT = TypeVar("ModelT", bound=Base)
CreateSchemaT = TypeVar("CreateSchemaT", bound=BaseModel)
UpdateSchemaT = TypeVar("UpdateSchemaT", bound=BaseModel)


class BaseRepository(Generic[ModelT, CreateSchemaT, UpdateSchemaT]):
    """Generic async CRUD operations, always filtered by scope."""

    def __init__(self, model: Type[ModelT], scope_field: str = "client_id"):
        self.model = model
        self.scope_field = scope_field

    def _scoped(self, scope_id: uuid.UUID) -> Select:
        return select(self.model).where(getattr(self.model, self.scope_field) == scope_id)

    def _apply_filters(self, stmt: Select, filters: dict[str, Any]) -> Select:
        for key, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, key) == value)
        return stmt

    async def create(
        self,
        db: AsyncSession,
        data: CreateSchemaT,
        scope_id: uuid.UUID,
        **extra_fields: Any,
    ) -> ModelT:
        """Create a new record inside the given scope."""
        values = data.model_dump(exclude_unset=True, by_alias=False)
        values[self.scope_field] = scope_id
        values.update(extra_fields)

        obj = self.model(**values)
        db.add(obj)
        await db.flush()
        await db.refresh(obj)
        return obj

    async def get_by_id(
        self, db: AsyncSession, id: uuid.UUID, scope_id: uuid.UUID
    ) -> Optional[ModelT]:
        """Get a single record by ID within the scope."""
        result = await db.execute(self._scoped(scope_id).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def list(
        self,
        db: AsyncSession,
        scope_id: uuid.UUID,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        descending: bool = True,
        **filters: Any,
    ) -> Sequence[ModelT]:
        """List records with pagination. None-valued filters are ignored."""
        col = getattr(self.model, order_by, None)
        if col is None:
            col = self.model.id
        stmt = self._apply_filters(self._scoped(scope_id), filters)
        stmt = stmt.order_by(col.desc() if descending else col.asc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return result.scalars().all()

    async def count(self, db: AsyncSession, scope_id: uuid.UUID, **filters: Any) -> int:
        """Count records within the scope."""
        stmt = self._apply_filters(self._scoped(scope_id), filters)
        result = await db.execute(select(func.count()).select_from(stmt.subquery()))
        return result.scalar_one()

    async def update(
        self,
        db: AsyncSession,
        id: uuid.UUID,
        scope_id: uuid.UUID,
        data: UpdateSchemaT,
    ) -> Optional[ModelT]:
        """Update a record. Unset and None fields are left untouched."""
        obj = await self.get_by_id(db, id, scope_id)
        if obj is None:
            return None

        values = data.model_dump(exclude_unset=True, by_alias=False)
        for key, value in values.items():
            if value is not None:
                setattr(obj, key, value)

        await db.flush()
        await db.refresh(obj)
        return obj

    async def delete(self, db: AsyncSession, id: uuid.UUID, scope_id: uuid.UUID) -> bool:
        """Delete a record within the scope."""
        obj = await self.get_by_id(db, id, scope_id)
        if obj is None:
            return False
        await db.delete(obj)
        await db.flush()
        return True
