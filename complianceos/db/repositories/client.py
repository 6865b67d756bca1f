"""Client repository (organization scope)."""

import uuid
from typing import Optional, Sequence

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import Client, ClientMembership
from complianceos.db.repositories.base import BaseRepository
from complianceos.schemas.client import ClientCreate, ClientUpdate
from complianceos.services.input_sanitizer import sanitize_like_input


class ClientRepository(BaseRepository[Client, ClientCreate, ClientUpdate]):
    def __init__(self):
        super().__init__(Client, scope_field="organization_id")

    def _search(self, stmt: Select, status: Optional[str], q: Optional[str]) -> Select:
        stmt = self._apply_filters(stmt, {"status": status})
        if q:
            stmt = stmt.where(Client.name.ilike(f"%{sanitize_like_input(q)}%", escape="\\"))
        return stmt.order_by(Client.name)

    async def list_all(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        status: Optional[str] = None,
        q: Optional[str] = None,
    ) -> Sequence[Client]:
        stmt = self._search(self._scoped(organization_id), status, q)
        return (await db.execute(stmt)).scalars().all()

    async def list_for_member(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        status: Optional[str] = None,
        q: Optional[str] = None,
    ) -> Sequence[Client]:
        """Clients of the organization where the user holds a membership."""
        stmt = (
            self._scoped(organization_id)
            .join(ClientMembership, ClientMembership.client_id == Client.id)
            .where(ClientMembership.user_id == user_id)
        )
        return (await db.execute(self._search(stmt, status, q))).scalars().all()


client_repo = ClientRepository()
