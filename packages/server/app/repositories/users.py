"""User repository."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func, select, update

from app.models.base import utcnow
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import MembershipLink
from app.repositories.base import BaseRepository
from userms_shared.schemas.common import MANAGER_ROLES


class UserRepository(BaseRepository[User]):
    model = User

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(User))
        return result.scalar_one()

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def list_all(self) -> list[User]:
        result = await self.session.execute(select(User).order_by(User.created_at.asc()))
        return list(result.scalars().all())

    async def upsert(
        self,
        user_id: uuid.UUID,
        email: str,
        first_name: str = "",
        last_name: str = "",
        *,
        login: bool = False,
    ) -> User:
        """Insert the user or refresh its identity-derived fields."""
        now = utcnow()
        values = {
            "id": user_id,
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
        }
        changes = {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "updated_at": now,
        }
        if login:
            values["last_login"] = now
            changes["last_login"] = now
        stmt = self._insert().values(**values).on_conflict_do_update(
            index_elements=["id"], set_=changes
        )
        await self.session.execute(stmt)
        result = await self.session.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def grant_org_creation(self, user_id: uuid.UUID) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(can_create_organizations=True, updated_at=utcnow())
        )

    async def organizations_for_user(
        self, user_id: uuid.UUID
    ) -> list[tuple[Organization, MembershipLink]]:
        result = await self.session.execute(
            select(Organization, MembershipLink)
            .join(MembershipLink, MembershipLink.organization_id == Organization.id)
            .where(MembershipLink.user_id == user_id)
            .order_by(MembershipLink.joined_at.asc())
        )
        return [(org, link) for org, link in result.all()]

    async def has_admin_role(self, user_id: uuid.UUID) -> bool:
        """True when the user is admin or owner of at least one organization."""
        result = await self.session.execute(
            select(func.count())
            .select_from(MembershipLink)
            .where(MembershipLink.user_id == user_id, MembershipLink.role.in_(sorted(MANAGER_ROLES)))
        )
        return result.scalar_one() > 0
