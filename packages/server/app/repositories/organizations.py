"""Organization and membership repository."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import delete, func, select, update

from app.models.base import utcnow
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import MembershipLink
from app.repositories.base import BaseRepository


class OrganizationRepository(BaseRepository[Organization]):
    model = Organization

    # --- Organizations ---

    async def create(self, **fields: Any) -> Organization:
        return await self.add(Organization(**fields))

    async def get_by_name(self, name: str) -> Optional[Organization]:
        result = await self.session.execute(select(Organization).where(Organization.name == name))
        return result.scalar_one_or_none()

    async def get_default(self, *, lock: bool = False) -> Optional[Organization]:
        """The default organization. ``lock`` adds FOR UPDATE where supported."""
        stmt = select(Organization).where(Organization.is_default.is_(True))
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_default(self, name: str, owner_id: uuid.UUID) -> Organization:
        return await self.create(
            name=name,
            description="Default organization for all users",
            org_type="organization",
            owner_id=owner_id,
            is_default=True,
        )

    async def list_all(self) -> list[Organization]:
        result = await self.session.execute(
            select(Organization).order_by(Organization.created_at.desc())
        )
        return list(result.scalars().all())

    async def update(self, org: Organization, **fields: Any) -> Organization:
        for key, value in fields.items():
            setattr(org, key, value)
        org.updated_at = utcnow()
        self.session.add(org)
        await self.session.flush()
        return org

    async def delete(self, org: Organization) -> None:
        # Links are removed explicitly; not every backend enforces ON DELETE CASCADE.
        await self.session.execute(
            delete(MembershipLink).where(MembershipLink.organization_id == org.id)
        )
        await super().delete(org)

    # --- Membership ---

    async def members(self, org_id: uuid.UUID) -> list[tuple[MembershipLink, User]]:
        result = await self.session.execute(
            select(MembershipLink, User)
            .join(User, User.id == MembershipLink.user_id)
            .where(MembershipLink.organization_id == org_id)
            .order_by(MembershipLink.joined_at.asc())
        )
        return [(link, user) for link, user in result.all()]

    async def count_members(self, org_id: uuid.UUID, role: Optional[str] = None) -> int:
        stmt = (
            select(func.count())
            .select_from(MembershipLink)
            .where(MembershipLink.organization_id == org_id)
        )
        if role is not None:
            stmt = stmt.where(MembershipLink.role == role)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def get_link(self, org_id: uuid.UUID, user_id: uuid.UUID) -> Optional[MembershipLink]:
        result = await self.session.execute(
            select(MembershipLink)
            .where(MembershipLink.organization_id == org_id, MembershipLink.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_member(self, org_id: uuid.UUID, user_id: uuid.UUID, role: str) -> MembershipLink:
        """Insert the link, or overwrite the role of an existing one."""
        stmt = (
            self._insert(MembershipLink)
            .values(user_id=user_id, organization_id=org_id, role=role, joined_at=utcnow())
            .on_conflict_do_update(
                index_elements=["user_id", "organization_id"],
                set_={"role": role},
            )
        )
        await self.session.execute(stmt)
        return await self.get_link(org_id, user_id)

    async def add_member_if_absent(
        self, org_id: uuid.UUID, user_id: uuid.UUID, role: str
    ) -> MembershipLink:
        """Insert the link; an existing link keeps its role."""
        stmt = (
            self._insert(MembershipLink)
            .values(user_id=user_id, organization_id=org_id, role=role, joined_at=utcnow())
            .on_conflict_do_nothing(
                index_elements=["user_id", "organization_id"]
            )
        )
        await self.session.execute(stmt)
        return await self.get_link(org_id, user_id)

    async def remove_member(self, org_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(MembershipLink).where(
                MembershipLink.organization_id == org_id,
                MembershipLink.user_id == user_id,
            )
        )
        return result.rowcount > 0

    async def update_member_role(
        self, org_id: uuid.UUID, user_id: uuid.UUID, role: str
    ) -> Optional[MembershipLink]:
        result = await self.session.execute(
            update(MembershipLink)
            .where(
                MembershipLink.organization_id == org_id,
                MembershipLink.user_id == user_id,
            )
            .values(role=role)
        )
        if result.rowcount == 0:
            return None
        return await self.get_link(org_id, user_id)
