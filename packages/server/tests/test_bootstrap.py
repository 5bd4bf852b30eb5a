"""
First-user bootstrap: default organization and membership assignment.
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from app.models.organization import Organization
from app.models.user_org import MembershipLink
from app.repositories import OrganizationRepository, UserRepository
from app.services.bootstrap import bootstrap_user
from app.services.users import sync_profile
from conftest import make_identity


async def _links(db, user_id) -> list[MembershipLink]:
    result = await db.execute(
        select(MembershipLink)
        .where(MembershipLink.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestFirstUser:

    @pytest.mark.asyncio
    async def test_first_user_owns_default_org(self, db):
        user = await sync_profile(make_identity("a@example.com", first="Ada", last="Lovelace"), db)
        await db.commit()

        assert user.can_create_organizations is True
        assert (user.first_name, user.last_name) == ("Ada", "Lovelace")

        default = await OrganizationRepository(db).get_default()
        assert default is not None
        assert default.name == "Default Organization"
        assert default.owner_id == user.id

        links = await _links(db, user.id)
        assert [(link.organization_id, link.role) for link in links] == [(default.id, "owner")]

    @pytest.mark.asyncio
    async def test_existing_default_org_is_reused(self, db):
        orgs = OrganizationRepository(db)
        await orgs.create(name="Preexisting", is_default=True)
        await db.commit()

        user = await sync_profile(make_identity("a@example.com"), db)
        await db.commit()

        count = await db.execute(select(func.count()).select_from(Organization))
        assert count.scalar_one() == 1
        default = await orgs.get_default()
        assert default.name == "Preexisting"
        assert default.owner_id == user.id
        assert [link.role for link in await _links(db, user.id)] == ["owner"]


class TestLaterUsers:

    @pytest.mark.asyncio
    async def test_second_user_is_member(self, db):
        first = await sync_profile(make_identity("a@example.com"), db)
        second = await sync_profile(make_identity("b@example.com"), db)
        await db.commit()

        assert second.can_create_organizations is False
        default = await OrganizationRepository(db).get_default()
        assert default.owner_id == first.id
        links = await _links(db, second.id)
        assert [(link.organization_id, link.role) for link in links] == [(default.id, "member")]

    @pytest.mark.asyncio
    async def test_membership_step_is_idempotent(self, db):
        await sync_profile(make_identity("a@example.com"), db)
        second = await sync_profile(make_identity("b@example.com"), db)

        again = await bootstrap_user(second, db)
        await db.commit()

        assert again.first_user is False
        assert again.role == "member"
        assert len(await _links(db, second.id)) == 1

    @pytest.mark.asyncio
    async def test_existing_role_is_not_downgraded(self, db):
        await sync_profile(make_identity("a@example.com"), db)
        second = await sync_profile(make_identity("b@example.com"), db)
        default = await OrganizationRepository(db).get_default()
        await OrganizationRepository(db).update_member_role(default.id, second.id, "admin")

        result = await bootstrap_user(second, db)
        assert result.role == "admin"

    @pytest.mark.asyncio
    async def test_no_default_org(self, db):
        users = UserRepository(db)
        await users.upsert(uuid.uuid4(), "x@example.com")
        later = await users.upsert(uuid.uuid4(), "y@example.com")

        result = await bootstrap_user(later, db)
        assert result.default_org_id is None
        assert await _links(db, later.id) == []


class TestReplay:

    @pytest.mark.asyncio
    async def test_replayed_registration_converges(self, db):
        identity = make_identity("a@example.com")
        await sync_profile(identity, db)
        await sync_profile(identity, db)
        await db.commit()

        assert await UserRepository(db).count() == 1
        count = await db.execute(select(func.count()).select_from(Organization))
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_login_refreshes_profile(self, db):
        identity = make_identity("a@example.com", first="Old")
        await sync_profile(identity, db)
        identity.traits["name"]["first"] = "New"

        user = await sync_profile(identity, db, login=True)
        assert user.first_name == "New"
        assert user.last_login is not None

    @pytest.mark.asyncio
    async def test_removed_member_is_not_readded_on_login(self, db):
        await sync_profile(make_identity("a@example.com"), db)
        identity = make_identity("b@example.com")
        second = await sync_profile(identity, db)
        default = await OrganizationRepository(db).get_default()
        await OrganizationRepository(db).remove_member(default.id, second.id)

        await sync_profile(identity, db, login=True)
        assert await _links(db, second.id) == []
