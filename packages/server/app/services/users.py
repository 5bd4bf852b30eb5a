"""
User service: profile sync from identity data, whoami, user lookups.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.identity import IdentityClient, IdentityNotFound
from app.core.auth import VerificationPolicy, identity_uuid, is_verified
from app.core.errors import BadRequest, NotFound
from app.models.user import User
from app.repositories import UserRepository
from app.services.bootstrap import acquire_bootstrap_lock, bootstrap_user
from userms_shared.schemas.identity import Identity, Session
from userms_shared.schemas.users import (
    OrgMembership,
    UserListResponse,
    UserProfile,
    UserResponse,
    VerificationStatusResponse,
    WhoAmIResponse,
)

log = structlog.get_logger()


def _profile(user: Optional[User]) -> Optional[UserProfile]:
    if user is None:
        return None
    return UserProfile.model_validate(user, from_attributes=True)


async def sync_profile(identity: Identity, session: AsyncSession, *, login: bool = False) -> User:
    """Upsert the local user from identity traits and run the bootstrap.

    The bootstrap runs only when the row is new. Both happen in the caller's
    transaction, so a user never exists without its bootstrap membership.
    """
    user_id = identity_uuid(identity)
    if user_id is None:
        raise BadRequest(f"Identity id is not a UUID: {identity.id}")
    if not identity.email:
        raise BadRequest("Identity has no email trait")

    users = UserRepository(session)
    await acquire_bootstrap_lock(session)
    existed = await users.get(user_id) is not None

    first_name, last_name = identity.names
    user = await users.upsert(user_id, identity.email, first_name, last_name, login=login)

    if not existed:
        result = await bootstrap_user(user, session)
        log.info(
            "user.bootstrapped",
            user_id=str(user_id),
            first_user=result.first_user,
            role=result.role,
        )
    log.info("user.synced", user_id=str(user_id), created=not existed, login=login)
    return user


async def ensure_local_user(auth_session: Session, session: AsyncSession) -> User:
    """Local row for an authenticated identity, created on first sight."""
    user_id = identity_uuid(auth_session.identity)
    if user_id is not None:
        user = await UserRepository(session).get(user_id)
        if user is not None:
            return user
    return await sync_profile(auth_session.identity, session)


async def whoami(auth_session: Session, session: AsyncSession) -> WhoAmIResponse:
    identity = auth_session.identity
    verified = await VerificationPolicy().evaluate(identity, session)

    user: Optional[User] = None
    memberships: list[OrgMembership] = []
    user_id = identity_uuid(identity)
    if user_id is not None:
        users = UserRepository(session)
        user = await users.get(user_id)
        for org, link in await users.organizations_for_user(user_id):
            memberships.append(
                OrgMembership(
                    id=org.id,
                    name=org.name,
                    description=org.description,
                    org_type=org.org_type,
                    is_default=org.is_default,
                    role=link.role,
                    joined_at=link.joined_at,
                )
            )

    return WhoAmIResponse(
        identity_id=identity.id,
        email=identity.email,
        traits=identity.traits,
        verified=verified,
        can_create_organizations=bool(user and user.can_create_organizations),
        user=_profile(user),
        organizations=memberships,
    )


async def list_users(client: IdentityClient, session: AsyncSession) -> UserListResponse:
    """Identities from the provider merged with local profile rows."""
    identities = await client.list_identities()
    users = UserRepository(session)
    local = {user.id: user for user in await users.list_all()}
    count = await users.count()

    data = []
    for identity in identities:
        user_id = identity_uuid(identity)
        data.append(
            UserResponse(
                id=identity.id,
                email=identity.email,
                traits=identity.traits,
                verified=is_verified(identity, count),
                state=identity.state,
                profile=_profile(local.get(user_id)) if user_id else None,
            )
        )
    return UserListResponse(data=data)


async def _fetch_identity(user_id: uuid.UUID, client: IdentityClient) -> Identity:
    try:
        return await client.get_identity(str(user_id))
    except IdentityNotFound:
        raise NotFound("User not found")


async def get_user(
    user_id: uuid.UUID, client: IdentityClient, session: AsyncSession
) -> UserResponse:
    identity = await _fetch_identity(user_id, client)
    users = UserRepository(session)
    return UserResponse(
        id=identity.id,
        email=identity.email,
        traits=identity.traits,
        verified=is_verified(identity, await users.count()),
        state=identity.state,
        profile=_profile(await users.get(user_id)),
    )


async def verification_status(
    user_id: uuid.UUID, client: IdentityClient, session: AsyncSession
) -> VerificationStatusResponse:
    identity = await _fetch_identity(user_id, client)
    return VerificationStatusResponse(
        user_id=identity.id,
        verified=await VerificationPolicy().evaluate(identity, session),
        addresses=identity.verifiable_addresses,
    )
