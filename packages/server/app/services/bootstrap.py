"""
First-user bootstrap.

Runs inside the transaction that creates the user:

- first user (user count is 1 after the insert): may create organizations,
  owns the default organization (created here when absent);
- any later user: ``member`` of the default organization, if one exists.

On PostgreSQL a transaction-scoped advisory lock serializes concurrent
bootstraps, and the default organization row is read ``FOR UPDATE``. The
partial unique index on ``organizations.is_default`` rejects a second
default even without the lock.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import dialect_name
from app.models.user import User
from app.repositories import OrganizationRepository, UserRepository
from userms_shared.schemas.common import Role

log = structlog.get_logger()

# pg_advisory_xact_lock key shared by every bootstrap transaction.
BOOTSTRAP_LOCK_KEY = 7_301_145_923


@dataclass(frozen=True)
class BootstrapResult:
    first_user: bool
    default_org_id: Optional[uuid.UUID]
    role: Optional[str]


async def acquire_bootstrap_lock(session: AsyncSession) -> None:
    """Serialize bootstraps until the current transaction ends (PostgreSQL only)."""
    if dialect_name(session) == "postgresql":
        await session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": BOOTSTRAP_LOCK_KEY}
        )


async def bootstrap_user(
    user: User,
    session: AsyncSession,
    default_org_name: Optional[str] = None,
) -> BootstrapResult:
    """Assign the freshly created user to the default organization.

    Idempotent: running it twice for the same user leaves the same rows.
    """
    users = UserRepository(session)
    orgs = OrganizationRepository(session)

    total = await users.count()
    default_org = await orgs.get_default(lock=True)

    if total <= 1:
        await users.grant_org_creation(user.id)
        user.can_create_organizations = True
        if default_org is None:
            default_org = await orgs.create_default(
                default_org_name or get_settings().default_org_name, owner_id=user.id
            )
            log.info("bootstrap.default_org_created", org_id=str(default_org.id))
        elif default_org.owner_id != user.id:
            await orgs.update(default_org, owner_id=user.id)
        await orgs.add_member(default_org.id, user.id, Role.OWNER.value)
        log.info("bootstrap.first_user", user_id=str(user.id), org_id=str(default_org.id))
        return BootstrapResult(True, default_org.id, Role.OWNER.value)

    if default_org is None:
        log.warning("bootstrap.no_default_org", user_id=str(user.id))
        return BootstrapResult(False, None, None)

    link = await orgs.add_member_if_absent(default_org.id, user.id, Role.MEMBER.value)
    log.info(
        "bootstrap.member_linked",
        user_id=str(user.id),
        org_id=str(default_org.id),
        role=link.role,
    )
    return BootstrapResult(False, default_org.id, link.role)
