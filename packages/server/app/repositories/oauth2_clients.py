"""OAuth2 client and token-log repositories."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update

from app.models.base import utcnow
from app.models.oauth2_client import OAuth2Client, OAuth2TokenLog
from app.repositories.base import BaseRepository


class OAuth2ClientRepository(BaseRepository[OAuth2Client]):
    model = OAuth2Client

    async def insert(self, **fields) -> OAuth2Client:
        return await self.add(OAuth2Client(**fields))

    async def get_by_client_id(self, client_id: str) -> Optional[OAuth2Client]:
        result = await self.session.execute(
            select(OAuth2Client).where(OAuth2Client.client_id == client_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: uuid.UUID) -> list[OAuth2Client]:
        result = await self.session.execute(
            select(OAuth2Client)
            .where(OAuth2Client.user_id == user_id, OAuth2Client.is_active.is_(True))
            .order_by(OAuth2Client.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_active_for_org(self, org_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(OAuth2Client)
            .where(OAuth2Client.org_id == org_id, OAuth2Client.is_active.is_(True))
        )
        return result.scalar_one()

    async def set_active(self, client: OAuth2Client, active: bool) -> OAuth2Client:
        client.is_active = active
        client.updated_at = utcnow()
        self.session.add(client)
        await self.session.flush()
        return client

    async def update_secret_hash(self, client: OAuth2Client, secret_hash: str) -> OAuth2Client:
        client.client_secret_hash = secret_hash
        client.updated_at = utcnow()
        self.session.add(client)
        await self.session.flush()
        return client

    async def touch_last_used(self, client_id: str) -> None:
        await self.session.execute(
            update(OAuth2Client)
            .where(OAuth2Client.client_id == client_id)
            .values(last_used_at=utcnow())
        )


class TokenLogRepository(BaseRepository[OAuth2TokenLog]):
    model = OAuth2TokenLog

    async def record(
        self,
        client_id: str,
        granted_scopes: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        expires_at: Optional[datetime],
    ) -> OAuth2TokenLog:
        return await self.add(
            OAuth2TokenLog(
                client_id=client_id,
                granted_scopes=granted_scopes,
                ip_address=ip_address,
                user_agent=user_agent,
                expires_at=expires_at,
            )
        )
