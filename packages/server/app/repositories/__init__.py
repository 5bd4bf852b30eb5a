"""
Repositories package.

Data access for users, organizations, memberships and OAuth2 clients.

Usage:
    async def handler(session: AsyncSession = Depends(get_session)):
        users = UserRepository(session)
        total = await users.count()
"""

from app.repositories.oauth2_clients import OAuth2ClientRepository, TokenLogRepository
from app.repositories.organizations import OrganizationRepository
from app.repositories.users import UserRepository

__all__ = [
    "OAuth2ClientRepository",
    "OrganizationRepository",
    "TokenLogRepository",
    "UserRepository",
]
