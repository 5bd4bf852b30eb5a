"""
Base repository.

Holds the session and the generic get/add/delete operations shared by the
domain repositories. All statements are built with SQLAlchemy expressions,
so every value reaches the database as a bound parameter.
"""

from __future__ import annotations

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from app.core.database import dialect_name

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic async repository.

    Example:
        class UserRepository(BaseRepository[User]):
            model = User
    """

    model: Type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, id: Any) -> Optional[ModelType]:
        return await self.session.get(self.model, id)

    async def add(self, obj: ModelType) -> ModelType:
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def delete(self, obj: ModelType) -> None:
        await self.session.delete(obj)
        await self.session.flush()

    def _insert(self, model: Optional[type] = None):
        """Dialect-specific INSERT supporting ``ON CONFLICT`` clauses."""
        target = model or self.model
        if dialect_name(self.session) == "postgresql":
            return postgresql.insert(target)
        return sqlite.insert(target)
