"""Organization model."""

from typing import Any, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONDocument, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"
    __table_args__ = (
        # At most one default organization.
        sa.Index(
            "uq_organizations_default",
            "is_default",
            unique=True,
            postgresql_where=sa.text("is_default"),
            sqlite_where=sa.text("is_default"),
        ),
    )

    domain_id: Optional[uuid.UUID] = Field(default=None, nullable=True)
    parent_id: Optional[uuid.UUID] = Field(default=None, nullable=True)
    org_type: str = Field(default="organization", nullable=False, index=True)  # domain | organization | tenant
    name: str = Field(unique=True, index=True, nullable=False, max_length=1024)
    description: str = Field(default="", nullable=False)
    owner_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", ondelete="SET NULL")
    is_default: bool = Field(default=False, nullable=False)
    data: dict[str, Any] = Field(default_factory=dict, sa_type=JSONDocument, nullable=False)
