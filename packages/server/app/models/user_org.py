"""User-Organization membership link (join table)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class MembershipLink(SQLModel, table=True):
    __tablename__ = "user_organization_links"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", primary_key=True, index=True, ondelete="CASCADE"
    )
    role: str = Field(default="member", nullable=False, index=True)  # owner | admin | member
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")},
        sa_type=sa.DateTime(timezone=True),
    )
