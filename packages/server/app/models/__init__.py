# SQLModel definitions. Imported here so the metadata is complete for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .user_org import MembershipLink  # noqa: F401
from .oauth2_client import OAuth2Client, OAuth2TokenLog  # noqa: F401
