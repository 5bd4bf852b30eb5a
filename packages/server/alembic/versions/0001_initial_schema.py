"""Initial schema: users, organizations, membership links, OAuth2 clients.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Tables whose updated_at is maintained by the set_updated_at trigger.
TIMESTAMPED_TABLES = ["users", "organizations", "oauth2_clients"]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # users: id is the identity provider's identity id
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(1024), nullable=False),
        sa.Column("first_name", sa.String(1024), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(1024), nullable=False, server_default=""),
        sa.Column("time_zone", sa.String(255), nullable=False, server_default="UTC"),
        sa.Column("ui_mode", sa.String(255), nullable=False, server_default="system"),
        sa.Column("can_create_organizations", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_can_create_organizations", "users", ["can_create_organizations"])

    # organizations
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("domain_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("parent_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("org_type", sa.String(), nullable=False, server_default="organization"),
        sa.Column("name", sa.String(1024), nullable=False),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
        sa.CheckConstraint(
            "org_type IN ('domain', 'organization', 'tenant')", name="ck_organizations_org_type"
        ),
    )
    op.create_index("ix_organizations_id", "organizations", ["id"])
    op.create_index("ix_organizations_name", "organizations", ["name"], unique=True)
    op.create_index("ix_organizations_org_type", "organizations", ["org_type"])
    # At most one default organization.
    op.create_index(
        "uq_organizations_default",
        "organizations",
        ["is_default"],
        unique=True,
        postgresql_where=sa.text("is_default"),
    )

    # user_organization_links
    op.create_table(
        "user_organization_links",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member')", name="ck_user_organization_links_role"),
    )
    op.create_index("ix_user_organization_links_organization_id", "user_organization_links", ["organization_id"])
    op.create_index("ix_user_organization_links_role", "user_organization_links", ["role"])

    # oauth2_clients
    op.create_table(
        "oauth2_clients",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("client_id", sa.String(255), nullable=False),
        sa.Column("client_secret_hash", sa.String(), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("scopes", sa.String(), nullable=False, server_default="data_pipeline"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_oauth2_clients_id", "oauth2_clients", ["id"])
    op.create_index("ix_oauth2_clients_client_id", "oauth2_clients", ["client_id"], unique=True)
    op.create_index("ix_oauth2_clients_user_id", "oauth2_clients", ["user_id"])
    op.create_index("ix_oauth2_clients_org_id", "oauth2_clients", ["org_id"])
    op.create_index("ix_oauth2_clients_is_active", "oauth2_clients", ["is_active"])

    # oauth2_token_logs
    op.create_table(
        "oauth2_token_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("client_id", sa.String(255), nullable=False),
        sa.Column("granted_scopes", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_oauth2_token_logs_id", "oauth2_token_logs", ["id"])
    op.create_index("ix_oauth2_token_logs_client_id", "oauth2_token_logs", ["client_id"])
    op.create_index("ix_oauth2_token_logs_created_at", "oauth2_token_logs", ["created_at"])

    # updated_at trigger
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    for table in TIMESTAMPED_TABLES:
        op.execute(
            f"CREATE TRIGGER {table}_set_updated_at BEFORE UPDATE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION set_updated_at()"
        )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in TIMESTAMPED_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_set_updated_at ON {table}")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at()")

    op.drop_table("oauth2_token_logs")
    op.drop_table("oauth2_clients")
    op.drop_table("user_organization_links")
    op.drop_table("organizations")
    op.drop_table("users")
