"""create principals, credentials, auth_sessions and auth_events

Revision ID: 4c1e9a2b7d30
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "4c1e9a2b7d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLE_TYPES = (
    "systemAdmin",
    "organizationAdmin",
    "tpm",
    "pm",
    "pmo",
    "developer",
    "designer",
    "qa",
    "departmentHead",
    "medicalDoctor",
    "nurse",
    "receptionist",
    "technician",
    "patient",
)
PRINCIPAL_STATUSES = ("active", "disabled", "deleted")

# Created once up front; the columns below only reference them.
role_type_enum = postgresql.ENUM(*ROLE_TYPES, name="role_type", create_type=False)
principal_status_enum = postgresql.ENUM(
    *PRINCIPAL_STATUSES, name="principal_status", create_type=False
)


def upgrade() -> None:
    """Create the identity, credential, session and audit tables."""
    bind = op.get_bind()
    postgresql.ENUM(*ROLE_TYPES, name="role_type").create(bind, checkfirst=True)
    postgresql.ENUM(*PRINCIPAL_STATUSES, name="principal_status").create(bind, checkfirst=True)

    op.create_table(
        "principals",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("role_type", role_type_enum, nullable=False),
        sa.Column("tenant_scope", sa.String(length=128), nullable=True),
        sa.Column("status", principal_status_enum, nullable=False),
        sa.Column("profile", sa.JSON(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_principals_tenant_role", "principals", ["tenant_scope", "role_type"])

    op.create_table(
        "credentials",
        sa.Column("principal_id", sa.Uuid(), nullable=False),
        sa.Column("role_type", role_type_enum, nullable=False),
        sa.Column("scope_key", sa.String(length=128), nullable=False),
        sa.Column("provider", sa.String(length=64), nullable=False),
        sa.Column("provider_key", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=512), nullable=True),
        sa.Column("last_authenticated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["principal_id"], ["principals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("principal_id"),
    )
    op.create_index(
        "uq_credentials_identity",
        "credentials",
        ["scope_key", "role_type", "provider_key"],
        unique=True,
        postgresql_where=sa.text("released_at IS NULL"),
    )
    op.create_index(
        "ix_credentials_lookup",
        "credentials",
        ["scope_key", "role_type", "provider", "provider_key"],
    )

    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("principal_id", sa.Uuid(), nullable=False),
        sa.Column("role_type", role_type_enum, nullable=False),
        sa.Column("tenant_scope", sa.String(length=128), nullable=True),
        sa.Column("refresh_token_hash", sa.String(length=64), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("access_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("refresh_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("rotated_from", sa.Uuid(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoke_reason", sa.String(length=32), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["principal_id"], ["principals.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["rotated_from"], ["auth_sessions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("refresh_token_hash"),
    )
    op.create_index("ix_auth_sessions_principal_id", "auth_sessions", ["principal_id"])
    op.create_index("ix_auth_sessions_refresh_expires_at", "auth_sessions", ["refresh_expires_at"])
    op.create_index(
        "ix_auth_sessions_principal_revoked",
        "auth_sessions",
        ["principal_id", "revoked_at"],
    )

    op.create_table(
        "auth_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("principal_id", sa.Uuid(), nullable=True),
        sa.Column("role_type", sa.String(length=64), nullable=True),
        sa.Column("tenant_scope", sa.String(length=128), nullable=True),
        sa.Column("reason", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_auth_events_event_type", "auth_events", ["event_type"])
    op.create_index("ix_auth_events_principal_id", "auth_events", ["principal_id"])
    op.create_index("ix_auth_events_created_at", "auth_events", ["created_at"])


def downgrade() -> None:
    """Drop every auth table and enum type."""
    op.drop_index("ix_auth_events_created_at", table_name="auth_events")
    op.drop_index("ix_auth_events_principal_id", table_name="auth_events")
    op.drop_index("ix_auth_events_event_type", table_name="auth_events")
    op.drop_table("auth_events")

    op.drop_index("ix_auth_sessions_principal_revoked", table_name="auth_sessions")
    op.drop_index("ix_auth_sessions_refresh_expires_at", table_name="auth_sessions")
    op.drop_index("ix_auth_sessions_principal_id", table_name="auth_sessions")
    op.drop_table("auth_sessions")

    op.drop_index("ix_credentials_lookup", table_name="credentials")
    op.drop_index("uq_credentials_identity", table_name="credentials")
    op.drop_table("credentials")

    op.drop_index("ix_principals_tenant_role", table_name="principals")
    op.drop_table("principals")

    bind = op.get_bind()
    sa.Enum(name="principal_status").drop(bind, checkfirst=True)
    sa.Enum(name="role_type").drop(bind, checkfirst=True)
