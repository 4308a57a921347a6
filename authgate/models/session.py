"""
Auth session model — one node of a refresh-token rotation chain.

Tracks issued refresh tokens, enabling:
- Refresh-token rotation with hash-based storage (raw token never stored)
- Compare-and-set revocation: `revoked_at` is only ever written by
  `UPDATE … WHERE revoked_at IS NULL`, so one redemption wins a race
- Multi-device login (independent chains per principal)
- Server-side invalidation & force logout
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from authgate.core.roles import RoleType
from authgate.models.base import Base, role_type_column_type


class AuthSessionRow(Base):
    __tablename__ = "auth_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    principal_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_type: Mapped[RoleType] = mapped_column(role_type_column_type(), nullable=False)
    tenant_scope: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    refresh_token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    access_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    refresh_expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    rotated_from: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("auth_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revoke_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_auth_sessions_principal_revoked", "principal_id", "revoked_at"),
    )

    def __repr__(self) -> str:
        return f"<AuthSession principal={self.principal_id} revoked={self.revoked_at is not None}>"
