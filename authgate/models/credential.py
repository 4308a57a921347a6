from __future__ import annotations

"""
Credential model.

One-to-one with Principal — uses `principal_id` as its PK.

Uniqueness of (tenant, role, provider_key) is enforced HERE, by a
partial unique index, so concurrent joins race inside the database
rather than in application code.  `role_type` and `scope_key` are
copied from the principal for that reason; `scope_key` is the tenant
scope or "" for global roles (NULLs never collide in a unique index).

Soft-deleting a principal sets `released_at`, which drops the row out
of the index and frees the email for reuse.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authgate.core.roles import RoleType
from authgate.models.base import Base, TimestampMixin, role_type_column_type

if TYPE_CHECKING:
    from authgate.models.principal import PrincipalRow


class CredentialRow(Base, TimestampMixin):
    __tablename__ = "credentials"

    # PK = FK → principals.id  (true one-to-one)
    principal_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("principals.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role_type: Mapped[RoleType] = mapped_column(role_type_column_type(), nullable=False)
    scope_key: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_key: Mapped[str] = mapped_column(String(320), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)  # null unless local
    last_authenticated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Relationships ────────────────────────────────────────────────
    principal: Mapped["PrincipalRow"] = relationship(  # noqa: F821
        back_populates="credential",
        lazy="selectin",
    )

    __table_args__ = (
        Index(
            "uq_credentials_identity",
            "scope_key",
            "role_type",
            "provider_key",
            unique=True,
            postgresql_where=text("released_at IS NULL"),
            sqlite_where=text("released_at IS NULL"),
        ),
        Index("ix_credentials_lookup", "scope_key", "role_type", "provider", "provider_key"),
    )

    def __repr__(self) -> str:
        return f"<Credential {self.provider}:{self.provider_key}>"
