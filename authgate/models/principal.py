from __future__ import annotations

"""
Principal model.

Design decisions:
- ONE table for every role type.  Role-specific profile data lives in
  the `profile` JSON column, validated against the role capability
  table at join time.
- Status is an ENUM (ACTIVE → DISABLED → DELETED); deletion is soft
  until an explicit purge.
- Authentication material lives in the 1:1 `credentials` table.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, DateTime, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authgate.core.roles import RoleType
from authgate.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, role_type_column_type
from authgate.stores.records import PrincipalStatus

if TYPE_CHECKING:
    from authgate.models.credential import CredentialRow


class PrincipalRow(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "principals"

    role_type: Mapped[RoleType] = mapped_column(role_type_column_type(), nullable=False)
    tenant_scope: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[PrincipalStatus] = mapped_column(
        Enum(
            PrincipalStatus,
            name="principal_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=PrincipalStatus.ACTIVE,
        nullable=False,
    )
    profile: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Relationships ────────────────────────────────────────────────
    credential: Mapped["CredentialRow | None"] = relationship(  # noqa: F821
        back_populates="principal",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_principals_tenant_role", "tenant_scope", "role_type"),
    )

    def __repr__(self) -> str:
        return f"<Principal {self.id} {self.role_type.value} [{self.status.value}]>"
