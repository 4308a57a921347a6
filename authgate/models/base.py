"""
Declarative base & shared mixins for all models.

Principals get:
- A UUID primary key (generated application-side via `uuid4`, never
  reused across role types).
- `created_at` / `updated_at` timestamps (UTC, auto-managed).

Session and audit rows carry their own explicit timestamps instead of
the mixin; their times are part of the domain, not bookkeeping.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from authgate.core.roles import RoleType


class Base(DeclarativeBase):
    """SQLAlchemy declarative base — all models inherit from this."""
    pass


def role_type_column_type() -> Enum:
    """Store enum *values* ("systemAdmin"), not member names."""
    return Enum(
        RoleType,
        name="role_type",
        values_callable=lambda enum_cls: [member.value for member in enum_cls],
    )


class TimestampMixin:
    """Adds created_at / updated_at to any model that inherits it."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class UUIDPrimaryKeyMixin:
    """Adds a UUID `id` primary key to any model that inherits it."""

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
