"""
Auth event model — server-side audit trail.

Holds the *reason* behind every rejected login / refresh so operators
can investigate, while clients only ever see the generic error.
No foreign key to principals: events outlive a purge.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from authgate.models.base import Base, UUIDPrimaryKeyMixin


class AuthEventRow(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "auth_events"

    event_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    principal_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True, index=True)
    role_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tenant_scope: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuthEvent {self.event_type} principal={self.principal_id}>"
