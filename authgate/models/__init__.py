"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for Alembic and test `create_all`).
"""

from authgate.models.auth_event import AuthEventRow
from authgate.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from authgate.models.credential import CredentialRow
from authgate.models.principal import PrincipalRow
from authgate.models.session import AuthSessionRow

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "PrincipalRow",
    "CredentialRow",
    "AuthSessionRow",
    "AuthEventRow",
]
