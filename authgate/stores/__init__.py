"""
Store package — interfaces, records and the backend factory.

Adapters are imported lazily so the memory backend never pulls in the
SQL engine setup.
"""

from authgate.core.config import Settings
from authgate.stores.base import (
    AuditStore,
    CredentialStore,
    SessionStore,
    Storage,
    StoreTransaction,
)
from authgate.stores.records import (
    AuthEvent,
    Credential,
    Principal,
    PrincipalStatus,
    RevokeReason,
    SessionRecord,
)


def build_storage(settings: Settings) -> Storage:
    if settings.STORE_BACKEND == "memory":
        from authgate.stores.memory import MemoryStorage

        return MemoryStorage()

    from authgate.stores.sql import SqlStorage

    return SqlStorage.from_url(settings.DATABASE_URL, echo=settings.DEBUG)


__all__ = [
    "AuditStore",
    "AuthEvent",
    "Credential",
    "CredentialStore",
    "Principal",
    "PrincipalStatus",
    "RevokeReason",
    "SessionRecord",
    "SessionStore",
    "Storage",
    "StoreTransaction",
    "build_storage",
]
