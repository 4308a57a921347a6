"""
Store interfaces.

A `Storage` hands out transactions; everything done through one
`StoreTransaction` commits or rolls back together.  That is how join
keeps "create principal" and "open session" atomic, and how a refresh
revokes the consumed node and inserts its successor as one write.

Both atomic primitives the services rely on are the store's job:
- `CredentialStore.create` is insert-or-fail on the identity key;
- `SessionStore.mark_revoked` is compare-and-set on `revoked_at`.
"""

import uuid
from datetime import datetime
from typing import AsyncContextManager, Optional, Protocol

from authgate.core.roles import RoleType
from authgate.stores.records import (
    AuthEvent,
    Credential,
    Principal,
    PrincipalStatus,
    SessionRecord,
)


class CredentialStore(Protocol):
    async def create(
        self,
        *,
        role_type: RoleType,
        tenant_scope: Optional[str],
        provider: str,
        provider_key: str,
        password_hash: Optional[str],
        profile_fields: dict,
    ) -> Principal:
        """Raises DuplicateIdentityError if the identity key is taken."""
        ...

    async def find_by_provider_key(
        self,
        role_type: RoleType,
        tenant_scope: Optional[str],
        provider: str,
        provider_key: str,
    ) -> Optional[Principal]: ...

    async def find_by_id(
        self, principal_id: uuid.UUID, *, include_deleted: bool = False
    ) -> Optional[Principal]: ...

    async def get_credential(self, principal_id: uuid.UUID) -> Optional[Credential]: ...

    async def update_last_authenticated_at(
        self, principal_id: uuid.UUID, timestamp: datetime
    ) -> None: ...

    async def set_status(
        self, principal_id: uuid.UUID, status: PrincipalStatus
    ) -> Optional[Principal]: ...

    async def soft_delete(
        self, principal_id: uuid.UUID, timestamp: datetime
    ) -> Optional[Principal]: ...

    async def purge(self, principal_id: uuid.UUID) -> bool: ...

    async def list_principals(
        self,
        *,
        role_type: Optional[RoleType] = None,
        tenant_scope: Optional[str] = None,
        include_deleted: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Principal]: ...


class SessionStore(Protocol):
    async def insert(self, record: SessionRecord) -> None: ...

    async def find_by_refresh_hash(self, refresh_token_hash: str) -> Optional[SessionRecord]: ...

    async def find_by_id(self, session_id: uuid.UUID) -> Optional[SessionRecord]: ...

    async def mark_revoked(
        self, session_id: uuid.UUID, revoked_at: datetime, reason: str
    ) -> bool:
        """Set revoked_at only if unset.  True iff this call set it."""
        ...

    async def revoke_all_for_principal(
        self, principal_id: uuid.UUID, revoked_at: datetime, reason: str
    ) -> int: ...

    async def list_for_principal(
        self, principal_id: uuid.UUID, *, live_at: Optional[datetime] = None
    ) -> list[SessionRecord]: ...

    async def delete_expired(self, before: datetime) -> int: ...


class AuditStore(Protocol):
    async def append(self, event: AuthEvent) -> None: ...

    async def list_events(
        self, *, principal_id: Optional[uuid.UUID] = None, limit: int = 100
    ) -> list[AuthEvent]: ...


class StoreTransaction(Protocol):
    credentials: CredentialStore
    sessions: SessionStore
    events: AuditStore


class Storage(Protocol):
    def transaction(self) -> AsyncContextManager[StoreTransaction]: ...

    async def close(self) -> None: ...
