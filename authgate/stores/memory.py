"""
In-memory reference store.

Implements the same contract as the SQL store for local development
and tests:

- transactions are serialised by one asyncio.Lock;
- a transaction that raises is rolled back by restoring the snapshot
  taken when it began (the append-only event log is truncated instead
  of copied);
- the identity index plays the role of the partial unique index, and
  `mark_revoked` is the compare-and-set on `revoked_at`.

Records are copied on the way in and out so callers can never mutate
stored state behind the store's back.
"""

import asyncio
import copy
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Optional

from authgate.core.errors import DuplicateIdentityError
from authgate.core.roles import RoleType
from authgate.stores.records import (
    AuthEvent,
    Credential,
    Principal,
    PrincipalStatus,
    SessionRecord,
    scope_key,
    utcnow,
)

logger = logging.getLogger(__name__)

IdentityKey = tuple[str, str, str]

_SNAPSHOT_FIELDS = ("principals", "credentials", "identity_index", "sessions", "session_by_hash")


def _identity_key(role_type: RoleType, tenant_scope: Optional[str], provider_key: str) -> IdentityKey:
    return (scope_key(tenant_scope), RoleType(role_type).value, provider_key)


class _MemoryState:
    def __init__(self) -> None:
        self.principals: dict[uuid.UUID, Principal] = {}
        self.credentials: dict[uuid.UUID, Credential] = {}
        self.identity_index: dict[IdentityKey, uuid.UUID] = {}
        self.sessions: dict[uuid.UUID, SessionRecord] = {}
        self.session_by_hash: dict[str, uuid.UUID] = {}
        self.events: list[AuthEvent] = []


class MemoryCredentialStore:
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

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
        key = _identity_key(role_type, tenant_scope, provider_key)
        if key in self._state.identity_index:
            raise DuplicateIdentityError()

        principal_id = uuid.uuid4()
        now = utcnow()
        principal = Principal(
            id=principal_id,
            role_type=RoleType(role_type),
            tenant_scope=tenant_scope,
            status=PrincipalStatus.ACTIVE,
            profile=copy.deepcopy(profile_fields),
            created_at=now,
            updated_at=now,
        )
        self._state.principals[principal_id] = principal
        self._state.credentials[principal_id] = Credential(
            principal_id=principal_id,
            role_type=RoleType(role_type),
            tenant_scope=tenant_scope,
            provider=provider,
            provider_key=provider_key,
            password_hash=password_hash,
        )
        self._state.identity_index[key] = principal_id
        return copy.deepcopy(principal)

    async def find_by_provider_key(
        self,
        role_type: RoleType,
        tenant_scope: Optional[str],
        provider: str,
        provider_key: str,
    ) -> Optional[Principal]:
        principal_id = self._state.identity_index.get(
            _identity_key(role_type, tenant_scope, provider_key)
        )
        if principal_id is None:
            return None
        credential = self._state.credentials[principal_id]
        if credential.provider != provider:
            return None
        return await self.find_by_id(principal_id)

    async def find_by_id(
        self, principal_id: uuid.UUID, *, include_deleted: bool = False
    ) -> Optional[Principal]:
        principal = self._state.principals.get(principal_id)
        if principal is None:
            return None
        if principal.status == PrincipalStatus.DELETED and not include_deleted:
            return None
        return copy.deepcopy(principal)

    async def get_credential(self, principal_id: uuid.UUID) -> Optional[Credential]:
        credential = self._state.credentials.get(principal_id)
        return replace(credential) if credential else None

    async def update_last_authenticated_at(
        self, principal_id: uuid.UUID, timestamp: datetime
    ) -> None:
        credential = self._state.credentials.get(principal_id)
        if credential is not None:
            credential.last_authenticated_at = timestamp

    async def set_status(
        self, principal_id: uuid.UUID, status: PrincipalStatus
    ) -> Optional[Principal]:
        principal = self._state.principals.get(principal_id)
        if principal is None or principal.status == PrincipalStatus.DELETED:
            return None
        principal.status = status
        principal.updated_at = utcnow()
        return copy.deepcopy(principal)

    async def soft_delete(
        self, principal_id: uuid.UUID, timestamp: datetime
    ) -> Optional[Principal]:
        principal = self._state.principals.get(principal_id)
        if principal is None or principal.status == PrincipalStatus.DELETED:
            return None
        principal.status = PrincipalStatus.DELETED
        principal.deleted_at = timestamp
        principal.updated_at = timestamp

        credential = self._state.credentials[principal_id]
        credential.released_at = timestamp
        key = _identity_key(credential.role_type, credential.tenant_scope, credential.provider_key)
        if self._state.identity_index.get(key) == principal_id:
            del self._state.identity_index[key]
        return copy.deepcopy(principal)

    async def purge(self, principal_id: uuid.UUID) -> bool:
        principal = self._state.principals.pop(principal_id, None)
        if principal is None:
            return False
        credential = self._state.credentials.pop(principal_id, None)
        if credential is not None:
            key = _identity_key(credential.role_type, credential.tenant_scope, credential.provider_key)
            if self._state.identity_index.get(key) == principal_id:
                del self._state.identity_index[key]
        doomed = [s for s in self._state.sessions.values() if s.principal_id == principal_id]
        for record in doomed:
            del self._state.sessions[record.session_id]
            self._state.session_by_hash.pop(record.refresh_token_hash, None)
        return True

    async def list_principals(
        self,
        *,
        role_type: Optional[RoleType] = None,
        tenant_scope: Optional[str] = None,
        include_deleted: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Principal]:
        rows = [
            p
            for p in self._state.principals.values()
            if (include_deleted or p.status != PrincipalStatus.DELETED)
            and (role_type is None or p.role_type == role_type)
            and (tenant_scope is None or p.tenant_scope == tenant_scope)
        ]
        rows.sort(key=lambda p: p.created_at)
        return [copy.deepcopy(p) for p in rows[skip : skip + limit]]


class MemorySessionStore:
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    async def insert(self, record: SessionRecord) -> None:
        if record.refresh_token_hash in self._state.session_by_hash:
            raise ValueError("refresh token hash collision")
        self._state.sessions[record.session_id] = replace(record)
        self._state.session_by_hash[record.refresh_token_hash] = record.session_id

    async def find_by_refresh_hash(self, refresh_token_hash: str) -> Optional[SessionRecord]:
        session_id = self._state.session_by_hash.get(refresh_token_hash)
        if session_id is None:
            return None
        return await self.find_by_id(session_id)

    async def find_by_id(self, session_id: uuid.UUID) -> Optional[SessionRecord]:
        record = self._state.sessions.get(session_id)
        return replace(record) if record else None

    async def mark_revoked(
        self, session_id: uuid.UUID, revoked_at: datetime, reason: str
    ) -> bool:
        record = self._state.sessions.get(session_id)
        if record is None or record.revoked_at is not None:
            return False
        record.revoked_at = revoked_at
        record.revoke_reason = reason
        return True

    async def revoke_all_for_principal(
        self, principal_id: uuid.UUID, revoked_at: datetime, reason: str
    ) -> int:
        count = 0
        for record in self._state.sessions.values():
            if record.principal_id == principal_id and record.revoked_at is None:
                record.revoked_at = revoked_at
                record.revoke_reason = reason
                count += 1
        return count

    async def list_for_principal(
        self, principal_id: uuid.UUID, *, live_at: Optional[datetime] = None
    ) -> list[SessionRecord]:
        rows = [
            replace(s)
            for s in self._state.sessions.values()
            if s.principal_id == principal_id and (live_at is None or s.is_live(live_at))
        ]
        rows.sort(key=lambda s: s.issued_at)
        return rows

    async def delete_expired(self, before: datetime) -> int:
        doomed = [s for s in self._state.sessions.values() if s.refresh_expires_at < before]
        for record in doomed:
            del self._state.sessions[record.session_id]
            self._state.session_by_hash.pop(record.refresh_token_hash, None)
        for record in self._state.sessions.values():
            if record.rotated_from is not None and record.rotated_from not in self._state.sessions:
                record.rotated_from = None
        return len(doomed)


class MemoryAuditStore:
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    async def append(self, event: AuthEvent) -> None:
        self._state.events.append(replace(event))

    async def list_events(
        self, *, principal_id: Optional[uuid.UUID] = None, limit: int = 100
    ) -> list[AuthEvent]:
        rows = [
            e for e in self._state.events if principal_id is None or e.principal_id == principal_id
        ]
        return [replace(e) for e in reversed(rows)][:limit]


class MemoryTransaction:
    def __init__(self, state: _MemoryState) -> None:
        self.credentials = MemoryCredentialStore(state)
        self.sessions = MemorySessionStore(state)
        self.events = MemoryAuditStore(state)


class MemoryStorage:
    """Single-process store; state is lost when the process exits."""

    def __init__(self) -> None:
        self._state = _MemoryState()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTransaction]:
        async with self._lock:
            snapshot = {
                name: copy.deepcopy(getattr(self._state, name)) for name in _SNAPSHOT_FIELDS
            }
            event_count = len(self._state.events)
            try:
                yield MemoryTransaction(self._state)
            except BaseException:
                for name, value in snapshot.items():
                    setattr(self._state, name, value)
                del self._state.events[event_count:]
                logger.debug("Memory transaction rolled back")
                raise

    async def close(self) -> None:
        return None
