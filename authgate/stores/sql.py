"""
SQLAlchemy store (PostgreSQL in production, SQLite in tests).

One AsyncSession per transaction; `session.begin()` commits on clean
exit and rolls back if anything inside raises.

Race-sensitive writes never read-then-write:
- `create` relies on the `uq_credentials_identity` partial unique
  index and maps the IntegrityError to DuplicateIdentityError;
- `mark_revoked` is a single conditional UPDATE — under concurrent
  redemption the second UPDATE waits on the row lock, re-evaluates
  `revoked_at IS NULL` and matches nothing.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authgate.core.database import build_engine, build_session_factory
from authgate.core.errors import DuplicateIdentityError
from authgate.core.roles import RoleType
from authgate.models.auth_event import AuthEventRow
from authgate.models.credential import CredentialRow
from authgate.models.principal import PrincipalRow
from authgate.models.session import AuthSessionRow
from authgate.stores.records import (
    AuthEvent,
    Credential,
    Principal,
    PrincipalStatus,
    SessionRecord,
    scope_key,
    utcnow,
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _principal_from_row(row: PrincipalRow) -> Principal:
    return Principal(
        id=row.id,
        role_type=RoleType(row.role_type),
        tenant_scope=row.tenant_scope,
        status=PrincipalStatus(row.status),
        profile=dict(row.profile or {}),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        deleted_at=_aware(row.deleted_at),
    )


def _credential_from_row(row: CredentialRow, tenant_scope: Optional[str]) -> Credential:
    return Credential(
        principal_id=row.principal_id,
        role_type=RoleType(row.role_type),
        tenant_scope=tenant_scope,
        provider=row.provider,
        provider_key=row.provider_key,
        password_hash=row.password_hash,
        last_authenticated_at=_aware(row.last_authenticated_at),
        released_at=_aware(row.released_at),
    )


def _session_from_row(row: AuthSessionRow) -> SessionRecord:
    return SessionRecord(
        session_id=row.id,
        principal_id=row.principal_id,
        role_type=RoleType(row.role_type),
        tenant_scope=row.tenant_scope,
        refresh_token_hash=row.refresh_token_hash,
        issued_at=_aware(row.issued_at),
        access_expires_at=_aware(row.access_expires_at),
        refresh_expires_at=_aware(row.refresh_expires_at),
        rotated_from=row.rotated_from,
        revoked_at=_aware(row.revoked_at),
        revoke_reason=row.revoke_reason,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
    )


def _event_from_row(row: AuthEventRow) -> AuthEvent:
    return AuthEvent(
        id=row.id,
        event_type=row.event_type,
        principal_id=row.principal_id,
        role_type=RoleType(row.role_type) if row.role_type else None,
        tenant_scope=row.tenant_scope,
        reason=row.reason,
        created_at=_aware(row.created_at),
    )


# ── Credential store ─────────────────────────────────────────────────


class SqlCredentialStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _get_row(self, principal_id: uuid.UUID) -> Optional[PrincipalRow]:
        result = await self._db.execute(select(PrincipalRow).where(PrincipalRow.id == principal_id))
        return result.scalar_one_or_none()

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
        row = PrincipalRow(
            id=uuid.uuid4(),
            role_type=RoleType(role_type),
            tenant_scope=tenant_scope,
            status=PrincipalStatus.ACTIVE,
            profile=dict(profile_fields),
        )
        row.credential = CredentialRow(
            role_type=RoleType(role_type),
            scope_key=scope_key(tenant_scope),
            provider=provider,
            provider_key=provider_key,
            password_hash=password_hash,
        )
        self._db.add(row)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            # The enclosing transaction is rolled back on the way out.
            raise DuplicateIdentityError() from exc
        return _principal_from_row(row)

    async def find_by_provider_key(
        self,
        role_type: RoleType,
        tenant_scope: Optional[str],
        provider: str,
        provider_key: str,
    ) -> Optional[Principal]:
        stmt = (
            select(PrincipalRow)
            .join(PrincipalRow.credential)
            .where(
                CredentialRow.scope_key == scope_key(tenant_scope),
                CredentialRow.role_type == RoleType(role_type),
                CredentialRow.provider == provider,
                CredentialRow.provider_key == provider_key,
                CredentialRow.released_at.is_(None),
                PrincipalRow.status != PrincipalStatus.DELETED,
            )
        )
        result = await self._db.execute(stmt)
        row = result.scalar_one_or_none()
        return _principal_from_row(row) if row else None

    async def find_by_id(
        self, principal_id: uuid.UUID, *, include_deleted: bool = False
    ) -> Optional[Principal]:
        stmt = select(PrincipalRow).where(PrincipalRow.id == principal_id)
        if not include_deleted:
            stmt = stmt.where(PrincipalRow.status != PrincipalStatus.DELETED)
        result = await self._db.execute(stmt)
        row = result.scalar_one_or_none()
        return _principal_from_row(row) if row else None

    async def get_credential(self, principal_id: uuid.UUID) -> Optional[Credential]:
        stmt = (
            select(CredentialRow, PrincipalRow.tenant_scope)
            .join(PrincipalRow, PrincipalRow.id == CredentialRow.principal_id)
            .where(CredentialRow.principal_id == principal_id)
        )
        result = await self._db.execute(stmt)
        found = result.one_or_none()
        if found is None:
            return None
        row, tenant_scope = found
        return _credential_from_row(row, tenant_scope)

    async def update_last_authenticated_at(
        self, principal_id: uuid.UUID, timestamp: datetime
    ) -> None:
        stmt = (
            update(CredentialRow)
            .where(CredentialRow.principal_id == principal_id)
            .values(last_authenticated_at=timestamp)
            .execution_options(synchronize_session=False)
        )
        await self._db.execute(stmt)

    async def set_status(
        self, principal_id: uuid.UUID, status: PrincipalStatus
    ) -> Optional[Principal]:
        row = await self._get_row(principal_id)
        if row is None or row.status == PrincipalStatus.DELETED:
            return None
        row.status = status
        row.updated_at = utcnow()
        await self._db.flush()
        return _principal_from_row(row)

    async def soft_delete(
        self, principal_id: uuid.UUID, timestamp: datetime
    ) -> Optional[Principal]:
        row = await self._get_row(principal_id)
        if row is None or row.status == PrincipalStatus.DELETED:
            return None
        row.status = PrincipalStatus.DELETED
        row.deleted_at = timestamp
        row.updated_at = timestamp
        if row.credential is not None:
            row.credential.released_at = timestamp
        await self._db.flush()
        return _principal_from_row(row)

    async def purge(self, principal_id: uuid.UUID) -> bool:
        await self._db.execute(
            delete(AuthSessionRow)
            .where(AuthSessionRow.principal_id == principal_id)
            .execution_options(synchronize_session=False)
        )
        await self._db.execute(
            delete(CredentialRow)
            .where(CredentialRow.principal_id == principal_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(
            delete(PrincipalRow)
            .where(PrincipalRow.id == principal_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_principals(
        self,
        *,
        role_type: Optional[RoleType] = None,
        tenant_scope: Optional[str] = None,
        include_deleted: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Principal]:
        stmt = select(PrincipalRow)
        if not include_deleted:
            stmt = stmt.where(PrincipalRow.status != PrincipalStatus.DELETED)
        if role_type is not None:
            stmt = stmt.where(PrincipalRow.role_type == RoleType(role_type))
        if tenant_scope is not None:
            stmt = stmt.where(PrincipalRow.tenant_scope == tenant_scope)
        stmt = stmt.order_by(PrincipalRow.created_at).offset(skip).limit(limit)
        result = await self._db.execute(stmt)
        return [_principal_from_row(row) for row in result.scalars().all()]


# ── Session store ────────────────────────────────────────────────────


class SqlSessionStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def insert(self, record: SessionRecord) -> None:
        self._db.add(
            AuthSessionRow(
                id=record.session_id,
                principal_id=record.principal_id,
                role_type=RoleType(record.role_type),
                tenant_scope=record.tenant_scope,
                refresh_token_hash=record.refresh_token_hash,
                issued_at=record.issued_at,
                access_expires_at=record.access_expires_at,
                refresh_expires_at=record.refresh_expires_at,
                rotated_from=record.rotated_from,
                revoked_at=record.revoked_at,
                revoke_reason=record.revoke_reason,
                user_agent=record.user_agent,
                ip_address=record.ip_address,
            )
        )
        await self._db.flush()

    async def find_by_refresh_hash(self, refresh_token_hash: str) -> Optional[SessionRecord]:
        result = await self._db.execute(
            select(AuthSessionRow).where(AuthSessionRow.refresh_token_hash == refresh_token_hash)
        )
        row = result.scalar_one_or_none()
        return _session_from_row(row) if row else None

    async def find_by_id(self, session_id: uuid.UUID) -> Optional[SessionRecord]:
        # populate_existing: a CAS UPDATE may have changed the row under
        # an instance already in the identity map.
        result = await self._db.execute(
            select(AuthSessionRow)
            .where(AuthSessionRow.id == session_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _session_from_row(row) if row else None

    async def mark_revoked(
        self, session_id: uuid.UUID, revoked_at: datetime, reason: str
    ) -> bool:
        stmt = (
            update(AuthSessionRow)
            .where(AuthSessionRow.id == session_id, AuthSessionRow.revoked_at.is_(None))
            .values(revoked_at=revoked_at, revoke_reason=reason)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        return result.rowcount == 1

    async def revoke_all_for_principal(
        self, principal_id: uuid.UUID, revoked_at: datetime, reason: str
    ) -> int:
        stmt = (
            update(AuthSessionRow)
            .where(
                AuthSessionRow.principal_id == principal_id,
                AuthSessionRow.revoked_at.is_(None),
            )
            .values(revoked_at=revoked_at, revoke_reason=reason)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        return result.rowcount

    async def list_for_principal(
        self, principal_id: uuid.UUID, *, live_at: Optional[datetime] = None
    ) -> list[SessionRecord]:
        stmt = select(AuthSessionRow).where(AuthSessionRow.principal_id == principal_id)
        if live_at is not None:
            stmt = stmt.where(
                AuthSessionRow.revoked_at.is_(None),
                AuthSessionRow.refresh_expires_at >= live_at,
            )
        result = await self._db.execute(stmt.order_by(AuthSessionRow.issued_at))
        return [_session_from_row(row) for row in result.scalars().all()]

    async def delete_expired(self, before: datetime) -> int:
        expired = select(AuthSessionRow.id).where(AuthSessionRow.refresh_expires_at < before)
        # Successors may point at a node about to go; detach them first
        # so the sweep does not depend on ON DELETE SET NULL support.
        await self._db.execute(
            update(AuthSessionRow)
            .where(AuthSessionRow.rotated_from.in_(expired))
            .values(rotated_from=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(
            delete(AuthSessionRow)
            .where(AuthSessionRow.refresh_expires_at < before)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


# ── Audit store ──────────────────────────────────────────────────────


class SqlAuditStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def append(self, event: AuthEvent) -> None:
        self._db.add(
            AuthEventRow(
                id=event.id,
                event_type=event.event_type,
                principal_id=event.principal_id,
                role_type=RoleType(event.role_type).value if event.role_type else None,
                tenant_scope=event.tenant_scope,
                reason=event.reason,
                created_at=event.created_at,
            )
        )
        await self._db.flush()

    async def list_events(
        self, *, principal_id: Optional[uuid.UUID] = None, limit: int = 100
    ) -> list[AuthEvent]:
        stmt = select(AuthEventRow)
        if principal_id is not None:
            stmt = stmt.where(AuthEventRow.principal_id == principal_id)
        stmt = stmt.order_by(AuthEventRow.created_at.desc()).limit(limit)
        result = await self._db.execute(stmt)
        return [_event_from_row(row) for row in result.scalars().all()]


# ── Storage ──────────────────────────────────────────────────────────


class SqlTransaction:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.credentials = SqlCredentialStore(db)
        self.sessions = SqlSessionStore(db)
        self.events = SqlAuditStore(db)


class SqlStorage:
    def __init__(self, session_factory: async_sessionmaker, engine=None) -> None:
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> "SqlStorage":
        engine = build_engine(url, echo=echo)
        return cls(build_session_factory(engine), engine=engine)

    @property
    def engine(self):
        return self._engine

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlTransaction]:
        async with self._session_factory() as session:
            async with session.begin():
                yield SqlTransaction(session)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
