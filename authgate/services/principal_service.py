"""
Principal administration (systemAdmin only at the HTTP layer).

Disabling, soft-deleting and force-logout all revoke the principal's
live sessions in the same transaction as the status change.
"""

import uuid
from datetime import timedelta
from typing import Optional

from authgate.core.errors import NotFound
from authgate.core.roles import RoleType
from authgate.services.audit_service import AuditEvent, AuditService
from authgate.services.session_ledger import SessionLedger
from authgate.stores.base import Storage
from authgate.stores.records import AuthEvent, Principal, PrincipalStatus, RevokeReason, SessionRecord


class PrincipalService:
    def __init__(self, storage: Storage, ledger: SessionLedger, audit: AuditService) -> None:
        self._storage = storage
        self._ledger = ledger
        self._audit = audit

    async def list_principals(
        self,
        *,
        role_type: Optional[RoleType] = None,
        tenant_scope: Optional[str] = None,
        include_deleted: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Principal]:
        async with self._storage.transaction() as tx:
            return await tx.credentials.list_principals(
                role_type=role_type,
                tenant_scope=tenant_scope,
                include_deleted=include_deleted,
                skip=skip,
                limit=limit,
            )

    async def get(self, principal_id: uuid.UUID, *, include_deleted: bool = False) -> Principal:
        async with self._storage.transaction() as tx:
            principal = await tx.credentials.find_by_id(
                principal_id, include_deleted=include_deleted
            )
        if principal is None:
            raise NotFound("Principal not found")
        return principal

    async def list_sessions(
        self, principal_id: uuid.UUID, *, live_only: bool = True
    ) -> list[SessionRecord]:
        async with self._storage.transaction() as tx:
            if await tx.credentials.find_by_id(principal_id, include_deleted=True) is None:
                raise NotFound("Principal not found")
            return await tx.sessions.list_for_principal(
                principal_id, live_at=self._ledger.now() if live_only else None
            )

    async def list_events(self, principal_id: uuid.UUID, *, limit: int = 100) -> list[AuthEvent]:
        return await self._audit.list_events(principal_id=principal_id, limit=limit)

    # ── Status changes ───────────────────────────────────────────────

    async def disable(self, principal_id: uuid.UUID) -> Principal:
        async with self._storage.transaction() as tx:
            principal = await tx.credentials.set_status(principal_id, PrincipalStatus.DISABLED)
            if principal is None:
                raise NotFound("Principal not found")
            revoked = await self._ledger.revoke_all(
                tx, principal_id, RevokeReason.ACCOUNT_DISABLED
            )
        await self._audit.record(
            AuditEvent.ACCOUNT_DISABLED, principal=principal, reason=f"sessions_revoked:{revoked}"
        )
        return principal

    async def enable(self, principal_id: uuid.UUID) -> Principal:
        async with self._storage.transaction() as tx:
            principal = await tx.credentials.set_status(principal_id, PrincipalStatus.ACTIVE)
        if principal is None:
            raise NotFound("Principal not found")
        await self._audit.record(AuditEvent.ACCOUNT_ENABLED, principal=principal)
        return principal

    async def soft_delete(self, principal_id: uuid.UUID) -> Principal:
        async with self._storage.transaction() as tx:
            principal = await tx.credentials.soft_delete(principal_id, self._ledger.now())
            if principal is None:
                raise NotFound("Principal not found")
            await self._ledger.revoke_all(tx, principal_id, RevokeReason.ACCOUNT_DISABLED)
        await self._audit.record(AuditEvent.ACCOUNT_DELETED, principal=principal)
        return principal

    async def purge(self, principal_id: uuid.UUID) -> None:
        async with self._storage.transaction() as tx:
            principal = await tx.credentials.find_by_id(principal_id, include_deleted=True)
            if principal is None or not await tx.credentials.purge(principal_id):
                raise NotFound("Principal not found")
        await self._audit.record(AuditEvent.ACCOUNT_PURGED, principal=principal)

    async def force_logout(self, principal_id: uuid.UUID) -> int:
        async with self._storage.transaction() as tx:
            principal = await tx.credentials.find_by_id(principal_id, include_deleted=True)
            if principal is None:
                raise NotFound("Principal not found")
            revoked = await self._ledger.revoke_all(tx, principal_id, RevokeReason.FORCE_LOGOUT)
        await self._audit.record(
            AuditEvent.FORCE_LOGOUT, principal=principal, reason=f"sessions_revoked:{revoked}"
        )
        return revoked

    async def sweep_sessions(self, retention: timedelta) -> int:
        async with self._storage.transaction() as tx:
            return await self._ledger.sweep_expired(tx, retention)
