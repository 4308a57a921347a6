"""
Audit trail for authentication events.

Each event is written in its own store transaction, after the operation
it describes has committed or failed, so a rolled-back join still leaves
a `join_failed` row behind.  Writing is best-effort: a failed write is
logged and dropped, it never changes the outcome of the auth call.

`reason` holds the internal distinction the caller is never shown
(unknown identity vs. wrong password, revoked vs. expired token ...).
"""

import logging
import uuid
from typing import Callable, Optional

from authgate.core.roles import RoleType
from authgate.stores.base import Storage
from authgate.stores.records import AuthEvent, Principal, utcnow

logger = logging.getLogger("audit")


class AuditEvent:
    JOIN = "join"
    JOIN_FAILED = "join_failed"
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    REFRESH = "refresh"
    REFRESH_FAILED = "refresh_failed"
    LOGOUT = "logout"
    ACCOUNT_DISABLED = "account_disabled"
    ACCOUNT_ENABLED = "account_enabled"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNT_PURGED = "account_purged"
    FORCE_LOGOUT = "force_logout"


class AuditService:
    def __init__(self, storage: Storage, clock: Callable = utcnow) -> None:
        self._storage = storage
        self._clock = clock

    async def record(
        self,
        event_type: str,
        *,
        principal: Optional[Principal] = None,
        principal_id: Optional[uuid.UUID] = None,
        role_type: Optional[RoleType] = None,
        tenant_scope: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        if principal is not None:
            principal_id = principal.id
            role_type = principal.role_type
            tenant_scope = principal.tenant_scope

        event = AuthEvent(
            event_type=event_type,
            principal_id=principal_id,
            role_type=role_type,
            tenant_scope=tenant_scope,
            reason=reason,
            created_at=self._clock(),
        )
        level = logging.WARNING if event_type.endswith("_failed") else logging.INFO
        logger.log(
            level,
            "%s principal=%s role=%s tenant=%s reason=%s",
            event_type,
            principal_id,
            role_type.value if role_type else None,
            tenant_scope,
            reason,
        )
        try:
            async with self._storage.transaction() as tx:
                await tx.events.append(event)
        except Exception:
            logger.exception("Failed to persist audit event %s", event_type)

    async def list_events(
        self, *, principal_id: Optional[uuid.UUID] = None, limit: int = 100
    ) -> list[AuthEvent]:
        async with self._storage.transaction() as tx:
            return await tx.events.list_events(principal_id=principal_id, limit=limit)
