"""
Session ledger — refresh-token rotation chains.

Handles:
- Opening a chain root on join / login
- Redeeming a refresh token: revoke the consumed node and insert its
  successor in the SAME store transaction
- Revocation (logout, force logout, account disable) — idempotent
- Expiry sweep

Every method takes the caller's `StoreTransaction`, so the identity
service decides what else commits or rolls back alongside.

Expiry rules:
- both expiries of a successor are computed from "now" using the
  chain's own lifetimes, never by adding to the old expiry;
- "now" is kept in whole seconds, the resolution of the JWT `exp`
  claim, and is nudged one second past the consumed node's issue time
  if the clock has not moved, so successors are strictly later.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from authgate.core.errors import RefreshTokenExpired, TokenRevoked, TokenUnknown
from authgate.core.security import TokenCodec, generate_refresh_token, hash_token
from authgate.stores.base import StoreTransaction
from authgate.stores.records import Principal, RevokeReason, SessionRecord, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionTokenPair:
    access: str
    refresh: str
    expired_at: datetime
    refreshable_until: datetime
    session_id: uuid.UUID


class SessionLedger:
    def __init__(
        self,
        codec: TokenCodec,
        *,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._codec = codec
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    def now(self, *, after: Optional[datetime] = None) -> datetime:
        current = self._clock().replace(microsecond=0)
        if after is not None and current <= after:
            current = after + timedelta(seconds=1)
        return current

    def _issue(
        self,
        *,
        principal_id: uuid.UUID,
        role_type,
        tenant_scope: Optional[str],
        now: datetime,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        rotated_from: Optional[uuid.UUID] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> tuple[SessionRecord, SessionTokenPair]:
        session_id = uuid.uuid4()
        access, access_expires_at = self._codec.issue_access(
            principal_id,
            role_type,
            tenant_scope,
            access_ttl,
            session_id=session_id,
            now=now,
        )
        refresh = generate_refresh_token()
        record = SessionRecord(
            session_id=session_id,
            principal_id=principal_id,
            role_type=role_type,
            tenant_scope=tenant_scope,
            refresh_token_hash=hash_token(refresh),
            issued_at=now,
            access_expires_at=access_expires_at,
            refresh_expires_at=now + refresh_ttl,
            rotated_from=rotated_from,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        pair = SessionTokenPair(
            access=access,
            refresh=refresh,
            expired_at=record.access_expires_at,
            refreshable_until=record.refresh_expires_at,
            session_id=session_id,
        )
        return record, pair

    # ── Open ─────────────────────────────────────────────────────────

    async def open(
        self,
        tx: StoreTransaction,
        principal: Principal,
        *,
        access_ttl: Optional[timedelta] = None,
        refresh_ttl: Optional[timedelta] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> SessionTokenPair:
        """Start a new rotation chain for `principal`."""
        record, pair = self._issue(
            principal_id=principal.id,
            role_type=principal.role_type,
            tenant_scope=principal.tenant_scope,
            now=self.now(),
            access_ttl=access_ttl or self.access_ttl,
            refresh_ttl=refresh_ttl or self.refresh_ttl,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        await tx.sessions.insert(record)
        logger.debug("Opened session %s for principal %s", record.session_id, principal.id)
        return pair

    # ── Redeem ───────────────────────────────────────────────────────

    async def lookup(self, tx: StoreTransaction, refresh_token: str) -> SessionRecord:
        """Find the live node a refresh token belongs to.

        Raises TokenUnknown, TokenRevoked or RefreshTokenExpired.
        """
        if not refresh_token:
            raise TokenUnknown()
        record = await tx.sessions.find_by_refresh_hash(hash_token(refresh_token))
        if record is None:
            raise TokenUnknown()
        if record.revoked_at is not None:
            raise TokenRevoked()
        if self._clock() > record.refresh_expires_at:
            raise RefreshTokenExpired()
        return record

    async def rotate(self, tx: StoreTransaction, consumed: SessionRecord) -> SessionTokenPair:
        """Revoke `consumed` and insert exactly one successor."""
        now = self.now(after=consumed.issued_at)
        won = await tx.sessions.mark_revoked(
            consumed.session_id, now, RevokeReason.ROTATED.value
        )
        if not won:
            current = await tx.sessions.find_by_id(consumed.session_id)
            if current is None:
                raise TokenUnknown()
            logger.warning(
                "Refresh token for session %s redeemed concurrently — possible reuse",
                consumed.session_id,
            )
            raise TokenRevoked()

        record, pair = self._issue(
            principal_id=consumed.principal_id,
            role_type=consumed.role_type,
            tenant_scope=consumed.tenant_scope,
            now=now,
            access_ttl=consumed.access_expires_at - consumed.issued_at,
            refresh_ttl=consumed.refresh_expires_at - consumed.issued_at,
            rotated_from=consumed.session_id,
            user_agent=consumed.user_agent,
            ip_address=consumed.ip_address,
        )
        await tx.sessions.insert(record)
        return pair

    async def redeem(self, tx: StoreTransaction, refresh_token: str) -> SessionTokenPair:
        consumed = await self.lookup(tx, refresh_token)
        return await self.rotate(tx, consumed)

    # ── Revoke / sweep ───────────────────────────────────────────────

    async def revoke(
        self,
        tx: StoreTransaction,
        session_id: uuid.UUID,
        reason: RevokeReason = RevokeReason.LOGOUT,
    ) -> bool:
        """Idempotent.  True if this call did the revoking."""
        return await tx.sessions.mark_revoked(session_id, self.now(), reason.value)

    async def revoke_all(
        self,
        tx: StoreTransaction,
        principal_id: uuid.UUID,
        reason: RevokeReason,
    ) -> int:
        return await tx.sessions.revoke_all_for_principal(principal_id, self.now(), reason.value)

    async def is_live(self, tx: StoreTransaction, session_id: uuid.UUID) -> bool:
        record = await tx.sessions.find_by_id(session_id)
        return record is not None and record.is_live(self._clock())

    async def sweep_expired(self, tx: StoreTransaction, retention: timedelta) -> int:
        """Delete nodes whose refresh window closed more than `retention` ago."""
        removed = await tx.sessions.delete_expired(self._clock() - retention)
        if removed:
            logger.info("Swept %d expired session(s)", removed)
        return removed
