"""
Identity service — join / login / refresh / logout for every role type.

One service serves all roles; what differs per role comes from the
capability table in `authgate.core.roles`.

Atomicity:
- join: "create principal + credential" and "open session" run in one
  store transaction, so a failed session open leaves no identity behind.
- refresh: "revoke consumed node" and "insert successor" run in one
  store transaction (see SessionLedger.rotate).

Failures the caller must not be able to tell apart (unknown identity vs.
wrong password, unknown vs. revoked vs. expired refresh token) raise one
public error; the real reason goes to the audit trail.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from authgate.core.credentials import ExternalCredential, LocalCredential, PresentedCredential
from authgate.core.errors import (
    AccountDisabledError,
    AuthError,
    InvalidCredentialsError,
    LedgerError,
    MissingCredentialError,
    RefreshFailed,
    ValidationFailed,
)
from authgate.core.roles import LOCAL_PROVIDER, RoleType, TenantPolicy, capabilities_for
from authgate.core.security import PasswordHasher
from authgate.services.audit_service import AuditEvent, AuditService
from authgate.services.session_ledger import SessionLedger, SessionTokenPair
from authgate.stores.base import Storage
from authgate.stores.records import Principal, PrincipalStatus, RevokeReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthResult:
    principal: Principal
    token: SessionTokenPair


# ── Input normalisation ──────────────────────────────────────────────


def coerce_role_type(role_type) -> RoleType:
    try:
        return RoleType(role_type)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown role type: {role_type!r}") from exc


def normalize_tenant(tenant_scope: Optional[str]) -> Optional[str]:
    if tenant_scope is None:
        return None
    tenant_scope = tenant_scope.strip()
    return tenant_scope or None


def validate_join(
    role_type: RoleType,
    tenant_scope: Optional[str],
    credential: PresentedCredential,
    profile_fields: dict,
) -> None:
    """Check a join request against the role's capabilities."""
    caps = capabilities_for(role_type)

    if caps.tenant_policy == TenantPolicy.REQUIRED and tenant_scope is None:
        raise ValidationFailed(f"{role_type.value} accounts must belong to a tenant")
    if caps.tenant_policy == TenantPolicy.FORBIDDEN and tenant_scope is not None:
        raise ValidationFailed(f"{role_type.value} accounts cannot belong to a tenant")

    if isinstance(credential, ExternalCredential) and credential.provider == LOCAL_PROVIDER:
        raise ValidationFailed("Local sign-up requires an email and password")
    if credential.provider not in caps.allowed_providers:
        raise ValidationFailed(
            f"Provider {credential.provider!r} is not allowed for {role_type.value}"
        )

    if isinstance(credential, LocalCredential):
        if not credential.password or not credential.password.strip():
            raise MissingCredentialError()
        if "@" not in credential.provider_key:
            raise ValidationFailed("A valid email is required")
    elif not credential.provider_key:
        raise ValidationFailed("External subject is required")

    missing = [
        name
        for name in caps.required_profile_fields
        if not str(profile_fields.get(name) or "").strip()
    ]
    if missing:
        raise ValidationFailed(f"Missing profile fields: {', '.join(missing)}")


class IdentityService:
    def __init__(
        self,
        storage: Storage,
        hasher: PasswordHasher,
        ledger: SessionLedger,
        audit: AuditService,
    ) -> None:
        self._storage = storage
        self._hasher = hasher
        self._ledger = ledger
        self._audit = audit

    # ── Join ─────────────────────────────────────────────────────────

    async def join(
        self,
        role_type: RoleType,
        tenant_scope: Optional[str],
        credential: PresentedCredential,
        profile_fields: Optional[dict] = None,
        *,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> AuthResult:
        tenant_scope = normalize_tenant(tenant_scope)
        profile_fields = dict(profile_fields or {})
        try:
            role_type = coerce_role_type(role_type)
            validate_join(role_type, tenant_scope, credential, profile_fields)

            password_hash = None
            if isinstance(credential, LocalCredential):
                password_hash = await run_in_threadpool(self._hasher.hash, credential.password)

            async with self._storage.transaction() as tx:
                principal = await tx.credentials.create(
                    role_type=role_type,
                    tenant_scope=tenant_scope,
                    provider=credential.provider,
                    provider_key=credential.provider_key,
                    password_hash=password_hash,
                    profile_fields=profile_fields,
                )
                token = await self._ledger.open(
                    tx, principal, user_agent=user_agent, ip_address=ip_address
                )
        except AuthError as exc:
            await self._audit.record(
                AuditEvent.JOIN_FAILED,
                role_type=role_type if isinstance(role_type, RoleType) else None,
                tenant_scope=tenant_scope,
                reason=exc.error_code,
            )
            raise

        await self._audit.record(AuditEvent.JOIN, principal=principal)
        return AuthResult(principal=principal, token=token)

    # ── Login ────────────────────────────────────────────────────────

    async def _fail_login(
        self, role_type: RoleType, tenant_scope: Optional[str], reason: str, principal=None
    ) -> None:
        await self._audit.record(
            AuditEvent.LOGIN_FAILED,
            principal=principal,
            role_type=role_type,
            tenant_scope=tenant_scope,
            reason=reason,
        )

    async def login(
        self,
        role_type: RoleType,
        tenant_scope: Optional[str],
        credential: PresentedCredential,
        *,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> AuthResult:
        role_type = coerce_role_type(role_type)
        tenant_scope = normalize_tenant(tenant_scope)

        if isinstance(credential, LocalCredential) and not credential.password:
            await run_in_threadpool(self._hasher.dummy_verify, credential.password)
            await self._fail_login(role_type, tenant_scope, "missing_password")
            raise InvalidCredentialsError()

        async with self._storage.transaction() as tx:
            principal = await tx.credentials.find_by_provider_key(
                role_type, tenant_scope, credential.provider, credential.provider_key
            )
            stored = await tx.credentials.get_credential(principal.id) if principal else None

        if isinstance(credential, LocalCredential):
            if principal is None or stored is None or stored.password_hash is None:
                await run_in_threadpool(self._hasher.dummy_verify, credential.password)
                await self._fail_login(role_type, tenant_scope, "unknown_identity")
                raise InvalidCredentialsError()
            ok = await run_in_threadpool(
                self._hasher.verify, credential.password, stored.password_hash
            )
            if not ok:
                await self._fail_login(role_type, tenant_scope, "password_mismatch", principal)
                raise InvalidCredentialsError()
        elif principal is None or credential.provider not in capabilities_for(role_type).allowed_providers:
            await self._fail_login(role_type, tenant_scope, "unknown_identity")
            raise InvalidCredentialsError()

        async with self._storage.transaction() as tx:
            current = await tx.credentials.find_by_id(principal.id)
            if current is None:
                token = None
            elif not current.is_active:
                token = None
            else:
                token = await self._ledger.open(
                    tx, current, user_agent=user_agent, ip_address=ip_address
                )

        if current is None:
            await self._fail_login(role_type, tenant_scope, "deleted_during_login", principal)
            raise InvalidCredentialsError()
        if token is None:
            await self._fail_login(role_type, tenant_scope, "account_disabled", current)
            raise AccountDisabledError()

        await self._touch_last_authenticated(current.id)
        await self._audit.record(AuditEvent.LOGIN, principal=current)
        return AuthResult(principal=current, token=token)

    async def _touch_last_authenticated(self, principal_id: uuid.UUID) -> None:
        try:
            async with self._storage.transaction() as tx:
                await tx.credentials.update_last_authenticated_at(
                    principal_id, self._ledger.now()
                )
        except Exception:
            logger.warning(
                "Could not update last_authenticated_at for %s", principal_id, exc_info=True
            )

    # ── Refresh ──────────────────────────────────────────────────────

    async def refresh(self, refresh_token: str) -> SessionTokenPair:
        principal: Optional[Principal] = None
        disabled = False
        try:
            async with self._storage.transaction() as tx:
                consumed = await self._ledger.lookup(tx, refresh_token)
                principal = await tx.credentials.find_by_id(
                    consumed.principal_id, include_deleted=True
                )
                if principal is None or not principal.is_active:
                    await self._ledger.revoke(tx, consumed.session_id, RevokeReason.ACCOUNT_DISABLED)
                    disabled = True
                    pair = None
                else:
                    pair = await self._ledger.rotate(tx, consumed)
        except LedgerError as exc:
            await self._audit.record(AuditEvent.REFRESH_FAILED, reason=exc.reason)
            raise RefreshFailed() from exc

        if disabled:
            if principal is not None and principal.status == PrincipalStatus.DISABLED:
                await self._audit.record(
                    AuditEvent.REFRESH_FAILED, principal=principal, reason="account_disabled"
                )
                raise AccountDisabledError()
            await self._audit.record(
                AuditEvent.REFRESH_FAILED,
                principal=principal,
                reason="principal_missing",
            )
            raise RefreshFailed()

        await self._audit.record(AuditEvent.REFRESH, principal=principal)
        return pair

    # ── Logout ───────────────────────────────────────────────────────

    async def logout(self, principal: Principal, session_id: uuid.UUID) -> bool:
        """Revoke the caller's current chain node.  Idempotent."""
        async with self._storage.transaction() as tx:
            record = await tx.sessions.find_by_id(session_id)
            if record is None or record.principal_id != principal.id:
                revoked = False
            else:
                revoked = await self._ledger.revoke(tx, session_id, RevokeReason.LOGOUT)
        if revoked:
            await self._audit.record(AuditEvent.LOGOUT, principal=principal)
        return revoked

    async def logout_all(self, principal: Principal) -> int:
        async with self._storage.transaction() as tx:
            count = await self._ledger.revoke_all(tx, principal.id, RevokeReason.LOGOUT)
        await self._audit.record(
            AuditEvent.LOGOUT, principal=principal, reason=f"all_sessions:{count}"
        )
        return count
