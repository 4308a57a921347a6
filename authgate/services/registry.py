"""
Service wiring.

`build_services` assembles every collaborator from one `Settings`
object and one `Storage`.  The app factory stores the result on
`app.state.services`; scripts and tests call it directly.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from authgate.core.config import Settings
from authgate.core.security import PasswordHasher, TokenCodec
from authgate.rbac.guard import AuthorizationGuard
from authgate.services.audit_service import AuditService
from authgate.services.identity_service import IdentityService
from authgate.services.principal_service import PrincipalService
from authgate.services.session_ledger import SessionLedger
from authgate.stores import Storage, build_storage
from authgate.stores.records import utcnow


@dataclass
class AuthServices:
    settings: Settings
    storage: Storage
    hasher: PasswordHasher
    codec: TokenCodec
    ledger: SessionLedger
    audit: AuditService
    identity: IdentityService
    principals: PrincipalService
    guard: AuthorizationGuard


def build_services(
    settings: Settings,
    storage: Optional[Storage] = None,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> AuthServices:
    storage = storage if storage is not None else build_storage(settings)
    hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
    codec = TokenCodec.from_settings(settings)
    ledger = SessionLedger(
        codec,
        access_ttl=settings.access_ttl,
        refresh_ttl=settings.refresh_ttl,
        clock=clock,
    )
    audit = AuditService(storage, clock=clock)
    return AuthServices(
        settings=settings,
        storage=storage,
        hasher=hasher,
        codec=codec,
        ledger=ledger,
        audit=audit,
        identity=IdentityService(storage, hasher, ledger, audit),
        principals=PrincipalService(storage, ledger, audit),
        guard=AuthorizationGuard(
            storage,
            codec,
            strict_session_check=settings.STRICT_SESSION_CHECK,
        ),
    )
