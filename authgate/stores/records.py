"""
Plain records passed between the stores and the services.

Stores never hand ORM instances to callers: the SQL adapter converts
rows into these dataclasses, the memory adapter stores them directly.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from authgate.core.roles import RoleType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PrincipalStatus(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    DELETED = "deleted"


class RevokeReason(str, enum.Enum):
    ROTATED = "rotated"
    LOGOUT = "logout"
    ACCOUNT_DISABLED = "account_disabled"
    FORCE_LOGOUT = "force_logout"


@dataclass
class Principal:
    id: uuid.UUID
    role_type: RoleType
    tenant_scope: Optional[str]
    status: PrincipalStatus
    profile: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == PrincipalStatus.ACTIVE


@dataclass
class Credential:
    principal_id: uuid.UUID
    role_type: RoleType
    tenant_scope: Optional[str]
    provider: str
    provider_key: str
    password_hash: Optional[str] = None
    last_authenticated_at: Optional[datetime] = None
    released_at: Optional[datetime] = None


@dataclass
class SessionRecord:
    session_id: uuid.UUID
    principal_id: uuid.UUID
    role_type: RoleType
    tenant_scope: Optional[str]
    refresh_token_hash: str
    issued_at: datetime
    access_expires_at: datetime
    refresh_expires_at: datetime
    rotated_from: Optional[uuid.UUID] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    def is_live(self, now: datetime) -> bool:
        return self.revoked_at is None and now <= self.refresh_expires_at


@dataclass
class AuthEvent:
    event_type: str
    principal_id: Optional[uuid.UUID] = None
    role_type: Optional[RoleType] = None
    tenant_scope: Optional[str] = None
    reason: Optional[str] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=utcnow)


def scope_key(tenant_scope: Optional[str]) -> str:
    """Non-null form of a tenant scope, used by uniqueness indexes."""
    return tenant_scope or ""
