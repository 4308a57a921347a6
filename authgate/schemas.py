"""
Pydantic schemas for request / response serialization.

Kept in a single file for now — split per-domain when it grows.
Schemas are deliberately decoupled from the store records so the
API surface can evolve independently of the persistence layer.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

from authgate.core.roles import RoleType
from authgate.stores.records import PrincipalStatus


# ── Auth ─────────────────────────────────────────────────────────────
class JoinRequest(BaseModel):
    email: EmailStr
    password: Optional[str] = None
    tenant_scope: Optional[str] = Field(default=None, max_length=128)
    profile: dict[str, Any] = Field(default_factory=dict)


class LoginRequest(BaseModel):
    email: str
    password: Optional[str] = None
    tenant_scope: Optional[str] = Field(default=None, max_length=128)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class TokenOut(BaseModel):
    access: str
    refresh: str
    expired_at: datetime
    refreshable_until: datetime

    model_config = {"from_attributes": True}


# ── Principal ────────────────────────────────────────────────────────
class PrincipalOut(BaseModel):
    id: uuid.UUID
    role_type: RoleType
    tenant_scope: Optional[str] = None
    status: PrincipalStatus
    profile: dict[str, Any] = {}
    created_at: datetime
    deleted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    principal: PrincipalOut
    token: TokenOut


class RefreshResponse(BaseModel):
    token: TokenOut


# ── Admin ────────────────────────────────────────────────────────────
class SessionOut(BaseModel):
    session_id: uuid.UUID
    issued_at: datetime
    access_expires_at: datetime
    refresh_expires_at: datetime
    rotated_from: Optional[uuid.UUID] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    model_config = {"from_attributes": True}


class AuthEventOut(BaseModel):
    id: uuid.UUID
    event_type: str
    reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RevokedCountResponse(BaseModel):
    revoked: int


class SweepResponse(BaseModel):
    removed: int


# ── Common ───────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str
