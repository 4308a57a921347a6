"""
Admin controller — principal lifecycle & session maintenance.

Every route uses `Depends(require_roles(RoleType.SYSTEM_ADMIN))`.
Controllers are THIN — they delegate to services and return schemas.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from authgate.core.roles import RoleType
from authgate.rbac.dependencies import get_services, require_roles
from authgate.schemas import (
    AuthEventOut,
    MessageResponse,
    PrincipalOut,
    RevokedCountResponse,
    SessionOut,
    SweepResponse,
)
from authgate.services.registry import AuthServices

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_roles(RoleType.SYSTEM_ADMIN))],
)


# ── Principals ───────────────────────────────────────────────────────
@router.get("/principals", response_model=list[PrincipalOut])
async def list_principals(
    services: AuthServices = Depends(get_services),
    role_type: Optional[RoleType] = None,
    tenant_scope: Optional[str] = None,
    include_deleted: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    rows = await services.principals.list_principals(
        role_type=role_type,
        tenant_scope=tenant_scope,
        include_deleted=include_deleted,
        skip=skip,
        limit=limit,
    )
    return [PrincipalOut.model_validate(p) for p in rows]


@router.get("/principals/{principal_id}", response_model=PrincipalOut)
async def get_principal(principal_id: uuid.UUID, services: AuthServices = Depends(get_services)):
    principal = await services.principals.get(principal_id, include_deleted=True)
    return PrincipalOut.model_validate(principal)


@router.post("/principals/{principal_id}/disable", response_model=PrincipalOut)
async def disable_principal(principal_id: uuid.UUID, services: AuthServices = Depends(get_services)):
    """Disable the account and revoke all of its sessions."""
    principal = await services.principals.disable(principal_id)
    return PrincipalOut.model_validate(principal)


@router.post("/principals/{principal_id}/enable", response_model=PrincipalOut)
async def enable_principal(principal_id: uuid.UUID, services: AuthServices = Depends(get_services)):
    principal = await services.principals.enable(principal_id)
    return PrincipalOut.model_validate(principal)


@router.delete("/principals/{principal_id}", response_model=PrincipalOut)
async def delete_principal(principal_id: uuid.UUID, services: AuthServices = Depends(get_services)):
    """Soft-delete: the email becomes available for a new join."""
    principal = await services.principals.soft_delete(principal_id)
    return PrincipalOut.model_validate(principal)


@router.delete("/principals/{principal_id}/purge", response_model=MessageResponse)
async def purge_principal(principal_id: uuid.UUID, services: AuthServices = Depends(get_services)):
    await services.principals.purge(principal_id)
    return MessageResponse(detail="Principal purged")


# ── Sessions ─────────────────────────────────────────────────────────
@router.get("/principals/{principal_id}/sessions", response_model=list[SessionOut])
async def list_sessions(
    principal_id: uuid.UUID,
    live_only: bool = True,
    services: AuthServices = Depends(get_services),
):
    rows = await services.principals.list_sessions(principal_id, live_only=live_only)
    return [SessionOut.model_validate(s) for s in rows]


@router.post("/principals/{principal_id}/force-logout", response_model=RevokedCountResponse)
async def force_logout(principal_id: uuid.UUID, services: AuthServices = Depends(get_services)):
    revoked = await services.principals.force_logout(principal_id)
    return RevokedCountResponse(revoked=revoked)


@router.get("/principals/{principal_id}/events", response_model=list[AuthEventOut])
async def list_events(
    principal_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    services: AuthServices = Depends(get_services),
):
    rows = await services.principals.list_events(principal_id, limit=limit)
    return [AuthEventOut.model_validate(e) for e in rows]


@router.post("/sessions/sweep", response_model=SweepResponse)
async def sweep_sessions(services: AuthServices = Depends(get_services)):
    """Physically delete session nodes expired past the retention window."""
    removed = await services.principals.sweep_sessions(services.settings.session_retention)
    return SweepResponse(removed=removed)
