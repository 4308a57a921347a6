"""
Auth controller — join, login, refresh, logout & whoami.

Join / login / refresh are PUBLIC (no bearer required).
Logout and /me require a valid access token.

One pair of join / login routes serves every role type; the role type is
a path parameter validated against `RoleType` (unknown → 422).
"""

from fastapi import APIRouter, Depends, Request, status

from authgate.core.credentials import LocalCredential
from authgate.core.errors import Forbidden
from authgate.core.roles import RoleType, capabilities_for
from authgate.rbac.dependencies import get_auth_context, get_current_principal, get_services
from authgate.rbac.guard import AuthContext
from authgate.schemas import (
    AuthResponse,
    JoinRequest,
    LoginRequest,
    MessageResponse,
    PrincipalOut,
    RefreshResponse,
    RefreshTokenRequest,
    RevokedCountResponse,
    TokenOut,
)
from authgate.services.identity_service import AuthResult
from authgate.services.registry import AuthServices
from authgate.stores.records import Principal

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _client_info(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip_address": request.client.host if request.client else None,
    }


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        principal=PrincipalOut.model_validate(result.principal),
        token=TokenOut.model_validate(result.token),
    )


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(
    body: RefreshTokenRequest,
    services: AuthServices = Depends(get_services),
):
    """Exchange a refresh token for a new access + refresh pair."""
    pair = await services.identity.refresh(body.refresh_token)
    return RefreshResponse(token=TokenOut.model_validate(pair))


@router.delete("/logout", response_model=MessageResponse)
async def logout(
    context: AuthContext = Depends(get_auth_context),
    services: AuthServices = Depends(get_services),
):
    """Revoke the current session (server-side logout)."""
    await services.identity.logout(context.principal, context.claims.session_id)
    return MessageResponse(detail="Logged out successfully")


@router.delete("/logout/all", response_model=RevokedCountResponse)
async def logout_all(
    principal: Principal = Depends(get_current_principal),
    services: AuthServices = Depends(get_services),
):
    """Revoke every live session of the caller."""
    revoked = await services.identity.logout_all(principal)
    return RevokedCountResponse(revoked=revoked)


@router.get("/me", response_model=PrincipalOut)
async def me(principal: Principal = Depends(get_current_principal)):
    return PrincipalOut.model_validate(principal)


@router.post("/{role_type}/join", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def join(
    role_type: RoleType,
    body: JoinRequest,
    request: Request,
    services: AuthServices = Depends(get_services),
):
    """Create a principal of `role_type` and open its first session."""
    if not capabilities_for(role_type).open_join:
        raise Forbidden("Sign-up is not available for this role")
    result = await services.identity.join(
        role_type,
        body.tenant_scope,
        LocalCredential(email=body.email, password=body.password or ""),
        body.profile,
        **_client_info(request),
    )
    return _auth_response(result)


@router.post("/{role_type}/login", response_model=AuthResponse)
async def login(
    role_type: RoleType,
    body: LoginRequest,
    request: Request,
    services: AuthServices = Depends(get_services),
):
    """Authenticate with email + password → receive token pair."""
    result = await services.identity.login(
        role_type,
        body.tenant_scope,
        LocalCredential(email=body.email, password=body.password or ""),
        **_client_info(request),
    )
    return _auth_response(result)
