"""
RBAC dependencies — the guard exposed to FastAPI routes.

`require_roles` is a *dependency factory*: call it with one or more role
types and it returns a dependency that will:

1. Read the bearer token (missing → 401).
2. Verify it and re-load the Principal (via AuthorizationGuard).
3. Check the principal's role type is one of the allowed ones.
4. Return 403 on failure — with NO details about which roles are allowed.

Usage in a route:
    @router.get("/tasks", dependencies=[Depends(require_roles(RoleType.PM, RoleType.PMO))])
    async def list_tasks(...): ...

Or inject the principal:
    @router.get("/me")
    async def me(principal: Principal = Depends(get_current_principal)): ...

Scope checks stay in the handler, once the resource has been loaded:
    services.guard.ensure_visible(principal, ResourceScope.tenant(row.tenant_id) if row else None)
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authgate.core.roles import RoleType
from authgate.rbac.guard import AuthContext
from authgate.services.registry import AuthServices
from authgate.stores.records import Principal

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> AuthServices:
    return request.app.state.services


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: AuthServices = Depends(get_services),
) -> AuthContext:
    token = credentials.credentials if credentials else None
    return await services.guard.authenticate_context(token)


async def get_current_principal(
    context: AuthContext = Depends(get_auth_context),
) -> Principal:
    """Authentication only, no role check."""
    return context.principal


class require_roles:
    """
    Dependency factory.

    Can be used as:
        Depends(require_roles(RoleType.SYSTEM_ADMIN))
        Depends(require_roles(RoleType.MEDICAL_DOCTOR, RoleType.NURSE))
    """

    def __init__(self, *role_types: RoleType):
        self.role_types = frozenset(RoleType(r) for r in role_types)

    async def __call__(
        self,
        principal: Principal = Depends(get_current_principal),
        services: AuthServices = Depends(get_services),
    ) -> Principal:
        services.guard.authorize_role(principal, self.role_types)
        return principal
