"""
Authorization guard — authentication, role checks and data-scope checks.

Three failure classes, never mixed:
- Unauthenticated (401): token missing, bad, expired, or its principal
  no longer exists / is not active / disagrees with the claims.
- Forbidden (403): authenticated, but the role type is not allowed.
- NotFound (404): authenticated and allowed, but the resource lies in
  another tenant or belongs to another owner.  Identical to a resource
  that does not exist, so tenants cannot probe each other.

The principal is always re-read from the store: a token alone is never
enough, so disabling an account takes effect on the next request.

Usage in a handler:
    principal = await guard.authenticate(bearer)
    guard.authorize_role(principal, {RoleType.PM, RoleType.PMO})
    guard.authorize_scope(principal, ResourceScope.tenant(task.tenant_id))
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from authgate.core.errors import Forbidden, NotFound, TokenError, Unauthenticated
from authgate.core.roles import RoleType, scope_exempt_roles
from authgate.core.security import AccessClaims, TokenCodec
from authgate.stores.base import Storage
from authgate.stores.records import Principal

logger = logging.getLogger("rbac")


@dataclass(frozen=True)
class ResourceScope:
    """
    The data-access boundary a resource lives in.

    - tenant scope: the resource belongs to a tenant; only principals of
      the same tenant may see it.
    - owner scope: the resource belongs to one principal (e.g. a
      patient's own record).
    """

    tenant_scope: Optional[str] = None
    owner_id: Optional[uuid.UUID] = None
    check_tenant: bool = True

    @classmethod
    def tenant(cls, tenant_scope: Optional[str]) -> "ResourceScope":
        return cls(tenant_scope=tenant_scope)

    @classmethod
    def owner(cls, owner_id: uuid.UUID, tenant_scope: Optional[str] = None) -> "ResourceScope":
        # Owner-scoped resources only check the tenant when one is given.
        return cls(tenant_scope=tenant_scope, owner_id=owner_id, check_tenant=tenant_scope is not None)


@dataclass(frozen=True)
class AuthContext:
    principal: Principal
    claims: AccessClaims


class AuthorizationGuard:
    def __init__(
        self,
        storage: Storage,
        codec: TokenCodec,
        *,
        strict_session_check: bool = False,
    ) -> None:
        self._storage = storage
        self._codec = codec
        self._strict = strict_session_check
        self._exempt = scope_exempt_roles()

    async def authenticate_context(self, bearer_token: Optional[str]) -> AuthContext:
        if not bearer_token:
            raise Unauthenticated()
        try:
            claims = self._codec.verify_access(bearer_token)
        except TokenError as exc:
            logger.info("Bearer token rejected: %s", exc)
            raise Unauthenticated() from exc

        async with self._storage.transaction() as tx:
            principal = await tx.credentials.find_by_id(claims.principal_id)
            session = (
                await tx.sessions.find_by_id(claims.session_id) if self._strict else None
            )

        if principal is None or not principal.is_active:
            logger.info("Token for missing or inactive principal %s", claims.principal_id)
            raise Unauthenticated()
        if principal.role_type != claims.role_type or principal.tenant_scope != claims.tenant_scope:
            logger.warning("Token claims disagree with stored principal %s", principal.id)
            raise Unauthenticated()
        if self._strict and (session is None or session.revoked_at is not None):
            logger.info("Token session %s is no longer live", claims.session_id)
            raise Unauthenticated()

        return AuthContext(principal=principal, claims=claims)

    async def authenticate(self, bearer_token: Optional[str]) -> Principal:
        context = await self.authenticate_context(bearer_token)
        return context.principal

    def authorize_role(self, principal: Principal, allowed_role_types: Iterable[RoleType]) -> None:
        allowed = {RoleType(r) for r in allowed_role_types}
        if principal.role_type not in allowed:
            logger.warning(
                "Role %s denied for principal %s", principal.role_type.value, principal.id
            )
            raise Forbidden()

    def authorize_scope(self, principal: Principal, resource: ResourceScope) -> None:
        if principal.role_type in self._exempt:
            return
        if resource.owner_id is not None and resource.owner_id != principal.id:
            raise NotFound()
        if resource.check_tenant and resource.tenant_scope != principal.tenant_scope:
            raise NotFound()

    def ensure_visible(self, principal: Principal, resource: Optional[ResourceScope]) -> None:
        """Treat "does not exist" and "not yours" as the same outcome."""
        if resource is None:
            raise NotFound()
        self.authorize_scope(principal, resource)
