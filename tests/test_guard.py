"""Unit tests for authentication, role and scope checks."""

import uuid
from datetime import timedelta

import pytest

from authgate.core.credentials import LocalCredential
from authgate.core.errors import Forbidden, NotFound, Unauthenticated
from authgate.core.roles import RoleType
from authgate.rbac.guard import AuthorizationGuard, ResourceScope


async def _join(services, role_type, tenant=None, email="user@example.com", **profile):
    return await services.identity.join(
        role_type,
        tenant,
        LocalCredential(email=email, password="pw"),
        profile or {"full_name": "Someone"},
    )


class TestAuthenticate:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_valid_token(self, services) -> None:
        joined = await _join(services, RoleType.NURSE, "h1")
        principal = await services.guard.authenticate(joined.token.access)
        assert principal.id == joined.principal.id
        assert principal.tenant_scope == "h1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "not.a.jwt"])
    async def test_missing_or_garbage_token(self, services, token) -> None:
        with pytest.raises(Unauthenticated):
            await services.guard.authenticate(token)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_claims_must_match_the_stored_principal(self, services) -> None:
        joined = await _join(services, RoleType.NURSE, "h1")
        forged, _ = services.codec.issue_access(
            joined.principal.id,
            RoleType.DEPARTMENT_HEAD,
            "h1",
            timedelta(minutes=5),
            session_id=joined.token.session_id,
        )
        with pytest.raises(Unauthenticated):
            await services.guard.authenticate(forged)

        other_tenant, _ = services.codec.issue_access(
            joined.principal.id,
            RoleType.NURSE,
            "h2",
            timedelta(minutes=5),
            session_id=joined.token.session_id,
        )
        with pytest.raises(Unauthenticated):
            await services.guard.authenticate(other_tenant)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_principal(self, services) -> None:
        token, _ = services.codec.issue_access(
            uuid.uuid4(), RoleType.QA, None, timedelta(minutes=5), session_id=uuid.uuid4()
        )
        with pytest.raises(Unauthenticated):
            await services.guard.authenticate(token)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_logout_only_blocks_access_in_strict_mode(self, services, storage) -> None:
        joined = await _join(services, RoleType.QA)
        await services.identity.logout(joined.principal, joined.token.session_id)

        assert (await services.guard.authenticate(joined.token.access)).id == joined.principal.id

        strict = AuthorizationGuard(storage, services.codec, strict_session_check=True)
        with pytest.raises(Unauthenticated):
            await strict.authenticate(joined.token.access)


class TestAuthorizeRole:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_role_allow_list(self, services) -> None:
        joined = await _join(services, RoleType.DEVELOPER)
        services.guard.authorize_role(joined.principal, [RoleType.DEVELOPER, RoleType.QA])
        with pytest.raises(Forbidden):
            services.guard.authorize_role(joined.principal, [RoleType.PM])


class TestAuthorizeScope:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cross_tenant_looks_like_missing(self, services) -> None:
        joined = await _join(services, RoleType.MEDICAL_DOCTOR, "h1")
        guard = services.guard

        guard.authorize_scope(joined.principal, ResourceScope.tenant("h1"))
        with pytest.raises(NotFound) as cross_tenant:
            guard.authorize_scope(joined.principal, ResourceScope.tenant("h2"))
        with pytest.raises(NotFound) as missing:
            guard.ensure_visible(joined.principal, None)

        assert type(cross_tenant.value) is type(missing.value)
        assert cross_tenant.value.message == missing.value.message

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_null_tenant_is_not_a_wildcard(self, services) -> None:
        joined = await _join(services, RoleType.PMO)
        with pytest.raises(NotFound):
            services.guard.authorize_scope(joined.principal, ResourceScope.tenant("acme"))
        services.guard.authorize_scope(joined.principal, ResourceScope.tenant(None))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_system_admin_is_exempt(self, services) -> None:
        admin = await services.identity.join(
            RoleType.SYSTEM_ADMIN, None, LocalCredential(email="root@example.com", password="pw")
        )
        services.guard.authorize_scope(admin.principal, ResourceScope.tenant("acme"))
        services.guard.authorize_scope(admin.principal, ResourceScope.owner(uuid.uuid4()))
        with pytest.raises(NotFound):
            services.guard.ensure_visible(admin.principal, None)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_owner_scope(self, services) -> None:
        patient = await _join(services, RoleType.PATIENT, "clinic", email="p1@example.com")
        other = await _join(services, RoleType.PATIENT, "clinic", email="p2@example.com")

        services.guard.ensure_visible(patient.principal, ResourceScope.owner(patient.principal.id))
        with pytest.raises(NotFound):
            services.guard.ensure_visible(other.principal, ResourceScope.owner(patient.principal.id))
        with pytest.raises(NotFound):
            services.guard.ensure_visible(
                patient.principal, ResourceScope.owner(patient.principal.id, "other-clinic")
            )
