"""HTTP tests through FastAPI's TestClient (in-memory store)."""

import pytest
from fastapi.testclient import TestClient

from authgate.core.credentials import LocalCredential
from authgate.core.roles import RoleType
from authgate.main import create_app
from authgate.stores.memory import MemoryStorage


@pytest.fixture
def app(settings, clock):
    return create_app(settings, MemoryStorage(), clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _join(client, role_type="pmo", email="alice@example.com", password="pw-123", **extra):
    body = {"email": email, "password": password, **extra}
    return client.post(f"/api/auth/{role_type}/join", json=body)


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_token(app, client) -> str:
    # systemAdmin accounts cannot sign up over HTTP; bootstrap through the service.
    async def bootstrap():
        result = await app.state.services.identity.join(
            RoleType.SYSTEM_ADMIN, None, LocalCredential(email="root@example.com", password="pw")
        )
        return result.token.access

    return client.portal.call(bootstrap)


class TestJoinAndLogin:
    @pytest.mark.integration
    def test_join_returns_principal_and_token(self, client) -> None:
        resp = _join(client)
        assert resp.status_code == 201
        body = resp.json()
        assert body["principal"]["role_type"] == "pmo"
        assert body["principal"]["tenant_scope"] is None
        assert set(body["token"]) == {"access", "refresh", "expired_at", "refreshable_until"}

    @pytest.mark.integration
    def test_duplicate_join(self, client) -> None:
        _join(client)
        resp = _join(client, email="ALICE@example.com")
        assert resp.status_code == 409
        assert resp.json()["code"] == "duplicate_identity"

    @pytest.mark.integration
    def test_unknown_role_type(self, client) -> None:
        assert _join(client, role_type="superuser").status_code == 422

    @pytest.mark.integration
    def test_system_admin_cannot_sign_up(self, client) -> None:
        resp = _join(client, role_type="systemAdmin")
        assert resp.status_code == 403

    @pytest.mark.integration
    def test_missing_password(self, client) -> None:
        resp = _join(client, password=None)
        assert resp.status_code == 400
        assert resp.json()["code"] == "missing_credential"

    @pytest.mark.integration
    def test_validation_error(self, client) -> None:
        resp = _join(client, role_type="nurse", tenant_scope="h1")
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    @pytest.mark.integration
    def test_login_failures_are_indistinguishable(self, client) -> None:
        _join(client)
        wrong = client.post(
            "/api/auth/pmo/login", json={"email": "alice@example.com", "password": "bad"}
        )
        unknown = client.post(
            "/api/auth/pmo/login", json={"email": "nobody@example.com", "password": "bad"}
        )
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    @pytest.mark.integration
    def test_login_without_password(self, client) -> None:
        _join(client)
        resp = client.post("/api/auth/pmo/login", json={"email": "alice@example.com"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_credentials"

    @pytest.mark.integration
    def test_login(self, client) -> None:
        _join(client, role_type="nurse", tenant_scope="h1", profile={"full_name": "Alice"})
        resp = client.post(
            "/api/auth/nurse/login",
            json={"email": "alice@example.com", "password": "pw-123", "tenant_scope": "h1"},
        )
        assert resp.status_code == 200
        assert resp.json()["principal"]["tenant_scope"] == "h1"


class TestSessions:
    @pytest.mark.integration
    def test_refresh_rotates_once(self, client) -> None:
        token = _join(client).json()["token"]
        first = client.post("/api/auth/refresh", json={"refresh_token": token["refresh"]})
        assert first.status_code == 200
        assert first.json()["token"]["refresh"] != token["refresh"]

        again = client.post("/api/auth/refresh", json={"refresh_token": token["refresh"]})
        assert again.status_code == 401
        assert again.json() == {"detail": "Refresh failed", "code": "refresh_failed"}

    @pytest.mark.integration
    def test_me_requires_a_bearer(self, client) -> None:
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

        token = _join(client).json()["token"]
        me = client.get("/api/auth/me", headers=_bearer(token["access"]))
        assert me.status_code == 200
        assert me.json()["role_type"] == "pmo"

    @pytest.mark.integration
    def test_logout_revokes_the_refresh_token(self, client) -> None:
        token = _join(client).json()["token"]
        resp = client.delete("/api/auth/logout", headers=_bearer(token["access"]))
        assert resp.status_code == 200

        refresh = client.post("/api/auth/refresh", json={"refresh_token": token["refresh"]})
        assert refresh.status_code == 401

    @pytest.mark.integration
    def test_logout_all(self, client) -> None:
        token = _join(client).json()["token"]
        client.post("/api/auth/pmo/login", json={"email": "alice@example.com", "password": "pw-123"})
        resp = client.delete("/api/auth/logout/all", headers=_bearer(token["access"]))
        assert resp.json() == {"revoked": 2}


class TestAdmin:
    @pytest.mark.integration
    def test_non_admin_is_forbidden(self, client) -> None:
        token = _join(client).json()["token"]
        resp = client.get("/api/admin/principals", headers=_bearer(token["access"]))
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"

    @pytest.mark.integration
    def test_disable_locks_the_account_out(self, client, admin_token) -> None:
        joined = _join(client).json()
        principal_id = joined["principal"]["id"]

        resp = client.post(
            f"/api/admin/principals/{principal_id}/disable", headers=_bearer(admin_token)
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "disabled"

        me = client.get("/api/auth/me", headers=_bearer(joined["token"]["access"]))
        assert me.status_code == 401
        refresh = client.post(
            "/api/auth/refresh", json={"refresh_token": joined["token"]["refresh"]}
        )
        assert refresh.status_code == 401
        login = client.post(
            "/api/auth/pmo/login", json={"email": "alice@example.com", "password": "pw-123"}
        )
        assert login.status_code == 403
        assert login.json()["code"] == "account_disabled"

    @pytest.mark.integration
    def test_soft_delete_and_rejoin(self, client, admin_token) -> None:
        first = _join(client).json()["principal"]["id"]
        resp = client.delete(f"/api/admin/principals/{first}", headers=_bearer(admin_token))
        assert resp.json()["status"] == "deleted"

        second = _join(client)
        assert second.status_code == 201
        assert second.json()["principal"]["id"] != first

    @pytest.mark.integration
    def test_audit_trail_keeps_the_reason(self, client, admin_token) -> None:
        principal_id = _join(client).json()["principal"]["id"]
        client.post("/api/auth/pmo/login", json={"email": "alice@example.com", "password": "bad"})

        events = client.get(
            f"/api/admin/principals/{principal_id}/events", headers=_bearer(admin_token)
        ).json()
        assert {"event_type": "login_failed", "reason": "password_mismatch"} in [
            {"event_type": e["event_type"], "reason": e["reason"]} for e in events
        ]

    @pytest.mark.integration
    def test_unknown_principal(self, client, admin_token) -> None:
        resp = client.post(
            "/api/admin/principals/00000000-0000-0000-0000-000000000000/enable",
            headers=_bearer(admin_token),
        )
        assert resp.status_code == 404

    @pytest.mark.integration
    def test_sweep(self, client, admin_token) -> None:
        resp = client.post("/api/admin/sessions/sweep", headers=_bearer(admin_token))
        assert resp.json() == {"removed": 0}
