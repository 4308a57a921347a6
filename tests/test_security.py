"""Unit tests for password hashing and the access-token codec."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from authgate.core.credentials import ExternalCredential, LocalCredential
from authgate.core.errors import TokenExpired, TokenInvalid
from authgate.core.roles import RoleType
from authgate.core.security import PasswordHasher, TokenCodec, generate_refresh_token, hash_token


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(secret_key="codec-secret", leeway_seconds=0)


class TestPasswordHasher:
    @pytest.mark.unit
    def test_verify_matches_only_the_original(self) -> None:
        hasher = PasswordHasher(rounds=4)
        hashed = hasher.hash("s3cret")
        assert hashed != "s3cret"
        assert hasher.verify("s3cret", hashed) is True
        assert hasher.verify("S3cret", hashed) is False

    @pytest.mark.unit
    def test_long_passwords_are_accepted(self) -> None:
        hasher = PasswordHasher(rounds=4)
        long_password = "x" * 200
        assert hasher.verify(long_password, hasher.hash(long_password)) is True

    @pytest.mark.unit
    def test_malformed_hash_does_not_verify(self) -> None:
        assert PasswordHasher(rounds=4).verify("s3cret", "not-a-bcrypt-hash") is False

    @pytest.mark.unit
    def test_dummy_verify_returns_nothing(self) -> None:
        assert PasswordHasher(rounds=4).dummy_verify("anything") is None


class TestRefreshTokens:
    @pytest.mark.unit
    def test_tokens_are_random(self) -> None:
        assert generate_refresh_token() != generate_refresh_token()

    @pytest.mark.unit
    def test_hash_is_sha256_hex(self) -> None:
        digest = hash_token("abc")
        assert len(digest) == 64
        assert digest == hash_token("abc")


class TestTokenCodec:
    @pytest.mark.unit
    def test_claims_survive_signing(self, codec: TokenCodec) -> None:
        principal_id, session_id = uuid.uuid4(), uuid.uuid4()
        token, expires_at = codec.issue_access(
            principal_id, RoleType.NURSE, "hospital-1", timedelta(minutes=5), session_id=session_id
        )
        claims = codec.verify_access(token)
        assert claims.principal_id == principal_id
        assert claims.role_type == RoleType.NURSE
        assert claims.tenant_scope == "hospital-1"
        assert claims.session_id == session_id
        assert claims.expires_at == expires_at

    @pytest.mark.unit
    def test_reported_expiry_matches_the_exp_claim(self, codec: TokenCodec) -> None:
        issued = datetime.now(timezone.utc).replace(microsecond=647027)
        token, expires_at = codec.issue_access(
            uuid.uuid4(), RoleType.QA, None, timedelta(hours=1), session_id=uuid.uuid4(), now=issued
        )
        exp = jwt.get_unverified_claims(token)["exp"]
        assert expires_at == datetime.fromtimestamp(exp, tz=timezone.utc)
        assert expires_at.microsecond == 0
        assert expires_at <= issued + timedelta(hours=1)

    @pytest.mark.unit
    def test_null_tenant_is_preserved(self, codec: TokenCodec) -> None:
        token, _ = codec.issue_access(
            uuid.uuid4(), RoleType.PMO, None, timedelta(minutes=5), session_id=uuid.uuid4()
        )
        assert codec.verify_access(token).tenant_scope is None

    @pytest.mark.unit
    def test_expired_token(self, codec: TokenCodec) -> None:
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token, _ = codec.issue_access(
            uuid.uuid4(), RoleType.QA, None, timedelta(hours=1), session_id=uuid.uuid4(), now=past
        )
        with pytest.raises(TokenExpired):
            codec.verify_access(token)

    @pytest.mark.unit
    def test_wrong_key_is_invalid(self, codec: TokenCodec) -> None:
        token, _ = codec.issue_access(
            uuid.uuid4(), RoleType.QA, None, timedelta(minutes=5), session_id=uuid.uuid4()
        )
        with pytest.raises(TokenInvalid):
            TokenCodec(secret_key="other-secret").verify_access(token)

    @pytest.mark.unit
    def test_tampered_payload_is_invalid(self, codec: TokenCodec) -> None:
        token, _ = codec.issue_access(
            uuid.uuid4(), RoleType.QA, "t1", timedelta(minutes=5), session_id=uuid.uuid4()
        )
        header, payload, signature = token.split(".")
        forged = jwt.encode({"tenant": "t2"}, "codec-secret").split(".")[1]
        with pytest.raises(TokenInvalid):
            codec.verify_access(".".join([header, forged, signature]))

    @pytest.mark.unit
    def test_wrong_token_type_is_invalid(self, codec: TokenCodec) -> None:
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode(
            {
                "sub": str(uuid.uuid4()),
                "role": "qa",
                "tenant": None,
                "sid": str(uuid.uuid4()),
                "typ": "refresh",
                "iss": "authgate",
                "iat": now,
                "exp": now + 300,
            },
            "codec-secret",
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalid):
            codec.verify_access(token)

    @pytest.mark.unit
    def test_unknown_role_is_invalid(self, codec: TokenCodec) -> None:
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode(
            {
                "sub": str(uuid.uuid4()),
                "role": "superuser",
                "tenant": None,
                "sid": str(uuid.uuid4()),
                "typ": "access",
                "iss": "authgate",
                "iat": now,
                "exp": now + 300,
            },
            "codec-secret",
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalid):
            codec.verify_access(token)


class TestCredentials:
    @pytest.mark.unit
    def test_local_provider_key_is_normalised(self) -> None:
        cred = LocalCredential(email="  Bob@Example.COM ", password="pw")
        assert cred.provider == "local"
        assert cred.provider_key == "bob@example.com"

    @pytest.mark.unit
    def test_repr_hides_password(self) -> None:
        assert "pw-secret" not in repr(LocalCredential(email="a@example.com", password="pw-secret"))

    @pytest.mark.unit
    def test_external_subject_is_the_key(self) -> None:
        cred = ExternalCredential(provider="google", subject=" 1234 ")
        assert cred.provider_key == "1234"
