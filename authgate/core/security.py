"""
Password hashing, token hashing & the access-token codec.

- Passwords are hashed with bcrypt directly (passlib is unmaintained
  and broken with bcrypt>=4.1).
- Access tokens are JWTs signed over the full claim set — principal id,
  role type, tenant scope, session id — so a token cannot be replayed
  under a different role or tenant interpretation.
- Refresh tokens are opaque random strings; only their SHA-256 hash is
  ever persisted.
"""

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from authgate.core.config import Settings
from authgate.core.errors import TokenExpired, TokenInvalid
from authgate.core.roles import RoleType

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input.
_BCRYPT_MAX_BYTES = 72


# ── Password hashing ────────────────────────────────────────────────


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: Optional[bytes] = None

    @staticmethod
    def _encode(plain: str) -> bytes:
        return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, plain: str) -> str:
        return bcrypt.hashpw(self._encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(self._encode(plain), hashed.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

    def dummy_verify(self, plain: str) -> None:
        """Spend the same work as a real verify for an unknown identity."""
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=self.rounds))
        bcrypt.checkpw(self._encode(plain), self._dummy_hash)


# ── Token hashing (for refresh tokens) ──────────────────────────────


def hash_token(token: str) -> str:
    """SHA-256 hash — suitable for high-entropy tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)


# ── JWT ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AccessClaims:
    principal_id: uuid.UUID
    role_type: RoleType
    tenant_scope: Optional[str]
    session_id: uuid.UUID
    issued_at: datetime
    expires_at: datetime


class TokenCodec:
    """Stateless signing / verification of access tokens."""

    TOKEN_TYPE = "access"

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: str = "authgate",
        leeway_seconds: int = 5,
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._issuer = issuer
        self._leeway = leeway_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            issuer=settings.JWT_ISSUER,
            leeway_seconds=settings.JWT_LEEWAY_SECONDS,
        )

    def issue_access(
        self,
        principal_id: uuid.UUID,
        role_type: RoleType,
        tenant_scope: Optional[str],
        ttl: timedelta,
        *,
        session_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> tuple[str, datetime]:
        # NumericDate claims are whole seconds; the returned expiry matches `exp`.
        issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        exp = int((issued_at + ttl).timestamp())
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        claims: dict[str, Any] = {
            "sub": str(principal_id),
            "role": RoleType(role_type).value,
            "tenant": tenant_scope,
            "sid": str(session_id),
            "jti": uuid.uuid4().hex,
            "typ": self.TOKEN_TYPE,
            "iss": self._issuer,
            "iat": int(issued_at.timestamp()),
            "exp": exp,
        }
        token = jwt.encode(claims, self._secret_key, algorithm=self._algorithm)
        return token, expires_at

    def verify_access(self, token: str) -> AccessClaims:
        """Decode & validate.  Raises TokenExpired / TokenInvalid."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={"leeway": self._leeway, "require_exp": True, "require_iat": True},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired("access token expired") from exc
        except JWTError as exc:
            raise TokenInvalid("access token rejected") from exc

        if payload.get("typ") != self.TOKEN_TYPE or "tenant" not in payload:
            raise TokenInvalid("unexpected token type or claim set")

        tenant = payload["tenant"]
        if tenant is not None and not isinstance(tenant, str):
            raise TokenInvalid("malformed tenant claim")

        try:
            return AccessClaims(
                principal_id=uuid.UUID(payload["sub"]),
                role_type=RoleType(payload["role"]),
                tenant_scope=tenant,
                session_id=uuid.UUID(payload["sid"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid("malformed claim set") from exc
