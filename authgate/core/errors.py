"""
Error taxonomy.

Everything that crosses the API boundary is an ``AuthError`` subclass
carrying its own HTTP status and a stable ``error_code``.  Messages are
deliberately generic: the reason a login or refresh failed is logged
and written to the audit trail, never returned to the caller.

Token and ledger errors are internal.  The identity service and the
authorization guard translate them before they leave the service layer.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for errors rendered to clients."""

    status_code: int = 400
    error_code: str = "bad_request"
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(AuthError):
    """Join/login input is inconsistent with the role's capabilities."""

    status_code = 400
    error_code = "validation_error"
    default_message = "Invalid request"


class MissingCredentialError(AuthError):
    status_code = 400
    error_code = "missing_credential"
    default_message = "A password is required for local sign-up"


class DuplicateIdentityError(AuthError):
    status_code = 409
    error_code = "duplicate_identity"
    default_message = "An account with these credentials already exists"


class InvalidCredentialsError(AuthError):
    """Unknown identity OR wrong password; the two are never distinguished."""

    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid credentials"


class AccountDisabledError(AuthError):
    status_code = 403
    error_code = "account_disabled"
    default_message = "Account is disabled"


class RefreshFailed(AuthError):
    """Unknown, revoked or expired refresh token, rendered identically."""

    status_code = 401
    error_code = "refresh_failed"
    default_message = "Refresh failed"


class Unauthenticated(AuthError):
    status_code = 401
    error_code = "unauthenticated"
    default_message = "Not authenticated"


class Forbidden(AuthError):
    status_code = 403
    error_code = "forbidden"
    default_message = "Insufficient permissions"


class NotFound(AuthError):
    """Missing resource OR resource outside the caller's scope."""

    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


# ── Internal (never rendered) ────────────────────────────────────────


class TokenError(Exception):
    """Access-token verification failure."""


class TokenInvalid(TokenError):
    pass


class TokenExpired(TokenError):
    pass


class LedgerError(Exception):
    """Refresh-token redemption failure; ``reason`` feeds the audit log."""

    reason: str = "unknown"


class TokenUnknown(LedgerError):
    reason = "token_unknown"


class TokenRevoked(LedgerError):
    reason = "token_revoked"


class RefreshTokenExpired(LedgerError):
    reason = "token_expired"
