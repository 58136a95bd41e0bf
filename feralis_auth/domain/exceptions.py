"""
Domain-level exceptions for the authentication core.

These form the small closed set of error kinds the authentication flow
surfaces to callers, plus the internal signals (token reuse, invalid token)
that the flow translates before they leave it.
"""

from typing import Any


class AuthenticationError(Exception):
    """Base exception for all authentication errors."""

    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidCredentialsError(AuthenticationError):
    """
    Wrong email/password, or a malformed token presented to the flow.

    Always generic: never says whether the account exists.
    """

    code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class AccountUnusableError(AuthenticationError):
    """Raised when the account is suspended, deleted or not yet activated."""

    code = "ACCOUNT_UNUSABLE"

    def __init__(self, status: str) -> None:
        super().__init__(f"Account is {status.lower()}", details={"status": status})
        self.status = status


class SessionExpiredError(AuthenticationError):
    """Valid access token whose session no longer exists."""

    code = "SESSION_EXPIRED"

    def __init__(self, message: str = "Session expired or revoked") -> None:
        super().__init__(message)


class ReauthenticationRequiredError(AuthenticationError):
    """
    The refresh lineage was burned; the client must log in again.

    Deliberately carries no hint that reuse detection fired.
    """

    code = "REAUTHENTICATE"

    def __init__(self, message: str = "Re-authentication required") -> None:
        super().__init__(message)


class TokenReuseDetectedError(AuthenticationError):
    """Internal: a rotated-away refresh token was presented again."""

    code = "TOKEN_REUSE"

    def __init__(self, family: str, user_id: str | None = None) -> None:
        super().__init__(
            f"Refresh token reuse detected for family {family}",
            details={"family": family, "user_id": user_id},
        )
        self.family = family
        self.user_id = user_id


class InvalidTokenError(AuthenticationError):
    """Internal: token failed signature, expiry, type or ledger checks."""

    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class WeakPasswordError(AuthenticationError):
    """New password rejected by the strength policy or found in a breach corpus."""

    code = "WEAK_PASSWORD"

    def __init__(self, errors: list[str], suggestions: list[str] | None = None) -> None:
        super().__init__(
            "Password does not meet requirements",
            details={"errors": errors, "suggestions": suggestions or []},
        )
        self.errors = errors
        self.suggestions = suggestions or []


class PermissionDeniedError(AuthenticationError):
    """Authenticated principal lacks a required capability."""

    code = "PERMISSION_DENIED"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            f"Missing capability: {', '.join(missing)}", details={"missing": missing}
        )
        self.missing = missing


class ServiceUnavailableError(AuthenticationError):
    """
    A backing store (database, Redis) failed.

    Kept distinct from credential errors so outages are never reported as
    authentication failures.
    """

    code = "SERVICE_UNAVAILABLE"

    def __init__(
        self, message: str = "Service temporarily unavailable", cause: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.cause = cause


class BreachCheckUnavailableError(AuthenticationError):
    """Breach lookup could not complete. Never surfaced to callers."""

    code = "BREACH_CHECK_UNAVAILABLE"
