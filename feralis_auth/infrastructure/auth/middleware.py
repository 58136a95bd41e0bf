"""
Authentication middleware for FastAPI.

This module provides the bearer-token dependency that resolves a request
to an ``AuthenticatedPrincipal``, plus request id and security header
middleware.
"""

import logging
import secrets
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from fastapi import Request
from fastapi.responses import Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware

from feralis_auth.domain.exceptions import InvalidCredentialsError
from feralis_auth.infrastructure.monitoring.logging import set_request_id, set_user_context

from .types import AuthenticatedPrincipal

if TYPE_CHECKING:
    from feralis_auth.infrastructure.container import AuthContainer

logger = logging.getLogger(__name__)


def get_auth_container(request: Request) -> "AuthContainer":
    """The container the application was started with."""
    return request.app.state.auth_container  # type: ignore[no-any-return]


class AuthBearer(HTTPBearer):
    """
    Bearer access token authentication.

    A valid signature is not enough: the token's session must still be
    live. Domain errors propagate to the application's exception handlers.
    """

    def __init__(self) -> None:
        super().__init__(auto_error=False)

    async def __call__(self, request: Request) -> AuthenticatedPrincipal:  # type: ignore[override]
        """
        Validate the access token from the Authorization header.

        Raises:
            InvalidCredentialsError: Missing, malformed or invalid token
            SessionExpiredError: The token's session no longer exists
            AccountUnusableError: The account is no longer usable
        """
        credentials: HTTPAuthorizationCredentials | None = await super().__call__(request)
        if not credentials or credentials.scheme.lower() != "bearer":
            raise InvalidCredentialsError("Authorization required")

        container = get_auth_container(request)
        principal = await container.authentication.authenticate_access_token(
            credentials.credentials
        )

        # Store user context in request state
        request.state.principal = principal
        set_user_context(principal.user_id, principal.session_id)
        return principal


get_current_principal = AuthBearer()


def client_ip(request: Request) -> str | None:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Security headers middleware.

    Adds security headers to all responses.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response  # type: ignore[no-any-return]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID middleware.

    Adds unique request ID for tracing and binds it to the logging context.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or f"req_{secrets.token_urlsafe(16)}"
        request.state.request_id = request_id
        set_request_id(request_id)
        set_user_context(None)

        try:
            response = await call_next(request)
        finally:
            set_request_id(None)

        response.headers["X-Request-ID"] = request_id
        return response  # type: ignore[no-any-return]
