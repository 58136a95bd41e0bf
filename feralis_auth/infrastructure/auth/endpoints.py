"""
Authentication API endpoints.

This module provides FastAPI endpoints for login, MFA verification,
token refresh, logout, session management, password management and MFA
enrolment, plus the mapping from domain errors to HTTP responses.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field, SecretStr
from pydantic.alias_generators import to_camel

from feralis_auth.domain.exceptions import (
    AccountUnusableError,
    AuthenticationError,
    InvalidCredentialsError,
    PermissionDeniedError,
    ReauthenticationRequiredError,
    ServiceUnavailableError,
    SessionExpiredError,
    WeakPasswordError,
)
from feralis_auth.domain.value_objects import AuthTokens

from .middleware import client_ip, get_auth_container, get_current_principal
from .types import AuthenticatedPrincipal, LoginResult

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/auth", tags=["Authentication"])


# Request/Response models
class CamelModel(BaseModel):
    """Models exchanged as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


class LoginRequest(CamelModel):
    """Login request."""

    email: EmailStr
    password: SecretStr


class LoginResponse(CamelModel):
    """Login response."""

    requires_mfa: bool = Field(False, alias="requiresMFA")
    mfa_challenge_token: str | None = Field(None, alias="mfaChallengeToken")
    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = "Bearer"


class MFAVerificationRequest(CamelModel):
    """MFA verification request."""

    challenge_token: str
    code: str = Field(..., min_length=6, max_length=8)


class TokenResponse(CamelModel):
    """Token pair response."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


class RefreshTokenRequest(CamelModel):
    """Token refresh request; the token may come from the cookie instead."""

    refresh_token: str | None = None


class LogoutRequest(CamelModel):
    """Logout request."""

    refresh_token: str | None = None
    everywhere: bool = False


class ChangePasswordRequest(CamelModel):
    """Change password request."""

    current_password: SecretStr
    new_password: SecretStr = Field(..., max_length=128)


class ForgotPasswordRequest(CamelModel):
    """Password reset request."""

    email: EmailStr


class ResetPasswordRequest(CamelModel):
    """Password reset confirmation."""

    token: str
    new_password: SecretStr = Field(..., max_length=128)


class MFACodeRequest(CamelModel):
    """MFA enrolment confirmation."""

    code: str = Field(..., min_length=6, max_length=6)


class PasswordConfirmationRequest(CamelModel):
    """Password confirmation for sensitive MFA changes."""

    password: SecretStr


class MFASetupResponse(CamelModel):
    """MFA setup response."""

    secret: str
    provisioning_uri: str
    backup_codes: list[str]


class PrincipalResponse(CamelModel):
    """Current user response."""

    user_id: str
    email: str
    organization_id: str
    session_id: str
    mfa_verified: bool
    roles: list[str]
    permissions: list[str]


class SessionResponse(CamelModel):
    """One live session."""

    session_id: str
    created_at: int | None = None
    last_activity: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    mfa_verified: bool = False
    current: bool = False


# Cookie handling


def _set_refresh_cookie(request: Request, response: Response, tokens: AuthTokens | None) -> None:
    settings = get_auth_container(request).settings
    if tokens is None or not settings.session.refresh_cookie_enabled:
        return
    response.set_cookie(
        key=settings.session.cookie_name,
        value=tokens.refresh_token,
        max_age=settings.jwt.refresh_token_ttl,
        httponly=True,
        secure=settings.session.cookie_secure,
        samesite="strict",
        path="/auth",
    )


def _refresh_token_from(request: Request, body_token: str | None) -> str:
    if body_token:
        return body_token
    settings = get_auth_container(request).settings
    cookie_token = request.cookies.get(settings.session.cookie_name)
    if cookie_token:
        return cookie_token
    raise InvalidCredentialsError()


def _login_response(request: Request, response: Response, result: LoginResult) -> LoginResponse:
    _set_refresh_cookie(request, response, result.tokens)
    return LoginResponse.model_validate(result.to_response())


# Endpoints


@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
async def login(body: LoginRequest, request: Request, response: Response) -> LoginResponse:
    """Authenticate with email and password."""
    authentication = get_auth_container(request).authentication
    result = await authentication.login(
        body.email,
        body.password.get_secret_value(),
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return _login_response(request, response, result)


@router.post("/mfa/verify", response_model=LoginResponse, response_model_exclude_none=True)
async def verify_mfa(
    body: MFAVerificationRequest, request: Request, response: Response
) -> LoginResponse:
    """Complete login with a TOTP or backup code."""
    authentication = get_auth_container(request).authentication
    result = await authentication.verify_mfa(
        body.challenge_token,
        body.code,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return _login_response(request, response, result)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    request: Request, response: Response, body: RefreshTokenRequest | None = None
) -> TokenResponse:
    """Exchange a refresh token for a new token pair."""
    raw_token = _refresh_token_from(request, body.refresh_token if body else None)
    tokens = await get_auth_container(request).authentication.refresh(
        raw_token,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    _set_refresh_cookie(request, response, tokens)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        token_type=tokens.token_type,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(request: Request, body: LogoutRequest | None = None) -> Response:
    """Revoke the refresh token's lineage, or every session with ``everywhere``."""
    body = body or LogoutRequest()
    raw_token = _refresh_token_from(request, body.refresh_token)
    await get_auth_container(request).authentication.logout(raw_token, everywhere=body.everywhere)

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    settings = get_auth_container(request).settings
    if settings.session.refresh_cookie_enabled:
        response.delete_cookie(settings.session.cookie_name, path="/auth")
    return response


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> None:
    """Change the password; every session of the user ends."""
    await get_auth_container(request).authentication.change_password(
        principal.user_id,
        body.current_password.get_secret_value(),
        body.new_password.get_secret_value(),
    )


@router.get("/me", response_model=PrincipalResponse)
async def me(principal: AuthenticatedPrincipal = Depends(get_current_principal)) -> Any:
    """Current authenticated principal."""
    return PrincipalResponse(
        user_id=principal.user_id,
        email=principal.email,
        organization_id=principal.organization_id,
        session_id=principal.session_id,
        mfa_verified=principal.mfa_verified,
        roles=principal.roles,
        permissions=sorted(principal.permissions),
    )


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    request: Request, principal: AuthenticatedPrincipal = Depends(get_current_principal)
) -> Any:
    """Live sessions of the current user."""
    sessions = await get_auth_container(request).authentication.list_sessions(
        principal.user_id, principal.session_id
    )
    return [SessionResponse.model_validate(session) for session in sessions]


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_session(
    session_id: str,
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> None:
    """End one session of the current user."""
    revoked = await get_auth_container(request).authentication.logout_session(
        principal.user_id, session_id
    )
    if not revoked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


@router.post("/password/forgot", status_code=status.HTTP_202_ACCEPTED)
async def forgot_password(body: ForgotPasswordRequest, request: Request) -> dict[str, str]:
    """
    Request a password reset.

    The response never reveals whether the email exists. The token is
    handed to the container's ``password_reset_delivery`` hook.
    """
    container = get_auth_container(request)
    token = await container.authentication.request_password_reset(body.email)
    if token is not None and container.password_reset_delivery is not None:
        await container.password_reset_delivery(body.email, token)
    return {"message": "If the account exists, a reset link has been sent"}


@router.post("/password/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_password(body: ResetPasswordRequest, request: Request) -> None:
    """Set a new password with a reset token."""
    await get_auth_container(request).authentication.reset_password(
        body.token, body.new_password.get_secret_value()
    )


@router.post("/mfa/setup", response_model=MFASetupResponse)
async def setup_mfa(
    request: Request, principal: AuthenticatedPrincipal = Depends(get_current_principal)
) -> Any:
    """Start MFA enrolment."""
    try:
        setup = await get_auth_container(request).mfa_service.setup(principal.user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return MFASetupResponse(**setup)


@router.post("/mfa/enable", status_code=status.HTTP_204_NO_CONTENT)
async def enable_mfa(
    body: MFACodeRequest,
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> None:
    """Confirm MFA enrolment with a code from the authenticator app."""
    try:
        enabled = await get_auth_container(request).mfa_service.enable(
            principal.user_id, body.code
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code"
        )


@router.post("/mfa/disable", status_code=status.HTTP_204_NO_CONTENT)
async def disable_mfa(
    body: PasswordConfirmationRequest,
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> None:
    """Disable MFA (requires the password)."""
    try:
        await get_auth_container(request).mfa_service.disable(
            principal.user_id, body.password.get_secret_value()
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/mfa/backup-codes", response_model=list[str])
async def regenerate_backup_codes(
    body: PasswordConfirmationRequest,
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> Any:
    """Replace the backup codes (requires the password)."""
    try:
        return await get_auth_container(request).mfa_service.regenerate_backup_codes(
            principal.user_id, body.password.get_secret_value()
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# Error mapping

_STATUS_BY_ERROR: list[tuple[type[AuthenticationError], int]] = [
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (SessionExpiredError, status.HTTP_401_UNAUTHORIZED),
    (ReauthenticationRequiredError, status.HTTP_401_UNAUTHORIZED),
    (AccountUnusableError, status.HTTP_403_FORBIDDEN),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (WeakPasswordError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ServiceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: AuthenticationError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_401_UNAUTHORIZED


async def authentication_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a domain error as ``{"detail", "code"}``."""
    assert isinstance(exc, AuthenticationError)
    status_code = status_for(exc)
    body: dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, WeakPasswordError):
        body["errors"] = exc.errors
        body["suggestions"] = exc.suggestions
    if isinstance(exc, ServiceUnavailableError):
        logger.error(f"Service unavailable on {request.url.path}: {exc.cause}")

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthenticationError, authentication_error_handler)
