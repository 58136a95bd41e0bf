"""
Result types shared by the authentication flow and its HTTP surface.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from feralis_auth.domain.value_objects import AuthTokens


class AuthState(Enum):
    """Where a login attempt stands."""

    ANONYMOUS = "anonymous"
    PRIMARY_VERIFIED = "primary_verified"
    MFA_PENDING = "mfa_pending"
    MFA_VERIFIED = "mfa_verified"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass
class LoginResult:
    """Authentication result data."""

    state: AuthState
    user_id: str
    tokens: AuthTokens | None = None
    requires_mfa: bool = False
    mfa_challenge_token: str | None = None

    def to_response(self) -> dict[str, Any]:
        """Wire shape returned by the login and MFA endpoints."""
        body: dict[str, Any] = {"requiresMFA": self.requires_mfa}
        if self.requires_mfa:
            body["mfaChallengeToken"] = self.mfa_challenge_token
        if self.tokens is not None:
            body.update(
                accessToken=self.tokens.access_token,
                refreshToken=self.tokens.refresh_token,
                expiresIn=self.tokens.expires_in,
                tokenType=self.tokens.token_type,
            )
        return body


@dataclass
class AuthenticatedPrincipal:
    """Caller identity established from a verified access token and live session."""

    user_id: str
    email: str
    organization_id: str
    session_id: str
    mfa_verified: bool = False
    roles: list[str] = field(default_factory=list)
    permissions: set[str] = field(default_factory=set)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions
