"""
Token value objects.

Claims carried inside signed bearer tokens and the token pair handed back
to clients. None of these are ever persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class TokenType(str, Enum):
    """Bearer token purpose, signed into the ``type`` claim."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class AccessTokenClaims:
    """Application claims signed into access and refresh tokens."""

    sub: str
    email: str
    organization_id: str
    session_id: str
    type: TokenType
    mfa_verified: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Serialize using the wire claim names."""
        payload: dict[str, Any] = {
            "sub": self.sub,
            "email": self.email,
            "organizationId": self.organization_id,
            "sessionId": self.session_id,
            "type": self.type.value,
        }
        if self.type == TokenType.ACCESS:
            payload["mfaVerified"] = self.mfa_verified
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AccessTokenClaims:
        """Rebuild claims from a verified payload."""
        try:
            return cls(
                sub=str(payload["sub"]),
                email=str(payload.get("email", "")),
                organization_id=str(payload.get("organizationId", "")),
                session_id=str(payload["sessionId"]),
                type=TokenType(payload["type"]),
                mfa_verified=bool(payload.get("mfaVerified", False)),
            )
        except (KeyError, ValueError) as e:
            raise ValueError(f"Malformed token claims: {e}") from e


@dataclass(frozen=True)
class AuthTokens:
    """Access/refresh token pair returned on login, MFA verify and refresh."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


@dataclass(frozen=True)
class RefreshTokenData:
    """Result of a successful refresh-token validation."""

    user_id: str
    family: str
    session_id: str
    mfa_verified: bool = False
