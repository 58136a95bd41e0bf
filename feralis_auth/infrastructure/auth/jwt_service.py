"""
JWT signing service for authentication.

This module handles creation and verification of access and refresh
tokens. Access and refresh tokens are signed with distinct secrets so a
token of one kind can never pass verification as the other. Revocation
state lives in the refresh token ledger, not here.
"""

import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from feralis_auth.application.config import JWTSettings
from feralis_auth.domain.exceptions import InvalidTokenError
from feralis_auth.domain.value_objects import AccessTokenClaims, TokenType

logger = logging.getLogger(__name__)


class TokenExpiredError(InvalidTokenError):
    """Raised when a token has expired."""

    def __init__(self, message: str = "Token has expired") -> None:
        super().__init__(message)


class JWTService:
    """
    JWT token service for creating and verifying tokens.

    Supports:
    - Access tokens (15 minutes default)
    - Refresh tokens (7 days default)
    - Distinct signing secrets per token type
    """

    def __init__(self, settings: JWTSettings) -> None:
        """
        Initialize JWT service.

        Args:
            settings: Signing secrets, issuer and token lifetimes
        """
        self.settings = settings
        self.issuer = settings.issuer
        self.algorithm = settings.algorithm
        self.access_token_expire = timedelta(seconds=settings.access_token_ttl)
        self.refresh_token_expire = timedelta(seconds=settings.refresh_token_ttl)

    @property
    def access_token_ttl(self) -> int:
        return self.settings.access_token_ttl

    @property
    def refresh_token_ttl(self) -> int:
        return self.settings.refresh_token_ttl

    def _secret_for(self, token_type: TokenType) -> str:
        if token_type == TokenType.REFRESH:
            return self.settings.refresh_secret
        return self.settings.access_secret

    def _encode(self, claims: AccessTokenClaims, lifetime: timedelta) -> str:
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "iss": self.issuer,
            "iat": now,
            "exp": now + lifetime,
            # Two tokens issued in the same second must still differ
            "jti": secrets.token_urlsafe(16),
            **claims.to_payload(),
        }
        return jwt.encode(payload, self._secret_for(claims.type), algorithm=self.algorithm)

    def create_access_token(
        self,
        user_id: str,
        email: str,
        organization_id: str,
        session_id: str,
        mfa_verified: bool = False,
    ) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User identifier
            email: User email
            organization_id: Tenant the user belongs to
            session_id: Session identifier
            mfa_verified: Whether MFA was verified

        Returns:
            Signed JWT access token
        """
        claims = AccessTokenClaims(
            sub=user_id,
            email=email,
            organization_id=organization_id,
            session_id=session_id,
            type=TokenType.ACCESS,
            mfa_verified=mfa_verified,
        )
        return self._encode(claims, self.access_token_expire)

    def create_refresh_token(
        self, user_id: str, email: str, organization_id: str, session_id: str
    ) -> str:
        """
        Create JWT refresh token.

        The token carries no family; the family is looked up in the ledger
        by the token's hash.
        """
        claims = AccessTokenClaims(
            sub=user_id,
            email=email,
            organization_id=organization_id,
            session_id=session_id,
            type=TokenType.REFRESH,
        )
        return self._encode(claims, self.refresh_token_expire)

    def verify_access_token(self, token: str) -> AccessTokenClaims:
        """
        Verify and decode access token.

        Raises:
            TokenExpiredError: If token is expired
            InvalidTokenError: If token is invalid or not an access token
        """
        return self._verify(token, TokenType.ACCESS)

    def verify_refresh_token(self, token: str) -> AccessTokenClaims:
        """
        Verify and decode refresh token.

        Raises:
            TokenExpiredError: If token is expired
            InvalidTokenError: If token is invalid or not a refresh token
        """
        return self._verify(token, TokenType.REFRESH)

    def _verify(self, token: str, expected: TokenType) -> AccessTokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret_for(expected),
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_iss": True,
                    "require": ["exp", "iat", "sub"],
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError(f"{expected.value.capitalize()} token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid {expected.value} token: {e!s}") from e

        try:
            claims = AccessTokenClaims.from_payload(payload)
        except ValueError as e:
            raise InvalidTokenError(str(e)) from e

        if claims.type != expected:
            logger.warning(f"Rejected {claims.type.value} token presented as {expected.value}")
            raise InvalidTokenError(f"Invalid token type: {claims.type.value}")
        return claims
