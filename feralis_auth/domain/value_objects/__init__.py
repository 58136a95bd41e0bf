"""Domain value objects."""

from .password import PasswordValidationResult
from .tokens import AccessTokenClaims, AuthTokens, RefreshTokenData, TokenType

__all__ = [
    "AccessTokenClaims",
    "AuthTokens",
    "PasswordValidationResult",
    "RefreshTokenData",
    "TokenType",
]
