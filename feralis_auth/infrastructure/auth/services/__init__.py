"""
Authentication service components.

Each component owns one concern of the authentication core; the
``AuthenticationService`` composes them into the login and session flows.
"""

from .authentication import AuthenticationService
from .mfa_service import MFAChallengeStore, MFAService
from .password_service import BreachChecker, PasswordHasher, PasswordService, PasswordValidator
from .session_store import SessionStore
from .token_service import TokenService

__all__ = [
    "AuthenticationService",
    "BreachChecker",
    "MFAChallengeStore",
    "MFAService",
    "PasswordHasher",
    "PasswordService",
    "PasswordValidator",
    "SessionStore",
    "TokenService",
]
