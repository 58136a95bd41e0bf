"""
Authentication core for the Feralis platform.

This package provides password credentials, the refresh-token ledger,
Redis-backed sessions, MFA and the FastAPI surface over them. The
application factory lives in ``feralis_auth.infrastructure.auth.app``.
"""

from .audit import AuthAuditLogger
from .endpoints import register_exception_handlers, router
from .jwt_service import JWTService, TokenExpiredError
from .middleware import (
    AuthBearer,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    get_auth_container,
    get_current_principal,
)
from .models import (
    AuthAuditLog,
    Base,
    MFABackupCode,
    Permission,
    RefreshToken,
    Role,
    User,
)
from .permissions import CapabilityRequirement, RequireCapabilities
from .repositories import (
    SQLAlchemyBackupCodeRepository,
    SQLAlchemyRefreshTokenRepository,
    SQLAlchemyUserRepository,
)
from .types import AuthenticatedPrincipal, AuthState, LoginResult

__all__ = [
    # Services
    "AuthAuditLogger",
    "JWTService",
    "TokenExpiredError",
    # Middleware
    "AuthBearer",
    "RequestIDMiddleware",
    "SecurityHeadersMiddleware",
    "get_auth_container",
    "get_current_principal",
    # Permissions
    "CapabilityRequirement",
    "RequireCapabilities",
    # Models
    "AuthAuditLog",
    "Base",
    "MFABackupCode",
    "Permission",
    "RefreshToken",
    "Role",
    "User",
    # Repositories
    "SQLAlchemyBackupCodeRepository",
    "SQLAlchemyRefreshTokenRepository",
    "SQLAlchemyUserRepository",
    # Types
    "AuthState",
    "AuthenticatedPrincipal",
    "LoginResult",
    # HTTP
    "register_exception_handlers",
    "router",
]
