"""Domain entities."""

from .refresh_token import RefreshTokenRecord, RevocationReason
from .user import AccountStatus, UserAccount

__all__ = [
    "AccountStatus",
    "RefreshTokenRecord",
    "RevocationReason",
    "UserAccount",
]
