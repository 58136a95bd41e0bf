"""
Refresh Token Record Entity - one issued refresh token in the ledger
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4


class RevocationReason(str, Enum):
    """Why a refresh token record was revoked."""

    ROTATION = "rotation"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    REUSE_DETECTED = "reuse_detected"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"
    ACCOUNT_UNUSABLE = "account_unusable"


@dataclass
class RefreshTokenRecord:
    """
    Persisted refresh token.

    Only the SHA-256 of the raw token is kept. Records in the same family
    descend from one login; at most one of them is unrevoked at a time.
    """

    user_id: str
    token_hash: str
    family: str
    session_id: str
    issued_at: datetime
    expires_at: datetime
    mfa_verified: bool = False
    ip_address: str | None = None
    user_agent: str | None = None
    is_revoked: bool = False
    revoked_at: datetime | None = None
    revoked_reason: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))

    def is_expired(self, now: datetime) -> bool:
        """Check if the record is past its expiry."""
        return now >= self.expires_at

    def is_live(self, now: datetime) -> bool:
        """A record is live when neither revoked nor expired."""
        return not self.is_revoked and not self.is_expired(now)
