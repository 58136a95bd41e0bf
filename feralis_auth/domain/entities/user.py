"""
User Account Entity - the account view consumed by the authentication core
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AccountStatus(Enum):
    """Account status enumeration"""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    LOCKED = "LOCKED"


@dataclass
class UserAccount:
    """
    Account record as returned by the user/account store.

    The authentication core reads everything here but only ever writes the
    credential hash, login bookkeeping and MFA enrolment fields.
    """

    id: str
    email: str
    organization_id: str
    password_hash: str
    status: AccountStatus = AccountStatus.ACTIVE
    mfa_enabled: bool = False
    mfa_secret: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    roles: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
    deleted_at: datetime | None = None
    last_login_at: datetime | None = None

    @property
    def display_name(self) -> str:
        """Human readable name, falling back to the email."""
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email

    def is_usable(self) -> bool:
        """Only active, non-deleted accounts may authenticate."""
        return self.status == AccountStatus.ACTIVE and self.deleted_at is None

    def unusable_reason(self) -> str:
        """Status label used when rejecting an unusable account."""
        if self.deleted_at is not None:
            return "DELETED"
        return self.status.value
