"""
Repository Interface Definitions

Defines the contracts that infrastructure repositories must implement.
Following the Repository pattern and clean architecture principles.
"""

from abc import abstractmethod
from datetime import datetime
from typing import Protocol

from feralis_auth.domain.entities import RefreshTokenRecord, UserAccount


class IUserRepository(Protocol):
    """
    User/account store interface.

    The authentication core only ever writes the credential hash, login
    bookkeeping and MFA enrolment fields through this interface.
    """

    @abstractmethod
    async def find_by_id(self, user_id: str) -> UserAccount | None:
        """
        Retrieve an account by id.

        Raises:
            ServiceUnavailableError: If the store cannot be reached
        """
        ...

    @abstractmethod
    async def find_by_email(self, email: str) -> UserAccount | None:
        """
        Retrieve an account by email (case-insensitive).

        Raises:
            ServiceUnavailableError: If the store cannot be reached
        """
        ...

    @abstractmethod
    async def update_password_hash(self, user_id: str, password_hash: str) -> None:
        """Replace the stored credential hash."""
        ...

    @abstractmethod
    async def record_login(self, user_id: str, ip_address: str | None) -> None:
        """Record a successful login."""
        ...

    @abstractmethod
    async def update_mfa(self, user_id: str, enabled: bool, secret: str | None) -> None:
        """Update MFA enrolment state."""
        ...


class IBackupCodeRepository(Protocol):
    """MFA backup code store interface."""

    @abstractmethod
    async def replace_codes(self, user_id: str, code_hashes: list[str]) -> None:
        """Delete existing codes for the user and store the new hashes."""
        ...

    @abstractmethod
    async def consume_code(self, user_id: str, code_hash: str) -> bool:
        """
        Mark an unused code as used.

        Returns:
            True if exactly one unused code matched
        """
        ...

    @abstractmethod
    async def count_remaining(self, user_id: str) -> int:
        """Number of unused codes."""
        ...

    @abstractmethod
    async def delete_codes(self, user_id: str) -> None:
        """Remove every code of the user."""
        ...


class IRefreshTokenRepository(Protocol):
    """
    Refresh token ledger store interface.

    Implementations must make ``rotate`` atomic: the conditional revoke of
    the old record and the insert of its successor commit together or not
    at all.
    """

    @abstractmethod
    async def create(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        """
        Persist a newly issued refresh token record.

        Raises:
            ServiceUnavailableError: If the record could not be committed
        """
        ...

    @abstractmethod
    async def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        """Look up a record by token hash regardless of its state."""
        ...

    @abstractmethod
    async def find_live_by_hash(self, token_hash: str, now: datetime) -> RefreshTokenRecord | None:
        """Look up a record that is neither revoked nor expired."""
        ...

    @abstractmethod
    async def list_by_family(self, family: str) -> list[RefreshTokenRecord]:
        """All records of a family, oldest first."""
        ...

    @abstractmethod
    async def rotate(
        self, old_token_hash: str, successor: RefreshTokenRecord, reason: str, now: datetime
    ) -> bool:
        """
        Revoke the old record and insert its successor in one transaction.

        Returns:
            False (and nothing written) if the old record was no longer
            unrevoked when the update ran
        """
        ...

    @abstractmethod
    async def revoke_by_hash(self, token_hash: str, reason: str, now: datetime) -> int:
        """Revoke the record with this hash. Returns rows changed."""
        ...

    @abstractmethod
    async def revoke_family(self, family: str, reason: str, now: datetime) -> int:
        """Revoke every unrevoked record of a family. Returns rows changed."""
        ...

    @abstractmethod
    async def revoke_all_for_user(self, user_id: str, reason: str, now: datetime) -> int:
        """Revoke every unrevoked record of a user. Returns rows changed."""
        ...

    @abstractmethod
    async def delete_expired(self, now: datetime, revoked_before: datetime) -> int:
        """Delete expired records and records revoked before the cutoff."""
        ...
