"""
Multi-factor authentication service.

Handles the MFA challenge exchange between primary and second-factor
verification, TOTP and backup code checks, and MFA enrolment.
"""

import hashlib
import logging
import secrets
from typing import Any

import pyotp

from feralis_auth.application.interfaces import IBackupCodeRepository, IUserRepository
from feralis_auth.domain.entities import UserAccount
from feralis_auth.domain.exceptions import InvalidCredentialsError
from feralis_auth.infrastructure.cache import RedisStore

from ..audit import AuthAuditLogger
from .password_service import PasswordService

logger = logging.getLogger(__name__)

BACKUP_CODE_COUNT = 10


def hash_backup_code(code: str) -> str:
    """Backup codes are compared case-insensitively by hash."""
    return hashlib.sha256(code.strip().upper().encode("utf-8")).hexdigest()


class MFAChallengeStore:
    """
    Short-lived challenge tokens bridging password and second-factor checks.

    A challenge is only consumed on successful verification, so a wrong
    code can be retried until the challenge expires.
    """

    def __init__(self, store: RedisStore, ttl_seconds: int = 300) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(token: str) -> str:
        return f"mfa:{token}"

    async def create_challenge(self, user_id: str) -> str:
        token = secrets.token_hex(32)
        await self.store.set(self._key(token), user_id, self.ttl_seconds)
        return token

    async def resolve_challenge(self, token: str) -> str | None:
        """User id bound to the challenge, or None if unknown or expired."""
        if not token:
            return None
        return await self.store.get(self._key(token))

    async def consume_challenge(self, token: str) -> bool:
        """Delete the challenge. False if it was already gone."""
        return await self.store.delete(self._key(token)) == 1


class MFAService:
    """Second-factor verification and MFA enrolment."""

    def __init__(
        self,
        user_repository: IUserRepository,
        backup_codes: IBackupCodeRepository,
        password_service: PasswordService,
        audit: AuthAuditLogger | None = None,
        issuer_name: str = "Feralis",
    ) -> None:
        self.users = user_repository
        self.backup_codes = backup_codes
        self.password_service = password_service
        self.audit = audit or AuthAuditLogger()
        self.issuer_name = issuer_name

    async def verify_code(self, user: UserAccount, code: str) -> bool:
        """
        Verify MFA code (TOTP or backup code).

        Args:
            user: Account being verified
            code: 6-digit TOTP code or 8-character backup code

        Returns:
            True if code is valid
        """
        code = (code or "").strip()

        # Check if it's a TOTP code (6 digits)
        if len(code) == 6 and code.isdigit():
            return self._verify_totp(user, code)
        # Check if it's a backup code (8 hex characters)
        if len(code) == 8:
            return await self._verify_backup_code(user, code)

        return False

    def _verify_totp(self, user: UserAccount, code: str) -> bool:
        if not user.mfa_secret:
            logger.warning(f"User {user.id} has MFA enabled but no secret stored")
            return False

        # valid_window=1 tolerates one 30 second step of clock drift
        is_valid = pyotp.TOTP(user.mfa_secret).verify(code, valid_window=1)
        if not is_valid:
            logger.warning(f"Invalid MFA code attempt for user {user.id}")
        return is_valid

    async def _verify_backup_code(self, user: UserAccount, code: str) -> bool:
        if await self.backup_codes.consume_code(user.id, hash_backup_code(code)):
            await self.audit.record("mfa_backup_code_used", user_id=user.id)
            logger.info(f"Backup code used for user {user.id}")
            return True

        await self.audit.record("mfa_backup_code_failed", user_id=user.id, success=False)
        return False

    async def setup(self, user_id: str) -> dict[str, Any]:
        """
        Setup MFA for a user by generating a new TOTP secret.

        MFA stays disabled until ``enable`` confirms a code from the
        authenticator app.

        Returns:
            Dict containing secret, provisioning URI, and backup codes
        """
        user = await self._require_user(user_id)
        if user.mfa_enabled:
            raise ValueError("MFA is already enabled for this user")

        secret = pyotp.random_base32()
        provisioning_uri = pyotp.TOTP(secret).provisioning_uri(
            name=user.email, issuer_name=self.issuer_name
        )

        await self.users.update_mfa(user.id, enabled=False, secret=secret)
        backup_codes = await self._generate_backup_codes(user.id)

        await self.audit.record("mfa_setup_initiated", user_id=user.id)
        return {
            "secret": secret,
            "provisioning_uri": provisioning_uri,
            "backup_codes": backup_codes,
        }

    async def enable(self, user_id: str, code: str) -> bool:
        """Confirm MFA setup with a TOTP code. Returns False on a wrong code."""
        user = await self._require_user(user_id)
        if user.mfa_enabled:
            raise ValueError("MFA is already enabled")
        if not user.mfa_secret:
            raise ValueError("MFA setup not initiated")

        if not self._verify_totp(user, code.strip()):
            await self.audit.record("mfa_setup_failed", user_id=user.id, success=False)
            return False

        await self.users.update_mfa(user.id, enabled=True, secret=user.mfa_secret)
        await self.audit.record("mfa_enabled", user_id=user.id)
        logger.info(f"MFA enabled for user {user.id}")
        return True

    async def disable(self, user_id: str, password: str) -> bool:
        """
        Disable MFA for a user (requires password confirmation).

        Raises:
            InvalidCredentialsError: If the password is wrong
        """
        user = await self._require_user(user_id)
        if not user.mfa_enabled:
            raise ValueError("MFA is not enabled")

        await self._confirm_password(user, password, "mfa_disable_failed")

        await self.users.update_mfa(user.id, enabled=False, secret=None)
        await self.backup_codes.delete_codes(user.id)

        await self.audit.record("mfa_disabled", user_id=user.id)
        logger.info(f"MFA disabled for user {user.id}")
        return True

    async def regenerate_backup_codes(self, user_id: str, password: str) -> list[str]:
        """
        Regenerate backup codes for a user (requires password confirmation).

        Raises:
            InvalidCredentialsError: If the password is wrong
        """
        user = await self._require_user(user_id)
        if not user.mfa_enabled:
            raise ValueError("MFA is not enabled")

        await self._confirm_password(user, password, "mfa_backup_codes_regen_failed")
        backup_codes = await self._generate_backup_codes(user.id)

        await self.audit.record("mfa_backup_codes_regenerated", user_id=user.id)
        logger.info(f"Backup codes regenerated for user {user.id}")
        return backup_codes

    async def backup_codes_remaining(self, user_id: str) -> int:
        return await self.backup_codes.count_remaining(user_id)

    async def _generate_backup_codes(
        self, user_id: str, count: int = BACKUP_CODE_COUNT
    ) -> list[str]:
        codes = [secrets.token_hex(4).upper() for _ in range(count)]
        await self.backup_codes.replace_codes(user_id, [hash_backup_code(code) for code in codes])
        return codes

    async def _confirm_password(self, user: UserAccount, password: str, event_type: str) -> None:
        if not await self.password_service.verify(password, user.password_hash):
            await self.audit.record(
                event_type,
                user_id=user.id,
                event_data={"reason": "invalid_password"},
                success=False,
            )
            raise InvalidCredentialsError()

    async def _require_user(self, user_id: str) -> UserAccount:
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise ValueError("User not found")
        return user
