"""
Password management service.

Handles password hashing, strength validation, breach checking,
and password-related operations.
"""

import asyncio
import hashlib
import logging
import re
import secrets
import string

import bcrypt
import httpx
from argon2 import PasswordHasher as Argon2Hasher
from argon2 import Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from zxcvbn import zxcvbn

from feralis_auth.application.config import PasswordPolicy
from feralis_auth.domain.exceptions import BreachCheckUnavailableError
from feralis_auth.domain.value_objects import PasswordValidationResult

logger = logging.getLogger(__name__)

_LEGACY_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
_SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
_SPECIAL_PATTERN = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


class PasswordHasher:
    """Argon2id password hashing utility with legacy bcrypt verification."""

    def __init__(self, memory_cost: int = 65536, time_cost: int = 3, parallelism: int = 4) -> None:
        """Initialize with Argon2id cost parameters (memory in KiB)."""
        self._argon2 = Argon2Hasher(
            memory_cost=memory_cost,
            time_cost=time_cost,
            parallelism=parallelism,
            type=Type.ID,
        )

    def hash(self, password: str) -> str:
        """Hash a password using Argon2id."""
        return self._argon2.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash. Never raises."""
        if password_hash.startswith(_LEGACY_BCRYPT_PREFIXES):
            try:
                return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
            except ValueError as e:
                logger.error(f"Legacy password verification failed: {e}")
                return False

        try:
            return self._argon2.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError) as e:
            logger.error(f"Password verification failed: {e}")
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if a hash is legacy bcrypt or uses outdated Argon2 parameters."""
        if password_hash.startswith(_LEGACY_BCRYPT_PREFIXES):
            return True
        try:
            return self._argon2.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True


class PasswordValidator:
    """Password strength validator: character rules plus a zxcvbn score gate."""

    def __init__(self, policy: PasswordPolicy) -> None:
        self.policy = policy

    def validate(
        self, password: str, user_inputs: list[str] | None = None
    ) -> PasswordValidationResult:
        """
        Validate password strength.

        Both the character rules and the estimator score must pass; a
        password that satisfies every rule but scores below the minimum
        is still rejected.
        """
        policy = self.policy
        errors: list[str] = []
        suggestions: list[str] = []

        # Length check
        if len(password) < policy.min_length:
            errors.append(f"Password must be at least {policy.min_length} characters long")
        if len(password) > policy.max_length:
            errors.append(f"Password must not exceed {policy.max_length} characters")

        # Complexity checks
        if policy.require_uppercase and not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if policy.require_lowercase and not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if policy.require_number and not re.search(r"\d", password):
            errors.append("Password must contain at least one number")
        if policy.require_special and not _SPECIAL_PATTERN.search(password):
            errors.append("Password must contain at least one special character")

        # zxcvbn only looks at the first max_length characters
        result = zxcvbn(password[: policy.max_length] or " ", user_inputs=user_inputs or [])
        score = int(result["score"]) if password else 0
        feedback = result.get("feedback") or {}

        # The score is the only estimator gate; the warning explains it
        warning = feedback.get("warning")
        if score < policy.min_score:
            errors.append("Password is too weak")
            if warning:
                errors.append(warning)
        elif warning:
            suggestions.append(warning)
        suggestions.extend(feedback.get("suggestions") or [])

        return PasswordValidationResult(
            is_valid=not errors, score=score, errors=errors, suggestions=suggestions
        )


class BreachChecker:
    """
    k-anonymity lookup against the Pwned Passwords range API.

    Only the first five characters of the SHA-1 hex digest leave the
    process.
    """

    def __init__(self, policy: PasswordPolicy, client: httpx.AsyncClient | None = None) -> None:
        self.policy = policy
        self._client = client

    async def _fetch_range(self, prefix: str) -> str:
        url = f"{self.policy.breach_api_url.rstrip('/')}/range/{prefix}"
        headers = {"User-Agent": "Feralis-Platform", "Add-Padding": "true"}
        try:
            if self._client is not None:
                response = await self._client.get(
                    url, headers=headers, timeout=self.policy.breach_timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.policy.breach_timeout) as client:
                    response = await client.get(url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BreachCheckUnavailableError(f"Breach lookup failed: {e}") from e
        return response.text

    async def is_breached(self, password: str) -> bool:
        """
        Check whether the password appears in a known breach corpus.

        Never raises. When the lookup cannot complete the result follows
        ``breach_fail_open``: False if failing open, True otherwise.
        """
        if not self.policy.breach_check_enabled:
            return False

        digest = hashlib.sha1(password.encode("utf-8"), usedforsecurity=False).hexdigest().upper()
        prefix, suffix = digest[:5], digest[5:]

        try:
            body = await self._fetch_range(prefix)
        except BreachCheckUnavailableError as e:
            logger.warning(f"Password breach check unavailable: {e}")
            return not self.policy.breach_fail_open

        for line in body.splitlines():
            hash_suffix, _, count = line.strip().partition(":")
            if hash_suffix.upper() != suffix:
                continue
            try:
                occurrences = int(count)
            except ValueError:
                occurrences = 1
            if occurrences > 0:
                logger.debug(f"Password found in {occurrences} breaches")
                return True
        return False


class PasswordService:
    """Password management service."""

    def __init__(
        self, policy: PasswordPolicy | None = None, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self.policy = policy or PasswordPolicy()
        self.hasher = PasswordHasher(
            memory_cost=self.policy.memory_cost,
            time_cost=self.policy.time_cost,
            parallelism=self.policy.parallelism,
        )
        self.validator = PasswordValidator(self.policy)
        self.breach_checker = BreachChecker(self.policy, client=http_client)

    async def hash(self, password: str) -> str:
        """Hash a password off the event loop."""
        return await asyncio.to_thread(self.hasher.hash, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password off the event loop. Never raises."""
        return await asyncio.to_thread(self.hasher.verify, password, password_hash)

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if password needs rehashing."""
        return self.hasher.needs_rehash(password_hash)

    def validate_strength(
        self, password: str, user_inputs: list[str] | None = None
    ) -> PasswordValidationResult:
        """Validate password strength."""
        return self.validator.validate(password, user_inputs)

    async def check_breach(self, password: str) -> bool:
        """Check if the password appears in a known breach."""
        return await self.breach_checker.is_breached(password)

    @staticmethod
    def generate_secure_password(length: int = 16) -> str:
        """Generate a random password containing every character class."""
        if length < 4:
            raise ValueError("Password length must be at least 4")

        pools = [string.ascii_uppercase, string.ascii_lowercase, string.digits, _SPECIAL_CHARS]
        alphabet = "".join(pools)
        chars = [secrets.choice(pool) for pool in pools]
        chars.extend(secrets.choice(alphabet) for _ in range(length - len(pools)))
        secrets.SystemRandom().shuffle(chars)
        return "".join(chars)

    @staticmethod
    def generate_token(nbytes: int = 32) -> str:
        """Generate a random hex token."""
        return secrets.token_hex(nbytes)
