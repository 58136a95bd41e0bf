"""
Authentication service.

Orchestrates login, MFA verification, token refresh, logout, password
changes and resets, and access token authentication. Lower-level token
and session failures are translated here into the small set of errors
callers see.
"""

import logging
import secrets
from typing import Any
from uuid import uuid4

from feralis_auth.application.config import SessionSettings
from feralis_auth.application.interfaces import IUserRepository
from feralis_auth.domain.entities import RevocationReason, UserAccount
from feralis_auth.domain.exceptions import (
    AccountUnusableError,
    InvalidCredentialsError,
    InvalidTokenError,
    ReauthenticationRequiredError,
    SessionExpiredError,
    TokenReuseDetectedError,
    WeakPasswordError,
)
from feralis_auth.domain.value_objects import AuthTokens
from feralis_auth.infrastructure.cache import RedisStore

from ..audit import AuthAuditLogger
from ..types import AuthenticatedPrincipal, AuthState, LoginResult
from .mfa_service import MFAChallengeStore, MFAService
from .password_service import PasswordService
from .session_store import SessionStore
from .token_service import TokenService, new_family

logger = logging.getLogger(__name__)

BREACHED_PASSWORD_MESSAGE = "Password has appeared in a known data breach"
REUSED_PASSWORD_MESSAGE = "New password must differ from the current password"


class AuthenticationService:
    """User authentication service."""

    def __init__(
        self,
        user_repository: IUserRepository,
        password_service: PasswordService,
        token_service: TokenService,
        session_store: SessionStore,
        mfa_challenges: MFAChallengeStore,
        mfa_service: MFAService,
        store: RedisStore,
        settings: SessionSettings | None = None,
        audit: AuthAuditLogger | None = None,
    ) -> None:
        self.users = user_repository
        self.password_service = password_service
        self.tokens = token_service
        self.sessions = session_store
        self.mfa_challenges = mfa_challenges
        self.mfa_service = mfa_service
        self.store = store
        self.settings = settings or SessionSettings()
        self.audit = audit or AuthAuditLogger()
        self._dummy_hash: str | None = None

    # Login

    async def login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """
        Verify primary credentials and either start a session or issue an
        MFA challenge.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            AccountUnusableError: Account is not active or has been deleted
            ServiceUnavailableError: A backing store failed
        """
        user = await self.users.find_by_email(email)

        # Always perform password verification to prevent timing attacks
        if user is None:
            await self.password_service.verify(password, await self._get_dummy_hash())
            await self.audit.record(
                "login_failed",
                event_data={"reason": "unknown_account"},
                ip_address=ip_address,
                user_agent=user_agent,
                success=False,
            )
            raise InvalidCredentialsError()

        if not await self.password_service.verify(password, user.password_hash):
            await self.audit.record(
                "login_failed",
                user_id=user.id,
                event_data={"reason": "invalid_password"},
                ip_address=ip_address,
                user_agent=user_agent,
                success=False,
            )
            raise InvalidCredentialsError()

        self._require_usable(user)
        await self._upgrade_hash_if_needed(user, password)

        if user.mfa_enabled:
            challenge = await self.mfa_challenges.create_challenge(user.id)
            await self.audit.record(
                "mfa_challenge_issued", user_id=user.id, ip_address=ip_address
            )
            logger.info(f"MFA challenge issued for user {user.id}")
            return LoginResult(
                state=AuthState.MFA_PENDING,
                user_id=user.id,
                requires_mfa=True,
                mfa_challenge_token=challenge,
            )

        tokens = await self._start_session(user, False, ip_address, user_agent)
        return LoginResult(state=AuthState.AUTHENTICATED, user_id=user.id, tokens=tokens)

    async def verify_mfa(
        self,
        challenge_token: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """
        Complete a login with a TOTP or backup code.

        A wrong code leaves the challenge usable until it expires.

        Raises:
            InvalidCredentialsError: Unknown or expired challenge, or wrong code
            AccountUnusableError: Account became unusable since the challenge
        """
        user_id = await self.mfa_challenges.resolve_challenge(challenge_token)
        if user_id is None:
            raise InvalidCredentialsError()

        user = await self.users.find_by_id(user_id)
        if user is None:
            await self.mfa_challenges.consume_challenge(challenge_token)
            raise InvalidCredentialsError()
        if not user.is_usable():
            await self.mfa_challenges.consume_challenge(challenge_token)
            self._require_usable(user)

        if not await self.mfa_service.verify_code(user, code):
            await self.audit.record(
                "mfa_failed", user_id=user.id, ip_address=ip_address, success=False
            )
            raise InvalidCredentialsError()

        # Only one concurrent verification of a challenge may win
        if not await self.mfa_challenges.consume_challenge(challenge_token):
            raise InvalidCredentialsError()

        tokens = await self._start_session(user, True, ip_address, user_agent)
        return LoginResult(state=AuthState.AUTHENTICATED, user_id=user.id, tokens=tokens)

    # Refresh and logout

    async def refresh(
        self,
        refresh_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthTokens:
        """
        Rotate a refresh token and move its session to the new session id.

        Raises:
            ReauthenticationRequiredError: The token was already used; the
                whole lineage has been revoked
            InvalidCredentialsError: The token is malformed, expired or unknown
            AccountUnusableError: The account is no longer usable
        """
        try:
            data = await self.tokens.validate_or_raise(refresh_token)
        except TokenReuseDetectedError as e:
            await self._end_family_sessions(e.family, e.user_id)
            raise ReauthenticationRequiredError() from e
        except InvalidTokenError as e:
            logger.info(f"Refresh rejected: {e.message}")
            raise InvalidCredentialsError() from e

        user = await self.users.find_by_id(data.user_id)
        if user is None or not user.is_usable():
            await self.tokens.revoke_family(data.family, RevocationReason.ACCOUNT_UNUSABLE)
            await self.sessions.delete(data.user_id, data.session_id)
            if user is None:
                raise InvalidCredentialsError()
            self._require_usable(user)

        new_session_id = str(uuid4())
        try:
            tokens = await self.tokens.rotate(
                refresh_token,
                data.family,
                user,
                mfa_verified=data.mfa_verified,
                ip_address=ip_address,
                user_agent=user_agent,
                session_id=new_session_id,
            )
        except TokenReuseDetectedError as e:
            await self._end_family_sessions(e.family, user.id)
            raise ReauthenticationRequiredError() from e

        await self._move_session(
            user.id, data.session_id, new_session_id, data.family, ip_address, user_agent
        )
        return tokens

    async def logout(self, refresh_token: str, everywhere: bool = False) -> None:
        """
        Revoke the token's family and end its session, or every session
        of the user when ``everywhere`` is set.

        Raises:
            InvalidCredentialsError: If the token does not verify
        """
        try:
            claims = self.tokens.decode_refresh_claims(refresh_token)
        except InvalidTokenError as e:
            raise InvalidCredentialsError() from e

        if everywhere:
            await self.logout_all(claims.sub)
            return

        record = await self.tokens.lookup(refresh_token)
        if record is not None:
            await self.tokens.revoke_family(record.family, RevocationReason.LOGOUT)
            await self.sessions.delete(record.user_id, record.session_id)
        else:
            await self.sessions.delete(claims.sub, claims.session_id)

        await self.audit.record(
            "logout", user_id=claims.sub, event_data={"session_id": claims.session_id}
        )
        logger.info(f"User {claims.sub} logged out")

    async def logout_session(self, user_id: str, session_id: str) -> bool:
        """End one session of an authenticated user. False if it did not exist."""
        session = await self.sessions.get(user_id, session_id)
        if session is None:
            return False

        family = session.get("family")
        if family:
            await self.tokens.revoke_family(family, RevocationReason.LOGOUT)
        await self.sessions.delete(user_id, session_id)

        await self.audit.record(
            "session_revoked", user_id=user_id, event_data={"session_id": session_id}
        )
        return True

    async def logout_all(self, user_id: str) -> int:
        """Revoke every refresh token and session of the user."""
        await self.tokens.revoke_all_for_user(user_id, RevocationReason.LOGOUT_ALL)
        deleted = await self.sessions.delete_all(user_id)
        await self.audit.record("logout_all", user_id=user_id, event_data={"sessions": deleted})
        logger.info(f"User {user_id} logged out from all devices")
        return deleted

    async def list_sessions(
        self, user_id: str, current_session_id: str | None = None
    ) -> list[dict[str, Any]]:
        sessions = await self.sessions.list(user_id)
        for session in sessions:
            session["current"] = session["sessionId"] == current_session_id
        return sessions

    # Passwords

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """
        Change the password and end every session of the user.

        Raises:
            InvalidCredentialsError: Current password is wrong
            WeakPasswordError: New password fails policy, is breached or unchanged
        """
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise InvalidCredentialsError()

        if not await self.password_service.verify(current_password, user.password_hash):
            await self.audit.record(
                "password_change_failed",
                user_id=user_id,
                event_data={"reason": "invalid_current_password"},
                success=False,
            )
            raise InvalidCredentialsError()

        await self._check_new_password(user, new_password)
        await self._replace_password(user, new_password, RevocationReason.PASSWORD_CHANGED)

        await self.audit.record("password_changed", user_id=user_id)
        logger.info(f"Password changed for user {user_id}")

    async def request_password_reset(self, email: str) -> str | None:
        """
        Create a single-use reset token.

        Returns:
            The token for out-of-band delivery, or None when no usable
            account matches. Callers must not reveal which.
        """
        user = await self.users.find_by_email(email)
        if user is None or not user.is_usable():
            logger.info("Password reset requested for unknown or unusable account")
            return None

        token = self.password_service.generate_token()
        await self.store.set(self._reset_key(token), user.id, self.settings.password_reset_ttl)

        await self.audit.record("password_reset_requested", user_id=user.id)
        logger.info(f"Password reset requested for user {user.id}")
        return token

    async def reset_password(self, reset_token: str, new_password: str) -> None:
        """
        Set a new password using a reset token.

        Raises:
            InvalidCredentialsError: Unknown, expired or already used token
            AccountUnusableError: Account became unusable since the request
            WeakPasswordError: New password fails policy or is breached
        """
        key = self._reset_key(reset_token)
        user_id = await self.store.get(key) if reset_token else None
        if user_id is None:
            await self.audit.record(
                "password_reset_failed",
                event_data={"reason": "invalid_or_expired_token"},
                success=False,
            )
            raise InvalidCredentialsError("Invalid or expired reset token")

        user = await self.users.find_by_id(user_id)
        if user is None:
            await self.store.delete(key)
            raise InvalidCredentialsError("Invalid or expired reset token")
        self._require_usable(user)

        await self._check_new_password(user, new_password, allow_current=True)

        if await self.store.delete(key) != 1:
            raise InvalidCredentialsError("Invalid or expired reset token")

        await self._replace_password(user, new_password, RevocationReason.PASSWORD_RESET)
        await self.audit.record("password_reset_success", user_id=user.id)
        logger.info(f"Password reset for user {user.id}")

    # Access tokens

    async def authenticate_access_token(self, access_token: str) -> AuthenticatedPrincipal:
        """
        Resolve a bearer access token to a principal.

        The token alone is not enough: its session must still exist, and
        each successful call slides the session's expiry forward.

        Raises:
            InvalidCredentialsError: Bad signature, expired or not an access token
            SessionExpiredError: The session was revoked or has timed out
            AccountUnusableError: The account is no longer usable
        """
        try:
            claims = self.tokens.decode_access_claims(access_token)
        except InvalidTokenError as e:
            raise InvalidCredentialsError() from e

        if await self.sessions.get(claims.sub, claims.session_id) is None:
            raise SessionExpiredError()

        user = await self.users.find_by_id(claims.sub)
        if user is None:
            raise InvalidCredentialsError()
        self._require_usable(user)

        if not await self.sessions.touch(claims.sub, claims.session_id, self.settings.session_ttl):
            raise SessionExpiredError()

        return AuthenticatedPrincipal(
            user_id=user.id,
            email=user.email,
            organization_id=user.organization_id,
            session_id=claims.session_id,
            mfa_verified=claims.mfa_verified,
            roles=list(user.roles),
            permissions=set(user.permissions),
        )

    # Helpers

    async def _start_session(
        self,
        user: UserAccount,
        mfa_verified: bool,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthTokens:
        session_id = str(uuid4())
        family = new_family()

        tokens = await self.tokens.issue(
            user,
            session_id,
            family=family,
            mfa_verified=mfa_verified,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.sessions.create(
            user.id,
            session_id,
            {
                "ipAddress": ip_address,
                "userAgent": user_agent,
                "mfaVerified": mfa_verified,
                "family": family,
            },
            self.settings.session_ttl,
        )
        await self.users.record_login(user.id, ip_address)

        await self.audit.record(
            "login_success",
            user_id=user.id,
            event_data={"session_id": session_id, "mfa_verified": mfa_verified},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"User {user.id} logged in from {ip_address}")
        return tokens

    async def _move_session(
        self,
        user_id: str,
        old_session_id: str,
        new_session_id: str,
        family: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> None:
        previous = await self.sessions.get(user_id, old_session_id) or {}
        data = {key: value for key, value in previous.items() if key != "lastActivity"}
        data["family"] = family
        if ip_address:
            data["ipAddress"] = ip_address
        if user_agent:
            data["userAgent"] = user_agent

        await self.sessions.create(user_id, new_session_id, data, self.settings.session_ttl)
        await self.sessions.delete(user_id, old_session_id)

    async def _end_family_sessions(self, family: str, user_id: str | None) -> None:
        for record in await self.tokens.family_records(family):
            await self.sessions.delete(record.user_id, record.session_id)
        logger.warning(f"Ended sessions of revoked family {family} for user {user_id}")

    async def _check_new_password(
        self, user: UserAccount, new_password: str, allow_current: bool = False
    ) -> None:
        user_inputs = [part for part in (user.email, user.first_name, user.last_name) if part]
        result = self.password_service.validate_strength(new_password, user_inputs)
        if not result.is_valid:
            raise WeakPasswordError(result.errors, result.suggestions)

        if not allow_current and await self.password_service.verify(
            new_password, user.password_hash
        ):
            raise WeakPasswordError([REUSED_PASSWORD_MESSAGE])

        if await self.password_service.check_breach(new_password):
            raise WeakPasswordError([BREACHED_PASSWORD_MESSAGE])

    async def _replace_password(
        self, user: UserAccount, new_password: str, reason: RevocationReason
    ) -> None:
        password_hash = await self.password_service.hash(new_password)
        await self.users.update_password_hash(user.id, password_hash)
        await self.tokens.revoke_all_for_user(user.id, reason)
        await self.sessions.delete_all(user.id)

    async def _upgrade_hash_if_needed(self, user: UserAccount, password: str) -> None:
        if not self.password_service.needs_rehash(user.password_hash):
            return
        await self.users.update_password_hash(user.id, await self.password_service.hash(password))
        logger.info(f"Upgraded password hash for user {user.id}")

    async def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = await self.password_service.hash(secrets.token_urlsafe(16))
        return self._dummy_hash

    @staticmethod
    def _require_usable(user: UserAccount) -> None:
        if not user.is_usable():
            logger.warning(f"Rejected unusable account {user.id} ({user.unusable_reason()})")
            raise AccountUnusableError(user.unusable_reason())

    @staticmethod
    def _reset_key(token: str) -> str:
        return f"password_reset:{token}"
