"""
Refresh token ledger.

Issues access/refresh token pairs, records every refresh token by hash,
rotates on use and revokes the whole family when a rotated-away token is
presented again.
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from uuid import uuid4

from feralis_auth.application.interfaces import IRefreshTokenRepository
from feralis_auth.domain.entities import RefreshTokenRecord, RevocationReason, UserAccount
from feralis_auth.domain.exceptions import InvalidTokenError, TokenReuseDetectedError
from feralis_auth.domain.value_objects import AccessTokenClaims, AuthTokens, RefreshTokenData

from ..audit import AuthAuditLogger
from ..jwt_service import JWTService
from ..models import utc_now

logger = logging.getLogger(__name__)


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest under which a refresh token is stored."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def new_family() -> str:
    return secrets.token_hex(16)


class TokenService:
    """Token issuance, validation, rotation and revocation."""

    def __init__(
        self,
        jwt_service: JWTService,
        repository: IRefreshTokenRepository,
        audit: AuthAuditLogger | None = None,
    ) -> None:
        self.jwt_service = jwt_service
        self.repository = repository
        self.audit = audit or AuthAuditLogger()

    async def issue(
        self,
        user: UserAccount,
        session_id: str,
        family: str | None = None,
        mfa_verified: bool = False,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthTokens:
        """
        Sign a token pair and record the refresh token.

        Nothing is returned unless the ledger record was committed.

        Raises:
            ServiceUnavailableError: If the record could not be persisted
        """
        tokens, record = self._build(
            user, session_id, family or new_family(), mfa_verified, ip_address, user_agent
        )
        await self.repository.create(record)
        logger.info(f"Issued tokens for user {user.id} in family {record.family}")
        return tokens

    async def validate(self, raw_token: str) -> RefreshTokenData | None:
        """
        Validate a refresh token against its signature and the ledger.

        Returns None for any invalid token. A token whose record exists
        but is no longer live burns its whole family.
        """
        try:
            return await self.validate_or_raise(raw_token)
        except (InvalidTokenError, TokenReuseDetectedError):
            return None

    async def validate_or_raise(self, raw_token: str) -> RefreshTokenData:
        """
        Same as ``validate`` but distinguishes the failure.

        Raises:
            InvalidTokenError: Bad signature, expired, wrong type or unknown
            TokenReuseDetectedError: The token was already rotated or revoked
            ServiceUnavailableError: If the ledger cannot be reached
        """
        claims = self.jwt_service.verify_refresh_token(raw_token)
        token_hash = hash_token(raw_token)
        now = utc_now()

        record = await self.repository.find_live_by_hash(token_hash, now)
        if record is not None:
            return RefreshTokenData(
                user_id=record.user_id,
                family=record.family,
                session_id=record.session_id,
                mfa_verified=record.mfa_verified,
            )

        stale = await self.repository.find_by_hash(token_hash)
        if stale is None:
            logger.warning(f"Unknown refresh token presented for user {claims.sub}")
            raise InvalidTokenError("Refresh token not recognised")
        if not stale.is_revoked:
            # Past its expiry but never revoked: not a replay
            raise InvalidTokenError("Refresh token has expired")

        await self._burn_family(stale.family, stale.user_id, stale.revoked_reason)
        raise TokenReuseDetectedError(stale.family, stale.user_id)

    async def rotate(
        self,
        old_token: str,
        family: str,
        user: UserAccount,
        mfa_verified: bool = False,
        ip_address: str | None = None,
        user_agent: str | None = None,
        session_id: str | None = None,
    ) -> AuthTokens:
        """
        Revoke the old token and issue its successor in the same family.

        The successor is bound to ``session_id``, or a fresh session id when
        none is given. Exactly one concurrent rotation of a token can win;
        the loser burns the family.

        Raises:
            TokenReuseDetectedError: If the old token was no longer live
            ServiceUnavailableError: If the ledger cannot be reached
        """
        tokens, successor = self._build(
            user, session_id or str(uuid4()), family, mfa_verified, ip_address, user_agent
        )
        rotated = await self.repository.rotate(
            hash_token(old_token), successor, RevocationReason.ROTATION.value, utc_now()
        )
        if not rotated:
            await self._burn_family(family, user.id, None)
            raise TokenReuseDetectedError(family, user.id)

        logger.info(f"Rotated refresh token for user {user.id} in family {family}")
        return tokens

    async def revoke(self, raw_token: str, reason: RevocationReason) -> bool:
        """Revoke a single token. Returns False if it was not live."""
        revoked = await self.repository.revoke_by_hash(
            hash_token(raw_token), reason.value, utc_now()
        )
        return revoked > 0

    async def revoke_family(self, family: str, reason: RevocationReason) -> int:
        count = await self.repository.revoke_family(family, reason.value, utc_now())
        logger.info(f"Revoked {count} tokens in family {family} ({reason.value})")
        return count

    async def revoke_all_for_user(self, user_id: str, reason: RevocationReason) -> int:
        count = await self.repository.revoke_all_for_user(user_id, reason.value, utc_now())
        logger.info(f"Revoked {count} tokens for user {user_id} ({reason.value})")
        return count

    async def cleanup_expired(self, retention: timedelta = timedelta(days=7)) -> int:
        """Delete expired records and records revoked longer than ``retention`` ago."""
        now = utc_now()
        count = await self.repository.delete_expired(now, now - retention)
        logger.info(f"Cleaned up {count} refresh token records")
        return count

    async def lookup(self, raw_token: str) -> RefreshTokenRecord | None:
        """Ledger record for a token regardless of its state."""
        return await self.repository.find_by_hash(hash_token(raw_token))

    async def family_records(self, family: str) -> list[RefreshTokenRecord]:
        return await self.repository.list_by_family(family)

    def decode_refresh_claims(self, raw_token: str) -> AccessTokenClaims:
        """Verify signature and expiry only; the ledger is not consulted."""
        return self.jwt_service.verify_refresh_token(raw_token)

    def decode_access_claims(self, raw_token: str) -> AccessTokenClaims:
        return self.jwt_service.verify_access_token(raw_token)

    def _build(
        self,
        user: UserAccount,
        session_id: str,
        family: str,
        mfa_verified: bool,
        ip_address: str | None,
        user_agent: str | None,
    ) -> tuple[AuthTokens, RefreshTokenRecord]:
        access_token = self.jwt_service.create_access_token(
            user_id=user.id,
            email=user.email,
            organization_id=user.organization_id,
            session_id=session_id,
            mfa_verified=mfa_verified,
        )
        refresh_token = self.jwt_service.create_refresh_token(
            user_id=user.id,
            email=user.email,
            organization_id=user.organization_id,
            session_id=session_id,
        )
        issued_at = utc_now()
        record = RefreshTokenRecord(
            user_id=user.id,
            token_hash=hash_token(refresh_token),
            family=family,
            session_id=session_id,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=self.jwt_service.refresh_token_ttl),
            mfa_verified=mfa_verified,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        tokens = AuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.jwt_service.access_token_ttl,
        )
        return tokens, record

    async def _burn_family(self, family: str, user_id: str, previous_reason: str | None) -> None:
        revoked = await self.repository.revoke_family(
            family, RevocationReason.REUSE_DETECTED.value, utc_now()
        )
        logger.critical(
            f"Refresh token reuse detected for user {user_id}, family {family}; "
            f"revoked {revoked} live tokens"
        )
        await self.audit.record(
            "token_reuse_detected",
            user_id=user_id,
            event_data={"family": family, "previous_reason": previous_reason, "revoked": revoked},
            success=False,
        )