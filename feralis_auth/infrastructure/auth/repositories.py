"""
SQLAlchemy repositories for accounts, MFA backup codes and the refresh
token ledger.

Each call opens its own ``AsyncSession``; no state is kept between calls.
Library errors are translated to ``ServiceUnavailableError`` at this
boundary so callers never confuse an outage with a failed credential.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feralis_auth.application.interfaces import (
    IBackupCodeRepository,
    IRefreshTokenRepository,
    IUserRepository,
)
from feralis_auth.domain.entities import AccountStatus, RefreshTokenRecord, UserAccount
from feralis_auth.domain.exceptions import ServiceUnavailableError

from .models import MFABackupCode, RefreshToken, User, utc_now

logger = logging.getLogger(__name__)


class _RotationConflict(Exception):
    """Rolls back a rotation whose old record was already revoked."""


class _SQLAlchemyRepository:
    """Shared session handling for the auth repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """
        Open a session, translating database failures.

        Raises:
            ServiceUnavailableError: If the database operation fails
        """
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise ServiceUnavailableError(cause=e) from e


class SQLAlchemyUserRepository(_SQLAlchemyRepository, IUserRepository):
    """Account store backed by the ``users`` table."""

    async def find_by_id(self, user_id: str) -> UserAccount | None:
        async with self._session("find_user_by_id") as session:
            user = await session.get(User, user_id)
            return self._to_entity(user) if user else None

    async def find_by_email(self, email: str) -> UserAccount | None:
        async with self._session("find_user_by_email") as session:
            result = await session.execute(
                select(User).where(func.lower(User.email) == email.strip().lower())
            )
            user = result.scalars().first()
            return self._to_entity(user) if user else None

    async def update_password_hash(self, user_id: str, password_hash: str) -> None:
        async with self._session("update_password_hash") as session, session.begin():
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(password_hash=password_hash, password_changed_at=utc_now())
            )

    async def record_login(self, user_id: str, ip_address: str | None) -> None:
        async with self._session("record_login") as session, session.begin():
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(last_login_at=utc_now(), last_login_ip=ip_address)
            )

    async def update_mfa(self, user_id: str, enabled: bool, secret: str | None) -> None:
        async with self._session("update_mfa") as session, session.begin():
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(mfa_enabled=enabled, mfa_secret=secret)
            )

    @staticmethod
    def _to_entity(user: User) -> UserAccount:
        try:
            status = AccountStatus(user.status)
        except ValueError:
            logger.warning(f"Unknown status '{user.status}' for user {user.id}")
            status = AccountStatus.INACTIVE

        return UserAccount(
            id=str(user.id),
            email=str(user.email),
            organization_id=str(user.organization_id),
            password_hash=str(user.password_hash),
            status=status,
            mfa_enabled=bool(user.mfa_enabled),
            mfa_secret=user.mfa_secret,
            first_name=user.first_name,
            last_name=user.last_name,
            roles=sorted(role.code for role in user.roles),
            permissions=user.get_permissions(),
            deleted_at=user.deleted_at,
            last_login_at=user.last_login_at,
        )


class SQLAlchemyBackupCodeRepository(_SQLAlchemyRepository, IBackupCodeRepository):
    """MFA backup codes backed by the ``mfa_backup_codes`` table."""

    async def replace_codes(self, user_id: str, code_hashes: list[str]) -> None:
        async with self._session("replace_backup_codes") as session, session.begin():
            await session.execute(delete(MFABackupCode).where(MFABackupCode.user_id == user_id))
            session.add_all(
                MFABackupCode(user_id=user_id, code_hash=code_hash) for code_hash in code_hashes
            )

    async def consume_code(self, user_id: str, code_hash: str) -> bool:
        async with self._session("consume_backup_code") as session, session.begin():
            result = await session.execute(
                update(MFABackupCode)
                .where(
                    MFABackupCode.user_id == user_id,
                    MFABackupCode.code_hash == code_hash,
                    MFABackupCode.used_at.is_(None),
                )
                .values(used_at=utc_now())
            )
            return result.rowcount == 1

    async def count_remaining(self, user_id: str) -> int:
        async with self._session("count_backup_codes") as session:
            result = await session.execute(
                select(func.count())
                .select_from(MFABackupCode)
                .where(MFABackupCode.user_id == user_id, MFABackupCode.used_at.is_(None))
            )
            return int(result.scalar_one())

    async def delete_codes(self, user_id: str) -> None:
        async with self._session("delete_backup_codes") as session, session.begin():
            await session.execute(delete(MFABackupCode).where(MFABackupCode.user_id == user_id))


class SQLAlchemyRefreshTokenRepository(_SQLAlchemyRepository, IRefreshTokenRepository):
    """Refresh token ledger backed by the ``refresh_tokens`` table."""

    async def create(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        async with self._session("create_refresh_token") as session, session.begin():
            session.add(self._to_model(record))
        return record

    async def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        async with self._session("find_refresh_token") as session:
            result = await session.execute(
                select(RefreshToken).where(RefreshToken.token_hash == token_hash)
            )
            row = result.scalars().first()
            return self._to_entity(row) if row else None

    async def find_live_by_hash(self, token_hash: str, now: datetime) -> RefreshTokenRecord | None:
        async with self._session("find_live_refresh_token") as session:
            result = await session.execute(
                select(RefreshToken).where(
                    RefreshToken.token_hash == token_hash,
                    RefreshToken.is_revoked.is_(False),
                    RefreshToken.expires_at > now,
                )
            )
            row = result.scalars().first()
            return self._to_entity(row) if row else None

    async def list_by_family(self, family: str) -> list[RefreshTokenRecord]:
        async with self._session("list_refresh_family") as session:
            result = await session.execute(
                select(RefreshToken)
                .where(RefreshToken.family == family)
                .order_by(RefreshToken.issued_at)
            )
            return [self._to_entity(row) for row in result.scalars()]

    async def rotate(
        self, old_token_hash: str, successor: RefreshTokenRecord, reason: str, now: datetime
    ) -> bool:
        try:
            async with self._session("rotate_refresh_token") as session, session.begin():
                result = await session.execute(
                    update(RefreshToken)
                    .where(
                        RefreshToken.token_hash == old_token_hash,
                        RefreshToken.is_revoked.is_(False),
                    )
                    .values(is_revoked=True, revoked_at=now, revoked_reason=reason)
                )
                if result.rowcount != 1:
                    raise _RotationConflict(old_token_hash)
                session.add(self._to_model(successor))
        except _RotationConflict:
            return False
        return True

    async def revoke_by_hash(self, token_hash: str, reason: str, now: datetime) -> int:
        return await self._revoke_where(
            "revoke_refresh_token", RefreshToken.token_hash == token_hash, reason, now
        )

    async def revoke_family(self, family: str, reason: str, now: datetime) -> int:
        return await self._revoke_where(
            "revoke_refresh_family", RefreshToken.family == family, reason, now
        )

    async def revoke_all_for_user(self, user_id: str, reason: str, now: datetime) -> int:
        return await self._revoke_where(
            "revoke_user_refresh_tokens", RefreshToken.user_id == user_id, reason, now
        )

    async def delete_expired(self, now: datetime, revoked_before: datetime) -> int:
        async with self._session("delete_expired_refresh_tokens") as session, session.begin():
            result = await session.execute(
                delete(RefreshToken).where(
                    or_(
                        RefreshToken.expires_at < now,
                        and_(
                            RefreshToken.is_revoked.is_(True),
                            RefreshToken.revoked_at < revoked_before,
                        ),
                    )
                )
            )
            return int(result.rowcount or 0)

    async def _revoke_where(
        self, operation: str, criterion: ColumnElement[bool], reason: str, now: datetime
    ) -> int:
        async with self._session(operation) as session, session.begin():
            result = await session.execute(
                update(RefreshToken)
                .where(criterion, RefreshToken.is_revoked.is_(False))
                .values(is_revoked=True, revoked_at=now, revoked_reason=reason)
            )
            return int(result.rowcount or 0)

    @staticmethod
    def _to_model(record: RefreshTokenRecord) -> RefreshToken:
        return RefreshToken(
            id=record.id,
            user_id=record.user_id,
            token_hash=record.token_hash,
            family=record.family,
            session_id=record.session_id,
            mfa_verified=record.mfa_verified,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            is_revoked=record.is_revoked,
            revoked_at=record.revoked_at,
            revoked_reason=record.revoked_reason,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
        )

    @staticmethod
    def _to_entity(row: RefreshToken) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            id=str(row.id),
            user_id=str(row.user_id),
            token_hash=str(row.token_hash),
            family=str(row.family),
            session_id=str(row.session_id),
            mfa_verified=bool(row.mfa_verified),
            issued_at=row.issued_at,
            expires_at=row.expires_at,
            is_revoked=bool(row.is_revoked),
            revoked_at=row.revoked_at,
            revoked_reason=row.revoked_reason,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
        )
