"""
Database models for authentication.

This module defines SQLAlchemy models for users, roles, permissions, the
refresh token ledger, MFA backup codes and the security audit log.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import INET
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import String as SQLString
from sqlalchemy.types import TypeDecorator

from feralis_auth.domain.entities import AccountStatus


def utc_now() -> datetime:
    """Naive UTC timestamp, the convention for every column here."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid4())


class IPAddress(TypeDecorator[str]):
    """Database-agnostic IP address field."""

    impl = SQLString
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(INET())
        else:
            return dialect.type_descriptor(SQLString(45))  # IPv6 max length


Base = declarative_base()


# Association tables for many-to-many relationships
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("granted_at", DateTime, default=utc_now),
    Index("idx_user_roles", "user_id"),
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "permission_id",
        String(36),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Index("idx_role_perms", "role_id"),
)


class User(Base):  # type: ignore[valid-type, misc]
    """Platform user account, scoped to an organization."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    organization_id = Column(String(36), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=AccountStatus.PENDING.value)

    # Profile information
    first_name = Column(String(100))
    last_name = Column(String(100))

    # MFA settings
    mfa_enabled = Column(Boolean, default=False, nullable=False)
    mfa_secret = Column(String(255))

    # Security bookkeeping
    password_changed_at = Column(DateTime)
    last_login_at = Column(DateTime)
    last_login_ip = Column(IPAddress)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    roles = relationship("Role", secondary=user_roles, back_populates="users", lazy="selectin")
    mfa_backup_codes = relationship(
        "MFABackupCode", back_populates="user", cascade="all, delete-orphan"
    )
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )

    def get_permissions(self) -> list[str]:
        """Get all permission codes granted through the user's roles."""
        permissions = set()
        for role in self.roles:
            for permission in role.permissions:
                permissions.add(permission.to_string())
        return sorted(permissions)


class Role(Base):  # type: ignore[valid-type, misc]
    """Role model for RBAC."""

    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=_new_id)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    is_system = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utc_now)

    users = relationship("User", secondary=user_roles, back_populates="roles")
    permissions = relationship(
        "Permission", secondary=role_permissions, back_populates="roles", lazy="selectin"
    )


class Permission(Base):  # type: ignore[valid-type, misc]
    """Permission model for fine-grained access control."""

    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True, default=_new_id)
    resource = Column(String(100), nullable=False)
    action = Column(String(50), nullable=False)
    description = Column(Text)

    created_at = Column(DateTime, default=utc_now)

    roles = relationship("Role", secondary=role_permissions, back_populates="permissions")

    __table_args__ = (
        UniqueConstraint("resource", "action", name="uq_resource_action"),
        Index("idx_resource_action", "resource", "action"),
    )

    def to_string(self) -> str:
        """Convert permission to string format."""
        return f"{self.resource}:{self.action}"


class RefreshToken(Base):  # type: ignore[valid-type, misc]
    """
    One issued refresh token.

    ``token_hash`` is the SHA-256 of the raw token; the raw value is never
    stored.
    """

    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    family = Column(String(64), nullable=False, index=True)
    session_id = Column(String(36), nullable=False)
    mfa_verified = Column(Boolean, default=False, nullable=False)

    issued_at = Column(DateTime, default=utc_now, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    # Status
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime)
    revoked_reason = Column(String(50))

    # Device info
    ip_address = Column(IPAddress)
    user_agent = Column(Text)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_user", "user_id", "is_revoked"),
        Index("idx_refresh_family", "family", "is_revoked"),
        Index("idx_refresh_expiry", "expires_at"),
    )


class MFABackupCode(Base):  # type: ignore[valid-type, misc]
    """MFA backup codes for account recovery."""

    __tablename__ = "mfa_backup_codes"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    code_hash = Column(String(64), nullable=False, index=True)
    used_at = Column(DateTime)
    created_at = Column(DateTime, default=utc_now)

    user = relationship("User", back_populates="mfa_backup_codes")

    __table_args__ = (Index("idx_mfa_user", "user_id"),)


class AuthAuditLog(Base):  # type: ignore[valid-type, misc]
    """Audit log for security events."""

    __tablename__ = "auth_audit_log"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    event_data = Column(JSON)
    ip_address = Column(IPAddress)
    user_agent = Column(Text)
    success = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utc_now, index=True)
