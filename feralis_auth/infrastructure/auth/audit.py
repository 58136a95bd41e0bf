"""
Security audit trail.

Audit events are written to the ``auth_audit_log`` table in their own
session and mirrored to the ``feralis_auth.audit`` logger. Recording an
event never fails the operation that triggered it.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import AuthAuditLog

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("feralis_auth.audit")


class AuthAuditLogger:
    """Write-only sink for security events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        event_type: str,
        user_id: str | None = None,
        event_data: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
    ) -> None:
        """Log audit event."""
        level = logging.INFO if success else logging.WARNING
        audit_logger.log(
            level,
            f"{event_type} user={user_id or '-'} success={success}",
            extra={"event_type": event_type, "user_id": user_id, "event_data": event_data or {}},
        )

        if self._session_factory is None:
            return

        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    AuthAuditLog(
                        user_id=user_id,
                        event_type=event_type,
                        event_data=event_data or {},
                        ip_address=ip_address,
                        user_agent=user_agent,
                        success=success,
                    )
                )
        except Exception as e:
            logger.error(f"Failed to persist audit event {event_type}: {e}")
