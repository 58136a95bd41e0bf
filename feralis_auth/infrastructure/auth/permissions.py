"""
Capability requirements for protected routes.

A route declares what it needs as a ``CapabilityRequirement``; the
``RequireCapabilities`` dependency checks it against the authenticated
principal's permission set.
"""

import logging
from dataclasses import dataclass, field

from fastapi import Depends, Request

from feralis_auth.domain.exceptions import PermissionDeniedError

from .middleware import get_current_principal
from .types import AuthenticatedPrincipal

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def parse_capability(capability: str) -> tuple[str, str]:
    """Split a ``resource:action`` capability code."""
    resource, sep, action = capability.partition(":")
    if not sep or not resource or not action:
        raise ValueError(f"Invalid permission format: {capability}")
    return resource, action


@dataclass(frozen=True)
class CapabilityRequirement:
    """
    Capabilities a route requires.

    Every entry of ``all_of`` must be held, and at least one entry of
    ``any_of`` when it is non-empty.
    """

    all_of: frozenset[str] = field(default_factory=frozenset)
    any_of: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        for capability in self.all_of | self.any_of:
            parse_capability(capability)

    def missing(self, principal: AuthenticatedPrincipal) -> list[str]:
        """Capabilities the principal lacks; empty when satisfied."""
        if principal.has_role(ADMIN_ROLE):
            return []

        missing = sorted(self.all_of - principal.permissions)
        if self.any_of and not (self.any_of & principal.permissions):
            missing.append(" or ".join(sorted(self.any_of)))
        return missing

    def is_satisfied_by(self, principal: AuthenticatedPrincipal) -> bool:
        return not self.missing(principal)


class RequireCapabilities:
    """
    Capability requirement dependency.

    Usage::

        @router.get("/orders", dependencies=[Depends(RequireCapabilities("orders:read"))])
    """

    def __init__(self, *all_of: str, any_of: tuple[str, ...] | list[str] = ()) -> None:
        self.requirement = CapabilityRequirement(
            all_of=frozenset(all_of), any_of=frozenset(any_of)
        )

    async def __call__(
        self,
        request: Request,
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
    ) -> AuthenticatedPrincipal:
        """
        Raises:
            PermissionDeniedError: If the principal lacks a capability
        """
        missing = self.requirement.missing(principal)
        if missing:
            logger.warning(
                f"Permission denied for user {principal.user_id} on {request.url.path}: "
                f"missing {', '.join(missing)}"
            )
            raise PermissionDeniedError(missing)
        return principal
