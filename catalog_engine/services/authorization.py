"""
Authorization gate.

Two pure checks (ownership and role membership) return a Decision; the gate
only adds the I/O needed to load the requester's current role. The role is
read from storage on every call, so a role change takes effect on the very
next request.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..constants import PRIVILEGED_ROLES
from ..core.types import Requester, Role, User
from ..exceptions import DenyReason, OwnershipError, RolePermissionError
from ..repositories.base import QueryAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check."""

    allowed: bool
    reason: Optional[DenyReason] = None
    detail: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason, detail: str) -> "Decision":
        return cls(allowed=False, reason=reason, detail=detail)

    def to_error(self) -> OwnershipError | RolePermissionError:
        if self.reason is DenyReason.OWNERSHIP:
            return OwnershipError(self.detail)
        return RolePermissionError(self.detail)

    def raise_for_denial(self) -> None:
        """
        Raises:
            OwnershipError: If denied for ownership
            RolePermissionError: If denied for role
        """
        if not self.allowed:
            raise self.to_error()


def check_ownership(requester: Requester, owner_id: Optional[str]) -> Decision:
    """Allow only when the requester owns the entity."""
    if owner_id is not None and requester.id == owner_id:
        return Decision.allow()
    return Decision.deny(DenyReason.OWNERSHIP, "Only the owner can modify this resource")


def check_role(role: Optional[Role], allowed: Iterable[str] = PRIVILEGED_ROLES) -> Decision:
    """Allow only when the already loaded role is in ``allowed``."""
    allowed = frozenset(allowed)
    if role is not None and role.name in allowed:
        return Decision.allow()
    return Decision.deny(
        DenyReason.ROLE,
        f"The role {role.name if role else 'none'} is not allowed, "
        f"expected one of {', '.join(sorted(allowed))}",
    )


class AuthorizationGate:
    """
    Loads roles for authorization checks.

    Example:
        gate = AuthorizationGate(uow.users, uow.roles)
        role = await gate.load_role(requester)
        check_role(role, {ADMIN_ROLE}).raise_for_denial()
    """

    def __init__(self, users: QueryAdapter[User], roles: QueryAdapter[Role]):
        self._users = users
        self._roles = roles

    async def load_role(self, requester: Requester) -> Optional[Role]:
        """
        Load the requester's current role.

        The user record is read first so that the stored ``role_id`` wins
        over the one the requester was built with. Returns None for an
        unknown or inactive user, or a dangling role reference.
        """
        user = await self._users.find_by_id(requester.id)
        if user is None or not user.is_active:
            logger.debug(f"No active user {requester.id} to load a role for")
            return None
        if not user.role_id:
            return None
        return await self._roles.find_by_id(user.role_id)

    async def authorize_role(
        self, requester: Requester, allowed: Iterable[str] = PRIVILEGED_ROLES
    ) -> Role:
        """
        Load the requester's role and require it to be in ``allowed``.

        Raises:
            RolePermissionError: If the role is missing or not allowed
        """
        role = await self.load_role(requester)
        check_role(role, allowed).raise_for_denial()
        return role
