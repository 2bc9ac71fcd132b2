"""
Role service.

Roles are a small fixed set (``ADMIN_ROLE``, ``WORKER_ROLE``, ``USER_ROLE``)
seeded once by ``catalog-engine init``. Names are stored upper-cased.
"""

import logging
from typing import Iterable, Optional

from ..constants import DEFAULT_ROLES
from ..core.normalization import NameStyle, normalize_name
from ..core.types import Role
from ..exceptions import ValidationRejectedError
from ..observability import timed_operation
from ..repositories.base import QueryAdapter

logger = logging.getLogger(__name__)


class RoleService:
    def __init__(self, roles: QueryAdapter[Role]):
        self._roles = roles

    async def get_by_name(self, name: str) -> Optional[Role]:
        display = normalize_name(name, NameStyle.UPPER).display_name
        matches = await self._roles.find_exact({"name": display})
        return matches[0] if matches else None

    async def require(self, name: str) -> Role:
        """
        Raises:
            ValidationRejectedError: If no role has this name
        """
        role = await self.get_by_name(name)
        if role is None:
            raise ValidationRejectedError(f"The role {name} does not exist", field="role")
        return role

    async def list_roles(self) -> list[Role]:
        return await self._roles.list_active(limit=len(DEFAULT_ROLES) * 10)

    @timed_operation("roles.seed")
    async def seed_defaults(self, names: Iterable[str] = DEFAULT_ROLES) -> list[Role]:
        """
        Create the roles that do not exist yet.

        Returns:
            The roles that were created (empty when all already existed)
        """
        created = []
        for name in names:
            if await self.get_by_name(name) is not None:
                continue
            display = normalize_name(name, NameStyle.UPPER).display_name
            created.append(await self._roles.create(Role(name=display)))
            logger.info(f"Seeded role {display}")
        return created
