"""
Category service.
"""

import logging
from typing import Any

from ..constants import DEFAULT_PAGE_SIZE
from ..core.normalization import apply_name, normalize_name
from ..core.types import Category, Product, Requester
from ..repositories.base import QueryAdapter
from ..repositories.unit_of_work import UnitOfWork
from .authorization import AuthorizationGate
from .lifecycle import EntityLifecycleRules, clamp_page_size, writable_payload

logger = logging.getLogger(__name__)

CATEGORY_WRITABLE_FIELDS = ("name",)


class CategoryService(EntityLifecycleRules[Category]):
    """
    Categories are created by any authenticated user, who becomes their
    owner. Only the owner can rename one; deleting also requires a
    privileged role.
    """

    def __init__(self, uow: UnitOfWork, gate: AuthorizationGate):
        super().__init__(uow.categories, gate)
        self._products: QueryAdapter[Product] = uow.products

    async def create(self, requester: Requester, name: str) -> Category:
        """
        Raises:
            ValidationRejectedError: If the name is empty
            DuplicateNameError: If an active category has the same normalized name
            PersistenceFailedError: If the storage write failed
        """
        normalized = normalize_name(name, Category.NAME_STYLE)
        await self.ensure_unique_name(name)

        with self.writing(
            "create", requester, duplicate=self.duplicate_name(normalized.display_name)
        ):
            category = await self._adapter.create(
                Category(
                    name=normalized.display_name,
                    lower_name=normalized.search_key,
                    owner_id=requester.id,
                )
            )
        logger.info(f"Created category '{category.name}' ({category.id})")
        return category

    async def update(
        self, requester: Requester, category_id: str, changes: dict[str, Any]
    ) -> Category:
        """
        Update a category owned by the requester.

        Raises:
            NotFoundError: If the category is missing or inactive
            OwnershipError: If the requester is not the owner
            DuplicateNameError: If the new name is used by another active category
            PersistenceFailedError: If the storage write failed
        """
        payload = apply_name(
            writable_payload(changes, CATEGORY_WRITABLE_FIELDS), Category.NAME_STYLE
        )
        guards = []
        if "name" in payload:
            guards.append(self._unique_name_guard(payload["name"], exclude_id=category_id))
        category = await self.load_owned(requester, category_id, *guards)

        if not payload:
            return category
        return await self.update_stored(
            requester, category_id, payload, self.duplicate_name(payload["name"])
        )

    async def list_products(
        self, category_id: str, skip: int = 0, limit: int = DEFAULT_PAGE_SIZE
    ) -> list[Product]:
        """
        Active products of an active category.

        Raises:
            NotFoundError: If the category is missing or inactive
        """
        category = await self.get(category_id)
        return await self._products.list_active(
            {"category_id": category.id}, skip=max(skip, 0), limit=clamp_page_size(limit)
        )
