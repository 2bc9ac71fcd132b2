"""
Search facade.

``search("products", "lap")`` returns the active products whose name or
description contains "lap", ignoring case. When the query is a valid id for
the configured engine it is treated as an id lookup instead. Products of a
soft-deleted category are never returned.
"""

import logging
from typing import Any

from ..constants import CATEGORIES_COLLECTION, PRODUCTS_COLLECTION, USERS_COLLECTION
from ..core.types import Entity
from ..repositories.unit_of_work import UnitOfWork
from .products import with_active_category

logger = logging.getLogger(__name__)

SEARCH_FIELDS: dict[str, list[str]] = {
    USERS_COLLECTION: ["name", "email"],
    CATEGORIES_COLLECTION: ["name"],
    PRODUCTS_COLLECTION: ["name", "description"],
}


class SearchFacade:
    def __init__(self, uow: UnitOfWork):
        self._uow = uow

    @staticmethod
    def collections() -> list[str]:
        return list(SEARCH_FIELDS)

    async def search(self, collection: str, query: Any) -> list[Entity]:
        """
        Search one collection.

        Args:
            collection: "users", "categories" or "products" (any case)
            query: Id or text to look for

        Returns:
            Matching active entities; an empty list for an unknown
            collection or a blank query
        """
        name = collection.strip().lower() if isinstance(collection, str) else ""
        fields = SEARCH_FIELDS.get(name)
        if fields is None:
            logger.debug(f"Search on unknown collection '{collection}'")
            return []
        if not isinstance(query, str) or not query.strip():
            return []

        adapter = self._uow.adapter(name)
        query = query.strip()
        if adapter.is_valid_id(query):
            entity = await adapter.find_by_id(query)
            results = [entity] if entity is not None and entity.is_active else []
        else:
            results = await adapter.find_contains(fields, query)

        if name == PRODUCTS_COLLECTION:
            results = await with_active_category(self._uow.categories, results)
        return results
