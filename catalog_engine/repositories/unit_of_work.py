"""
Unit of Work Pattern

Gives services one place to reach the adapter of every collection. The
UnitOfWork does not know which engine it talks to: it receives an adapter
factory from the ConnectionManager and caches what the factory returns.
"""

import logging
from typing import Callable

from ..constants import (
    CATEGORIES_COLLECTION,
    PRODUCTS_COLLECTION,
    ROLES_COLLECTION,
    USERS_COLLECTION,
)
from ..core.types import Category, Entity, Product, Role, User
from .base import QueryAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str, type[Entity]], QueryAdapter]

ENTITY_REGISTRY: dict[str, type[Entity]] = {
    USERS_COLLECTION: User,
    ROLES_COLLECTION: Role,
    CATEGORIES_COLLECTION: Category,
    PRODUCTS_COLLECTION: Product,
}


class UnitOfWork:
    """
    Unit of Work for managing adapter access.

    Adapters are created lazily and cached until ``dispose`` is called.

    Usage:
        uow = UnitOfWork(connection.adapter_factory)
        category = await uow.categories.find_by_id(category_id)
        products = await uow.products.list_active({"category_id": category.id})
    """

    def __init__(self, adapter_factory: AdapterFactory):
        """
        Initialize the Unit of Work.

        Args:
            adapter_factory: Callable building a QueryAdapter for a
                collection name and entity class
        """
        self._adapter_factory = adapter_factory
        self._adapters: dict[str, QueryAdapter] = {}

    def adapter(self, name: str) -> QueryAdapter:
        """
        Get or create the adapter for a collection.

        Raises:
            KeyError: If the collection is not part of the catalog
        """
        if name in self._adapters:
            return self._adapters[name]

        entity_class = ENTITY_REGISTRY[name]
        adapter = self._adapter_factory(name, entity_class)
        self._adapters[name] = adapter

        logger.debug(f"Created adapter for '{name}' with entity {entity_class.__name__}")
        return adapter

    @property
    def users(self) -> QueryAdapter[User]:
        return self.adapter(USERS_COLLECTION)

    @property
    def roles(self) -> QueryAdapter[Role]:
        return self.adapter(ROLES_COLLECTION)

    @property
    def categories(self) -> QueryAdapter[Category]:
        return self.adapter(CATEGORIES_COLLECTION)

    @property
    def products(self) -> QueryAdapter[Product]:
        return self.adapter(PRODUCTS_COLLECTION)

    def dispose(self) -> None:
        """Clear cached adapters."""
        self._adapters.clear()
        logger.debug("UnitOfWork disposed")
