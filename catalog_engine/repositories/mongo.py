"""
MongoDB Query Adapter

Implements the QueryAdapter interface on a Motor collection. Prefix and
substring searches use MongoDB's native regular expressions.
"""

import logging
import re
from typing import Any

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..core.types import EntityT, utcnow
from .base import QueryAdapter

logger = logging.getLogger(__name__)


class MongoAdapter(QueryAdapter[EntityT]):
    """
    MongoDB implementation of the QueryAdapter interface.

    Records are stored with an ObjectId ``_id``; references to other
    entities (``owner_id``, ``category_id``, ``role_id``) are stored as the
    string form of the referenced id.

    Example:
        categories = MongoAdapter(db["categories"], Category)
        await categories.find_prefix("name", "home")
    """

    def __init__(self, collection: Any, entity_class: type[EntityT]):
        """
        Initialize the MongoDB adapter.

        Args:
            collection: AsyncIOMotorCollection for the entity
            entity_class: Entity subclass stored in the collection
        """
        super().__init__(entity_class)
        self._collection = collection

    def is_valid_id(self, value: Any) -> bool:
        return isinstance(value, str) and ObjectId.is_valid(value)

    def is_duplicate_key(self, error: BaseException | None) -> bool:
        return isinstance(error, DuplicateKeyError)

    def _to_entity(self, doc: dict[str, Any] | None) -> EntityT | None:
        if doc is None:
            return None
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return self._entity_class.from_dict(data)

    async def _find(self, query: dict[str, Any], skip: int = 0, limit: int = 0) -> list[EntityT]:
        cursor = self._collection.find(query, skip=max(skip, 0), limit=max(limit, 0))
        docs = await cursor.to_list(length=None)
        return [self._to_entity(doc) for doc in docs]

    async def find_by_id(self, entity_id: str) -> EntityT | None:
        if not self.is_valid_id(entity_id):
            return None
        doc = await self._collection.find_one({"_id": ObjectId(entity_id)})
        return self._to_entity(doc)

    async def find_exact(
        self, fields: dict[str, Any], include_inactive: bool = False
    ) -> list[EntityT]:
        if include_inactive:
            return await self._find(dict(fields))
        return await self._find({**fields, **self._active_filter()})

    async def find_prefix(self, field: str, value: str) -> list[EntityT]:
        key = self.search_key(field)
        query = {key: {"$regex": "^" + re.escape(value.lower())}, **self._active_filter()}
        return await self._find(query)

    async def find_contains(self, fields: list[str], value: str) -> list[EntityT]:
        pattern = {"$regex": re.escape(value), "$options": "i"}
        query = {"$or": [{f: pattern} for f in fields], **self._active_filter()}
        return await self._find(query)

    async def exists(self, fields: dict[str, Any], exclude_id: str | None = None) -> bool:
        query = {**fields, **self._active_filter()}
        if exclude_id is not None and self.is_valid_id(exclude_id):
            query["_id"] = {"$ne": ObjectId(exclude_id)}
        doc = await self._collection.find_one(query, projection={"_id": 1})
        return doc is not None

    async def list_active(
        self,
        filters: dict[str, Any] | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[EntityT]:
        return await self._find({**(filters or {}), **self._active_filter()}, skip, limit)

    async def count_active(self, filters: dict[str, Any] | None = None) -> int:
        return await self._collection.count_documents({**(filters or {}), **self._active_filter()})

    async def create(self, entity: EntityT) -> EntityT:
        entity.created_at = entity.updated_at = utcnow()
        result = await self._collection.insert_one(entity.to_dict())
        entity.id = str(result.inserted_id)

        logger.debug(f"Added {self._entity_class.__name__} with id={entity.id}")
        return entity

    async def update_fields(self, entity_id: str, fields: dict[str, Any]) -> EntityT | None:
        if not self.is_valid_id(entity_id):
            return None
        doc = await self._collection.find_one_and_update(
            {"_id": ObjectId(entity_id)},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return self._to_entity(doc)

    async def delete(self, entity_id: str) -> bool:
        if not self.is_valid_id(entity_id):
            return False
        result = await self._collection.delete_one({"_id": ObjectId(entity_id)})
        return result.deleted_count > 0

    async def ensure_indexes(self, unique_fields: tuple[str, ...] = ()) -> list[str]:
        """
        Create the indexes the catalog queries rely on.

        Every search key gets an ascending index. Fields in ``unique_fields``
        get a unique index restricted to active records, so soft-deleted
        rows never block a name from being reused.

        Returns:
            Names of the created indexes
        """
        names = []
        for key in sorted(set(self._entity_class.SEARCH_KEYS.values()) | set(unique_fields)):
            options: dict[str, Any] = {}
            if key in unique_fields:
                options["unique"] = True
                if self.has_state:
                    options["partialFilterExpression"] = {"state": True}
            names.append(await self._collection.create_index([(key, ASCENDING)], **options))
        logger.info(
            f"Ensured indexes for {self._entity_class.ENTITY_LABEL}: {', '.join(names) or 'none'}"
        )
        return names
