"""
Cloud Firestore Query Adapter

Firestore has no substring or regex operators, so prefix search is answered
with a half-open range on the lower-cased search key:

    search_key >= q AND search_key < prefix_upper_bound(q)

Contains search degrades to that same prefix range on every requested field
that has a search key; fields without one are skipped.
"""

import logging
import re
from typing import Any

from google.cloud.firestore_v1.base_query import FieldFilter

from ..core.types import EntityT, utcnow
from .base import QueryAdapter, prefix_upper_bound

logger = logging.getLogger(__name__)

# Auto-generated document ids: 20 alphanumeric characters
_DOCUMENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{20}$")


class FirestoreAdapter(QueryAdapter[EntityT]):
    """
    Firestore implementation of the QueryAdapter interface.

    Example:
        client = firestore.AsyncClient(project="catalog")
        products = FirestoreAdapter(client, "products", Product)
        await products.find_prefix("name", "lap")
    """

    def __init__(self, client: Any, collection_name: str, entity_class: type[EntityT]):
        """
        Initialize the Firestore adapter.

        Args:
            client: google.cloud.firestore.AsyncClient
            collection_name: Name of the top-level collection
            entity_class: Entity subclass stored in the collection
        """
        super().__init__(entity_class)
        self._collection = client.collection(collection_name)

    def is_valid_id(self, value: Any) -> bool:
        return isinstance(value, str) and bool(_DOCUMENT_ID_PATTERN.match(value))

    def _from_snapshot(self, snapshot: Any) -> EntityT:
        return self._to_entity({**snapshot.to_dict(), "id": snapshot.id})

    def _active_query(
        self, filters: dict[str, Any] | None = None, include_inactive: bool = False
    ) -> Any:
        query = self._collection
        state = {} if include_inactive else self._active_filter()
        for key, value in {**(filters or {}), **state}.items():
            query = query.where(filter=FieldFilter(key, "==", value))
        return query

    async def _stream(self, query: Any) -> list[EntityT]:
        return [self._from_snapshot(snapshot) async for snapshot in query.stream()]

    async def _prefix_range(self, key: str, prefix: str) -> list[EntityT]:
        query = self._active_query().where(filter=FieldFilter(key, ">=", prefix))
        upper = prefix_upper_bound(prefix)
        if upper is not None:
            query = query.where(filter=FieldFilter(key, "<", upper))
            return await self._stream(query)

        # No representable upper bound: scan from the prefix and keep exact matches
        entities = await self._stream(query)
        return [e for e in entities if str(getattr(e, key, "")).startswith(prefix)]

    async def find_by_id(self, entity_id: str) -> EntityT | None:
        if not self.is_valid_id(entity_id):
            return None
        snapshot = await self._collection.document(entity_id).get()
        if not snapshot.exists:
            return None
        return self._from_snapshot(snapshot)

    async def find_exact(
        self, fields: dict[str, Any], include_inactive: bool = False
    ) -> list[EntityT]:
        return await self._stream(self._active_query(fields, include_inactive))

    async def find_prefix(self, field: str, value: str) -> list[EntityT]:
        return await self._prefix_range(self.search_key(field), value.lower())

    async def find_contains(self, fields: list[str], value: str) -> list[EntityT]:
        search_keys = self._entity_class.SEARCH_KEYS
        keys = [search_keys[f] for f in fields if f in search_keys]
        skipped = [f for f in fields if f not in search_keys]
        if skipped:
            logger.debug(
                f"Firestore cannot search inside {', '.join(skipped)} "
                f"on {self._entity_class.ENTITY_LABEL}; skipped"
            )

        seen: dict[str, EntityT] = {}
        for key in keys:
            for entity in await self._prefix_range(key, value.lower()):
                seen.setdefault(entity.id, entity)
        return list(seen.values())

    async def exists(self, fields: dict[str, Any], exclude_id: str | None = None) -> bool:
        # Two results are enough to know whether a match other than exclude_id exists
        matches = await self._stream(self._active_query(fields).limit(2))
        return any(entity.id != exclude_id for entity in matches)

    async def list_active(
        self,
        filters: dict[str, Any] | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[EntityT]:
        query = self._active_query(filters)
        if skip > 0:
            query = query.offset(skip)
        return await self._stream(query.limit(limit))

    async def count_active(self, filters: dict[str, Any] | None = None) -> int:
        count = 0
        async for _ in self._active_query(filters).stream():
            count += 1
        return count

    async def create(self, entity: EntityT) -> EntityT:
        entity.created_at = entity.updated_at = utcnow()
        doc_ref = self._collection.document()
        await doc_ref.set(entity.to_dict())
        entity.id = doc_ref.id

        logger.debug(f"Added {self._entity_class.__name__} with id={entity.id}")
        return entity

    async def update_fields(self, entity_id: str, fields: dict[str, Any]) -> EntityT | None:
        if not self.is_valid_id(entity_id):
            return None
        doc_ref = self._collection.document(entity_id)
        snapshot = await doc_ref.get()
        if not snapshot.exists:
            return None
        await doc_ref.update({**fields, "updated_at": utcnow()})
        return self._from_snapshot(await doc_ref.get())

    async def delete(self, entity_id: str) -> bool:
        if not self.is_valid_id(entity_id):
            return False
        doc_ref = self._collection.document(entity_id)
        snapshot = await doc_ref.get()
        if not snapshot.exists:
            return False
        await doc_ref.delete()
        return True
