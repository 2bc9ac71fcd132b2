"""
In-memory adapter.

Keeps records in a dictionary shared through an ``InMemoryStore``. Useful
for development and for unit tests that don't need a database.
"""

import copy
import uuid
from typing import Any

from ..core.types import EntityT, utcnow
from .base import QueryAdapter


class InMemoryStore:
    """Holds one dictionary of records per collection."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def clear(self) -> None:
        """Drop every collection (useful for test setup)."""
        self._collections.clear()


class InMemoryAdapter(QueryAdapter[EntityT]):
    """
    Query adapter over an InMemoryStore collection.

    Ids are uuid4 hex strings.
    """

    def __init__(self, store: InMemoryStore, collection_name: str, entity_class: type[EntityT]):
        super().__init__(entity_class)
        self._records = store.collection(collection_name)

    def is_valid_id(self, value: Any) -> bool:
        if not isinstance(value, str) or len(value) != 32:
            return False
        try:
            uuid.UUID(hex=value)
        except ValueError:
            return False
        return True

    def _load(self, entity_id: str, data: dict[str, Any]) -> EntityT:
        return self._to_entity({**copy.deepcopy(data), "id": entity_id})

    def _active(self, include_inactive: bool = False):
        for entity_id, data in self._records.items():
            if include_inactive or not self.has_state or data.get("state") is True:
                yield entity_id, data

    @staticmethod
    def _matches(data: dict[str, Any], fields: dict[str, Any]) -> bool:
        return all(data.get(key) == value for key, value in fields.items())

    async def find_by_id(self, entity_id: str) -> EntityT | None:
        data = self._records.get(entity_id) if isinstance(entity_id, str) else None
        if data is None:
            return None
        return self._load(entity_id, data)

    async def find_exact(
        self, fields: dict[str, Any], include_inactive: bool = False
    ) -> list[EntityT]:
        return [
            self._load(entity_id, data)
            for entity_id, data in self._active(include_inactive)
            if self._matches(data, fields)
        ]

    async def find_prefix(self, field: str, value: str) -> list[EntityT]:
        key = self.search_key(field)
        prefix = value.lower()
        return [
            self._load(entity_id, data)
            for entity_id, data in self._active()
            if str(data.get(key, "")).startswith(prefix)
        ]

    async def find_contains(self, fields: list[str], value: str) -> list[EntityT]:
        needle = value.lower()
        return [
            self._load(entity_id, data)
            for entity_id, data in self._active()
            if any(needle in str(data.get(f) or "").lower() for f in fields)
        ]

    async def exists(self, fields: dict[str, Any], exclude_id: str | None = None) -> bool:
        return any(
            entity_id != exclude_id and self._matches(data, fields)
            for entity_id, data in self._active()
        )

    async def list_active(
        self,
        filters: dict[str, Any] | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[EntityT]:
        matches = [
            self._load(entity_id, data)
            for entity_id, data in self._active()
            if self._matches(data, filters or {})
        ]
        return matches[skip : skip + limit]

    async def count_active(self, filters: dict[str, Any] | None = None) -> int:
        return sum(1 for _, data in self._active() if self._matches(data, filters or {}))

    async def create(self, entity: EntityT) -> EntityT:
        entity.id = uuid.uuid4().hex
        entity.created_at = entity.updated_at = utcnow()
        self._records[entity.id] = copy.deepcopy(entity.to_dict())
        return entity

    async def update_fields(self, entity_id: str, fields: dict[str, Any]) -> EntityT | None:
        data = self._records.get(entity_id)
        if data is None:
            return None
        data.update(copy.deepcopy(fields))
        data["updated_at"] = utcnow()
        return self._load(entity_id, data)

    async def delete(self, entity_id: str) -> bool:
        return self._records.pop(entity_id, None) is not None
