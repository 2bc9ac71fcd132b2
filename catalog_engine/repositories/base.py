"""
Abstract Query Adapter

Defines the storage interface shared by every engine. Each engine has a
different query vocabulary (regex, ordered ranges, LIKE), but all of them
must answer these operations with identical results so that the services
above never branch on the backend.
"""

import sys
from abc import ABC, abstractmethod
from typing import Any, Generic

from ..core.types import EntityT
from ..exceptions import ValidationRejectedError

# First and last code points of the UTF-16 surrogate block, which cannot be
# stored as text by any backend.
_SURROGATE_FIRST = 0xD800
_SURROGATE_LAST = 0xDFFF


def _successor_char(char: str) -> str | None:
    code = ord(char) + 1
    if _SURROGATE_FIRST <= code <= _SURROGATE_LAST:
        code = _SURROGATE_LAST + 1
    if code > sys.maxunicode:
        return None
    return chr(code)


def prefix_upper_bound(prefix: str) -> str | None:
    """
    Smallest string greater than every string starting with ``prefix``.

    ``prefix[:-1] + chr(ord(prefix[-1]) + 1)``, so that
    ``prefix <= key < upper`` holds exactly for the keys that start with
    ``prefix`` under code point ordering.

    Trailing characters that cannot be incremented (U+10FFFF) are dropped and
    the previous character is incremented instead. Returns None when no upper
    bound exists (empty prefix, or a prefix made only of U+10FFFF); callers
    then scan ``key >= prefix`` and filter with ``startswith``.
    """
    stem = prefix
    while stem:
        successor = _successor_char(stem[-1])
        if successor is not None:
            return stem[:-1] + successor
        stem = stem[:-1]
    return None


class QueryAdapter(ABC, Generic[EntityT]):
    """
    Storage interface for one entity collection.

    Reads through ``find_exact``, ``find_prefix``, ``find_contains``,
    ``exists`` and the listing methods only ever see active records
    (``state=True``); ``find_by_id`` returns a record whatever its state so
    privileged internal lookups can still inspect soft-deleted rows.

    Driver errors are never translated here: they propagate untouched to the
    caller, which classifies them. ``is_duplicate_key`` tells a violated
    unique index apart from other write failures.
    """

    def __init__(self, entity_class: type[EntityT]):
        self._entity_class = entity_class

    @property
    def entity_class(self) -> type[EntityT]:
        return self._entity_class

    @property
    def has_state(self) -> bool:
        """Whether records of this collection carry a ``state`` flag."""
        return "state" in self._entity_class.field_names()

    def search_key(self, field: str) -> str:
        """
        Map a searchable field to the lower-cased field that backs it.

        Raises:
            ValidationRejectedError: If the field is not searchable
        """
        key = self._entity_class.SEARCH_KEYS.get(field)
        if key is None:
            raise ValidationRejectedError(
                f"Field '{field}' is not searchable on {self._entity_class.ENTITY_LABEL}",
                field=field,
            )
        return key

    def _active_filter(self) -> dict[str, Any]:
        return {"state": True} if self.has_state else {}

    def _to_entity(self, data: dict[str, Any] | None) -> EntityT | None:
        if data is None:
            return None
        return self._entity_class.from_dict(data)

    @abstractmethod
    def is_valid_id(self, value: Any) -> bool:
        """Whether ``value`` is a syntactically valid id for this engine."""

    def is_duplicate_key(self, error: BaseException | None) -> bool:
        """Whether ``error`` is this engine's unique-index violation."""
        return False

    @abstractmethod
    async def find_by_id(self, entity_id: str) -> EntityT | None:
        """
        Get a record by id regardless of its state.

        Returns:
            Entity if found, None if missing or if the id is malformed
        """

    @abstractmethod
    async def find_exact(
        self, fields: dict[str, Any], include_inactive: bool = False
    ) -> list[EntityT]:
        """
        Records whose fields all equal the given values.

        Only active records are returned unless ``include_inactive`` is set,
        which authentication uses to tell a blocked account from a missing one.
        """

    @abstractmethod
    async def find_prefix(self, field: str, value: str) -> list[EntityT]:
        """
        Active records whose ``field`` starts with ``value``, case-insensitively.

        Matching is done on the field's lower-cased search key.
        """

    @abstractmethod
    async def find_contains(self, fields: list[str], value: str) -> list[EntityT]:
        """Active records where any of ``fields`` contains ``value``, case-insensitively."""

    @abstractmethod
    async def exists(self, fields: dict[str, Any], exclude_id: str | None = None) -> bool:
        """
        Check for an active record matching ``fields``.

        Args:
            fields: Equality filter
            exclude_id: Id to ignore (the record being updated)
        """

    @abstractmethod
    async def list_active(
        self,
        filters: dict[str, Any] | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[EntityT]:
        """Active records matching an optional equality filter."""

    @abstractmethod
    async def count_active(self, filters: dict[str, Any] | None = None) -> int:
        """Count active records matching an optional equality filter."""

    @abstractmethod
    async def create(self, entity: EntityT) -> EntityT:
        """
        Persist a new record.

        Assigns ``id``, ``created_at`` and ``updated_at`` on the given entity
        and returns it.
        """

    @abstractmethod
    async def update_fields(self, entity_id: str, fields: dict[str, Any]) -> EntityT | None:
        """
        Update specific fields of a record.

        Returns:
            The updated record, or None if it does not exist
        """

    async def soft_delete(self, entity_id: str) -> EntityT | None:
        """Mark a record inactive. The row is never removed."""
        return await self.update_fields(entity_id, {"state": False})

    @abstractmethod
    async def delete(self, entity_id: str) -> bool:
        """
        Physically remove a record.

        Only used to compensate a failed asset-link saga; the public
        lifecycle never deletes rows.

        Returns:
            True if a record was removed
        """
