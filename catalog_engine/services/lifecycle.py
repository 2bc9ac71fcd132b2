"""
Entity lifecycle rules shared by categories, products and users.

Deletion is always logical: ``state`` goes to False and the row stays.
Every read below only ever returns active records. Every write goes through
``writing`` so storage failures reach callers as catalog errors.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generic, Iterable, Iterator, Optional

from ..constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..core.normalization import normalize_name
from ..core.types import EntityT, Requester
from ..exceptions import (
    CatalogEngineError,
    DuplicateNameError,
    NotFoundError,
    PersistenceFailedError,
    ValidationRejectedError,
)
from ..observability import get_logger, log_operation, request_context
from ..repositories.base import QueryAdapter
from .authorization import AuthorizationGate
from .guards import Guard, GuardContext, enforce, entity_exists, owner_only, role_in, unique_name

logger = get_logger(__name__)

# Fields a caller can never set through a create or update payload
PROTECTED_FIELDS = frozenset({"id", "state", "owner_id", "lower_name", "created_at", "updated_at"})


def writable_payload(data: dict[str, Any], allowed: Iterable[str]) -> dict[str, Any]:
    """Keep only the allowed, non-protected keys of a caller payload."""
    allowed = frozenset(allowed) - PROTECTED_FIELDS
    dropped = set(data) - allowed
    if dropped:
        logger.debug(f"Ignoring fields not writable by the caller: {', '.join(sorted(dropped))}")
    return {key: value for key, value in data.items() if key in allowed}


class EntityLifecycleRules(Generic[EntityT]):
    """
    Base service for one entity collection.

    Subclasses add the create and update operations, which differ per
    entity; reads, the duplicate-name rule and deletion are shared.
    """

    def __init__(self, adapter: QueryAdapter[EntityT], gate: AuthorizationGate):
        self._adapter = adapter
        self._gate = gate

    @property
    def label(self) -> str:
        return self._adapter.entity_class.ENTITY_LABEL

    @property
    def adapter(self) -> QueryAdapter[EntityT]:
        return self._adapter

    async def get(self, entity_id: str) -> EntityT:
        """
        Get an active entity by id.

        Raises:
            ValidationRejectedError: If the id is malformed for the engine
            NotFoundError: If the entity is missing or inactive
        """
        if not self._adapter.is_valid_id(entity_id):
            raise ValidationRejectedError(
                f"'{entity_id}' is not a valid {self.label} id", field="id"
            )
        entity = await self._adapter.find_by_id(entity_id)
        if entity is None or not entity.is_active:
            raise NotFoundError(self.label, entity_id)
        return entity

    async def list_active(self, skip: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> list[EntityT]:
        return await self._adapter.list_active(skip=max(skip, 0), limit=clamp_page_size(limit))

    async def count_active(self) -> int:
        return await self._adapter.count_active()

    async def search_by_name(self, prefix: str) -> list[EntityT]:
        """Active entities whose name starts with ``prefix``, ignoring case."""
        return await self._adapter.find_prefix("name", prefix)

    def _unique_name_guard(self, name: str, exclude_id: str | None = None) -> Guard:
        normalized = normalize_name(name, self._adapter.entity_class.NAME_STYLE)
        return unique_name(
            self._adapter, normalized.display_name, normalized.search_key, exclude_id
        )

    async def ensure_unique_name(self, name: str, exclude_id: str | None = None) -> None:
        """
        Raises:
            DuplicateNameError: If another active record normalizes to the same name
        """
        await enforce(GuardContext(None), [self._unique_name_guard(name, exclude_id)])

    async def load_owned(self, requester: Requester, entity_id: str, *extra: Guard) -> EntityT:
        """Load an active entity the requester owns, then run ``extra`` guards."""
        ctx = await enforce(
            GuardContext(requester),
            [entity_exists(self._adapter, entity_id), owner_only(), *extra],
        )
        return ctx.entity

    def duplicate_name(self, name: str) -> DuplicateNameError:
        return DuplicateNameError(self.label, name)

    @contextmanager
    def writing(
        self,
        step: str,
        requester: Optional[Requester] = None,
        entity_id: Optional[str] = None,
        duplicate: Optional[DuplicateNameError] = None,
    ) -> Iterator[None]:
        """
        Run a storage write under the requester's logging context.

        A violated unique index becomes ``duplicate`` when one is given; it
        only happens when a concurrent write slipped past the duplicate-name
        guard. Any other driver error becomes PersistenceFailedError for
        ``step``. Catalog errors raised in the block pass through, except a
        saga PersistenceFailedError caused by a unique index.

        Usage:
            with self.writing("create", requester, duplicate=self.duplicate_name(name)):
                entity = await self._adapter.create(entity)
        """
        with request_context(
            requester_id=requester.id if requester is not None else None,
            entity=self.label,
            entity_id=entity_id,
        ):
            try:
                yield
            except PersistenceFailedError as e:
                if duplicate is not None and self._adapter.is_duplicate_key(e.__cause__):
                    raise duplicate from e.__cause__
                raise
            except CatalogEngineError:
                raise
            except Exception as e:
                if duplicate is not None and self._adapter.is_duplicate_key(e):
                    logger.warning(f"Unique index rejected a concurrent {self.label} {step}")
                    raise duplicate from e
                log_operation(
                    logger,
                    f"{self.label}.{step}",
                    level=logging.ERROR,
                    success=False,
                    error_type=type(e).__name__,
                )
                raise PersistenceFailedError(
                    f"Could not {step} the {self.label}", step=step, entity_id=entity_id
                ) from e

    async def update_stored(
        self,
        requester: Requester,
        entity_id: str,
        payload: dict[str, Any],
        duplicate: Optional[DuplicateNameError] = None,
    ) -> EntityT:
        """
        Write ``payload`` to a record already loaded by the caller.

        Raises:
            NotFoundError: If the record disappeared in the meantime
            PersistenceFailedError: If the storage write failed
        """
        with self.writing("update", requester, entity_id, duplicate):
            updated = await self._adapter.update_fields(entity_id, payload)
        if updated is None:
            raise NotFoundError(self.label, entity_id)
        return updated

    async def soft_delete_stored(self, requester: Requester, entity_id: str) -> EntityT:
        with self.writing("delete", requester, entity_id):
            deleted = await self._adapter.soft_delete(entity_id)
        if deleted is None:
            raise NotFoundError(self.label, entity_id)
        logger.info(f"Deleted {self.label} {entity_id} (requested by {requester.id})")
        return deleted

    async def delete(self, requester: Requester, entity_id: str) -> EntityT:
        """
        Soft-delete an entity.

        The requester must own the entity and hold a privileged role; the
        two checks are independent, so an admin cannot delete what another
        user owns.

        Raises:
            NotFoundError: If the entity is missing or already inactive
            OwnershipError: If the requester is not the owner
            RolePermissionError: If the requester's role is not privileged
            PersistenceFailedError: If the storage write failed
        """
        await self.load_owned(requester, entity_id, role_in(self._gate))
        return await self.soft_delete_stored(requester, entity_id)


def clamp_page_size(limit: int) -> int:
    return min(max(limit, 1), MAX_PAGE_SIZE)
