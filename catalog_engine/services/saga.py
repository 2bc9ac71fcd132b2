"""
Asset-link saga.

Storing an entity together with its image spans two systems that share no
transaction: the database and the object store. The saga orders the steps
so that the asset key can be the entity id, and undoes completed steps when
a later one fails.

Create path:
    PENDING --create row--> CREATED --upload(key=id)--> --link url--> ASSET_LINKED

    upload fails  -> delete the row
    link fails    -> remove the asset, delete the row

Update path (the entity already exists, so the upload overwrites by id):
    upload fails  -> nothing to undo
    write fails   -> remove the asset

When a compensating action fails too, CompensationFailedError reports the
original failure together with every failed rollback.
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional

from ..assets.base import AssetStore, AssetUpload, StoredAsset
from ..core.types import EntityT
from ..exceptions import (
    CompensationFailedError,
    NotFoundError,
    PersistenceFailedError,
    SagaError,
    UploadFailedError,
)
from ..observability import get_logger, log_operation, record_operation
from ..repositories.base import QueryAdapter

logger = get_logger(__name__)

Compensation = tuple[str, Callable[[], Awaitable[Any]]]


class SagaState(str, Enum):
    PENDING = "pending"
    CREATED = "created"
    ASSET_LINKED = "asset_linked"
    FAILED = "failed"


class AssetLinkSaga(Generic[EntityT]):
    """
    Persists an entity and links an uploaded asset to it.

    Args:
        adapter: Adapter of the entity collection
        store: Object store receiving the asset
        folder: Entity folder in the store ("users", "products")
        field: Entity field holding the asset URL ("avatar", "img")
    """

    def __init__(self, adapter: QueryAdapter[EntityT], store: AssetStore, folder: str, field: str):
        self._adapter = adapter
        self._store = store
        self._folder = folder
        self._field = field
        self._label = adapter.entity_class.ENTITY_LABEL

    async def create(self, entity: EntityT, upload: Optional[AssetUpload] = None) -> EntityT:
        """
        Persist a new entity and, when ``upload`` is given, link its asset.

        Raises:
            PersistenceFailedError: The row could not be created (step "create")
                or the asset URL could not be written (step "link")
            UploadFailedError: The asset store rejected the upload
            CompensationFailedError: A failure occurred and a rollback failed too
        """
        start_time = time.time()
        state = SagaState.PENDING
        try:
            try:
                created = await self._adapter.create(entity)
            except Exception as e:
                raise PersistenceFailedError(
                    f"Could not create the {self._label}", step="create"
                ) from e
            state = SagaState.CREATED

            if upload is None:
                return created

            try:
                asset = await self._upload(upload, created.id)
            except Exception as e:
                errors = await self._compensate([self._delete_entity(created.id)])
                primary = UploadFailedError(
                    f"Could not upload the {self._label} image",
                    compensated=not errors,
                    entity_id=created.id,
                )
                self._raise(primary, errors, e)

            try:
                linked = await self._adapter.update_fields(created.id, {self._field: asset.url})
                if linked is None:
                    raise NotFoundError(self._label, created.id)
            except Exception as e:
                errors = await self._compensate(
                    [self._remove_asset(asset), self._delete_entity(created.id)]
                )
                primary = PersistenceFailedError(
                    f"Could not link the uploaded image to the {self._label}",
                    step="link",
                    compensated=not errors,
                    entity_id=created.id,
                )
                self._raise(primary, errors, e)

            state = SagaState.ASSET_LINKED
            return linked
        except SagaError as e:
            state = SagaState.FAILED
            self._log_failure("create", e)
            raise
        finally:
            self._record("create", state, start_time)

    async def update(
        self,
        entity_id: str,
        changes: dict[str, Any],
        upload: Optional[AssetUpload] = None,
    ) -> EntityT:
        """
        Update an existing entity and, when ``upload`` is given, replace its asset.

        The asset is uploaded first, keyed by ``entity_id`` so it overwrites
        the previous one; the row is only written once the upload succeeded.

        Raises:
            UploadFailedError: The asset store rejected the upload (nothing written)
            PersistenceFailedError: The row write failed (step "update" or "link")
            CompensationFailedError: The row write failed and removing the asset failed too
        """
        start_time = time.time()
        state = SagaState.CREATED
        try:
            if upload is None:
                try:
                    updated = await self._adapter.update_fields(entity_id, changes)
                    if updated is None:
                        raise NotFoundError(self._label, entity_id)
                except Exception as e:
                    raise PersistenceFailedError(
                        f"Could not update the {self._label}",
                        step="update",
                        compensated=True,
                        entity_id=entity_id,
                    ) from e
                return updated

            try:
                asset = await self._upload(upload, entity_id)
            except Exception as e:
                raise UploadFailedError(
                    f"Could not upload the {self._label} image",
                    compensated=True,
                    entity_id=entity_id,
                ) from e

            try:
                updated = await self._adapter.update_fields(
                    entity_id, {**changes, self._field: asset.url}
                )
                if updated is None:
                    raise NotFoundError(self._label, entity_id)
            except Exception as e:
                # The previous asset was overwritten already; removing the new
                # one leaves the row pointing at a missing asset.
                errors = await self._compensate([self._remove_asset(asset)])
                primary = PersistenceFailedError(
                    f"Could not link the uploaded image to the {self._label}",
                    step="link",
                    compensated=not errors,
                    entity_id=entity_id,
                )
                self._raise(primary, errors, e)

            state = SagaState.ASSET_LINKED
            return updated
        except SagaError as e:
            state = SagaState.FAILED
            self._log_failure("update", e)
            raise
        finally:
            self._record("update", state, start_time)

    async def _upload(self, upload: AssetUpload, key: str) -> StoredAsset:
        try:
            return await self._store.upload(upload.source, key, self._folder)
        finally:
            upload.discard()

    def _delete_entity(self, entity_id: str) -> Compensation:
        return ("delete_entity", lambda: self._adapter.delete(entity_id))

    def _remove_asset(self, asset: StoredAsset) -> Compensation:
        return ("remove_asset", lambda: self._store.remove(asset.url, self._folder))

    async def _compensate(self, actions: list[Compensation]) -> list[tuple[str, Exception]]:
        """Run every compensating action, collecting the ones that fail."""
        errors = []
        for name, action in actions:
            try:
                await action()
            except Exception as e:
                logger.error(f"Compensation '{name}' failed for {self._label}: {e}", exc_info=True)
                errors.append((name, e))
        return errors

    @staticmethod
    def _raise(
        primary: SagaError, errors: list[tuple[str, Exception]], cause: BaseException
    ) -> None:
        if errors:
            raise CompensationFailedError(primary, errors) from cause
        raise primary from cause

    def _log_failure(self, operation: str, error: SagaError) -> None:
        log_operation(
            logger,
            f"saga.{operation}",
            level=logging.ERROR,
            success=False,
            entity=self._label,
            step=error.step,
            compensated=error.compensated,
            entity_id=error.entity_id,
            error_type=type(error).__name__,
        )

    def _record(self, operation: str, state: SagaState, start_time: float) -> None:
        duration_ms = (time.time() - start_time) * 1000
        success = state is not SagaState.FAILED
        record_operation(f"saga.{operation}", duration_ms, success, entity=self._label)
        if success:
            log_operation(
                logger,
                f"saga.{operation}",
                level=logging.DEBUG,
                duration_ms=duration_ms,
                entity=self._label,
                state=state.value,
            )
