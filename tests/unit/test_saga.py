"""
Unit tests for the asset-link saga.

Tests the create and update paths, the compensating actions run on each
failure and the errors reported when a compensation fails too.
"""

from unittest.mock import AsyncMock, patch

import pytest

from catalog_engine.assets.base import AssetUpload
from catalog_engine.core.types import Product
from catalog_engine.exceptions import (
    CompensationFailedError,
    PersistenceFailedError,
    UploadFailedError,
)
from catalog_engine.observability import get_metrics_collector
from catalog_engine.repositories.memory import InMemoryAdapter, InMemoryStore
from catalog_engine.services.saga import AssetLinkSaga, SagaState


@pytest.fixture
def adapter():
    return InMemoryAdapter(InMemoryStore(), "products", Product)


@pytest.fixture
def saga(adapter, asset_store):
    return AssetLinkSaga(adapter, asset_store, "products", "img")


def new_product():
    return Product(name="Laptop", lower_name="laptop", price=999.0)


class TestSagaCreate:
    """Test the create path."""

    @pytest.mark.asyncio
    async def test_create_links_asset_keyed_by_id(self, saga, adapter, asset_store, png_upload):
        """Test that the asset is uploaded under the new entity id and linked."""
        product = await saga.create(new_product(), png_upload())

        assert product.img == asset_store.assets[f"products/{product.id}"]
        stored = await adapter.find_by_id(product.id)
        assert stored.img == product.img

    @pytest.mark.asyncio
    async def test_create_without_upload(self, saga, asset_store):
        """Test that the saga only persists when no asset is given."""
        product = await saga.create(new_product())

        assert product.id is not None
        assert product.img is None
        assert asset_store.assets == {}

    @pytest.mark.asyncio
    async def test_create_failure_skips_upload(self, saga, adapter, asset_store, png_upload):
        """Test that a failed insert never reaches the asset store."""
        with patch.object(adapter, "create", AsyncMock(side_effect=RuntimeError("insert failed"))):
            with pytest.raises(PersistenceFailedError) as exc_info:
                await saga.create(new_product(), png_upload())

        assert exc_info.value.step == "create"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert asset_store.assets == {}

    @pytest.mark.asyncio
    async def test_upload_failure_deletes_entity(self, saga, adapter, asset_store, png_upload):
        """Test that the row is removed when the upload fails."""
        asset_store.fail_upload = True

        with pytest.raises(UploadFailedError) as exc_info:
            await saga.create(new_product(), png_upload())

        error = exc_info.value
        assert error.step == "upload"
        assert error.compensated is True
        assert isinstance(error.__cause__, ConnectionError)
        assert await adapter.find_by_id(error.entity_id) is None
        assert await adapter.count_active() == 0

    @pytest.mark.asyncio
    async def test_link_failure_removes_asset_and_entity(
        self, saga, adapter, asset_store, png_upload
    ):
        """Test that both completed steps are undone when the link write fails."""
        with patch.object(
            adapter, "update_fields", AsyncMock(side_effect=RuntimeError("write failed"))
        ):
            with pytest.raises(PersistenceFailedError) as exc_info:
                await saga.create(new_product(), png_upload())

        error = exc_info.value
        assert error.step == "link"
        assert error.compensated is True
        assert asset_store.assets == {}
        assert asset_store.removed == [f"products/{error.entity_id}"]
        assert await adapter.find_by_id(error.entity_id) is None

    @pytest.mark.asyncio
    async def test_link_to_vanished_entity(self, saga, adapter, asset_store, png_upload):
        """Test that a link write matching no row counts as a failure."""
        with patch.object(adapter, "update_fields", AsyncMock(return_value=None)):
            with pytest.raises(PersistenceFailedError) as exc_info:
                await saga.create(new_product(), png_upload())

        assert exc_info.value.step == "link"
        assert asset_store.assets == {}

    @pytest.mark.asyncio
    async def test_compensation_failure_reports_both(
        self, saga, adapter, asset_store, png_upload
    ):
        """Test that a failed rollback surfaces with the original failure."""
        asset_store.fail_upload = True

        with patch.object(adapter, "delete", AsyncMock(side_effect=RuntimeError("delete failed"))):
            with pytest.raises(CompensationFailedError) as exc_info:
                await saga.create(new_product(), png_upload())

        error = exc_info.value
        assert error.step == "upload"
        assert error.compensated is False
        assert isinstance(error.primary_error, UploadFailedError)
        assert error.primary_error.compensated is False
        assert [action for action, _ in error.compensation_errors] == ["delete_entity"]
        assert isinstance(error.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_every_compensation_runs(self, saga, adapter, asset_store, png_upload):
        """Test that a failing asset removal does not stop the row deletion."""
        asset_store.fail_remove = True

        with patch.object(
            adapter, "update_fields", AsyncMock(side_effect=RuntimeError("write failed"))
        ):
            with pytest.raises(CompensationFailedError) as exc_info:
                await saga.create(new_product(), png_upload())

        error = exc_info.value
        assert [action for action, _ in error.compensation_errors] == ["remove_asset"]
        assert error.primary_error.step == "link"
        assert await adapter.find_by_id(error.entity_id) is None

    @pytest.mark.asyncio
    async def test_temporary_upload_discarded(self, saga, tmp_path):
        """Test that a temporary upload file is removed after the attempt."""
        path = tmp_path / "upload_1.png"
        path.write_bytes(b"\x89PNG\r\n")

        await saga.create(new_product(), AssetUpload(str(path), temporary=True))

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_temporary_upload_discarded_on_failure(self, saga, asset_store, tmp_path):
        """Test that the temporary file is removed even when the upload fails."""
        asset_store.fail_upload = True
        path = tmp_path / "upload_2.png"
        path.write_bytes(b"\x89PNG\r\n")

        with pytest.raises(UploadFailedError):
            await saga.create(new_product(), AssetUpload(str(path), temporary=True))

        assert not path.exists()


class TestSagaUpdate:
    """Test the update path."""

    @pytest.mark.asyncio
    async def test_update_replaces_asset(self, saga, adapter, asset_store, png_upload):
        """Test that the new asset overwrites the old one under the same key."""
        product = await saga.create(new_product(), png_upload())

        updated = await saga.update(product.id, {"price": 899.0}, png_upload("new.jpg"))

        assert updated.price == 899.0
        assert updated.img == asset_store.assets[f"products/{product.id}"]
        assert len(asset_store.assets) == 1

    @pytest.mark.asyncio
    async def test_update_upload_failure_writes_nothing(
        self, saga, adapter, asset_store, png_upload
    ):
        """Test that the row is untouched when the upload fails."""
        product = await saga.create(new_product())
        asset_store.fail_upload = True

        with pytest.raises(UploadFailedError) as exc_info:
            await saga.update(product.id, {"price": 1.0}, png_upload())

        assert exc_info.value.compensated is True
        stored = await adapter.find_by_id(product.id)
        assert stored.price == 999.0
        assert stored.img is None

    @pytest.mark.asyncio
    async def test_update_write_failure_removes_asset(
        self, saga, adapter, asset_store, png_upload
    ):
        """Test that the uploaded asset is removed when the row write fails."""
        product = await saga.create(new_product())

        with patch.object(
            adapter, "update_fields", AsyncMock(side_effect=RuntimeError("write failed"))
        ):
            with pytest.raises(PersistenceFailedError) as exc_info:
                await saga.update(product.id, {}, png_upload())

        assert exc_info.value.step == "link"
        assert asset_store.assets == {}
        assert asset_store.removed == [f"products/{product.id}"]

    @pytest.mark.asyncio
    async def test_update_without_upload_on_missing_entity(self, saga, adapter):
        """Test that a plain update of a missing row is a persistence failure."""
        product = await saga.create(new_product())
        await adapter.delete(product.id)

        with pytest.raises(PersistenceFailedError) as exc_info:
            await saga.update(product.id, {"price": 1.0})

        assert exc_info.value.step == "update"


class TestSagaMetrics:
    """Test that saga outcomes are recorded."""

    @pytest.mark.asyncio
    async def test_success_and_failure_counted(self, saga, asset_store, png_upload):
        """Test saga.create counts and error counts."""
        await saga.create(new_product(), png_upload())
        asset_store.fail_upload = True
        with pytest.raises(UploadFailedError):
            await saga.create(Product(name="Phone", lower_name="phone"), png_upload())

        collector = get_metrics_collector()
        assert collector.get_operation_count("saga.create") == 2
        assert collector.get_error_count("saga.create") == 1

    def test_states(self):
        """Test the saga state values."""
        assert [s.value for s in SagaState] == ["pending", "created", "asset_linked", "failed"]
