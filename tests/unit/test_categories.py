"""
Unit tests for CategoryService.

Covers name normalization, the duplicate-name rule, ownership and role
checks and soft deletion, on every backend.
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest
from pymongo.errors import DuplicateKeyError
from sqlalchemy.exc import IntegrityError

from catalog_engine.constants import BACKEND_MONGO, BACKEND_SQL
from catalog_engine.exceptions import (
    DuplicateNameError,
    NotFoundError,
    OwnershipError,
    PersistenceFailedError,
    RolePermissionError,
    ValidationRejectedError,
)


class TestCategoryCreate:
    """Test category creation."""

    @pytest.mark.asyncio
    async def test_create_normalizes_name(self, engine, member):
        """Test that the stored name is collapsed and sentence-cased."""
        category = await engine.categories.create(member, "  home   APPLIANCES ")

        assert category.name == "Home appliances"
        assert category.lower_name == "home appliances"
        assert category.owner_id == member.id
        assert category.state is True

        stored = await engine.categories.get(category.id)
        assert stored.name == "Home appliances"

    @pytest.mark.asyncio
    async def test_duplicate_name_ignores_case_and_spacing(self, engine, member, worker):
        """Test that names differing only in case or spacing collide."""
        await engine.categories.create(member, "Home appliances")

        with pytest.raises(DuplicateNameError) as exc_info:
            await engine.categories.create(worker, "HOME    appliances")

        assert exc_info.value.entity == "category"
        assert "already exists" in str(exc_info.value)
        assert await engine.categories.count_active() == 1

    @pytest.mark.asyncio
    async def test_empty_name_rejected(self, engine, member):
        """Test that a blank name never reaches storage."""
        with pytest.raises(ValidationRejectedError):
            await engine.categories.create(member, "   ")
        assert await engine.categories.count_active() == 0

    @pytest.mark.asyncio
    async def test_name_reusable_after_delete(self, engine, worker):
        """Test that a soft-deleted category does not block its name."""
        first = await engine.categories.create(worker, "Garden")
        await engine.categories.delete(worker, first.id)

        second = await engine.categories.create(worker, "garden")

        assert second.id != first.id
        assert second.name == "Garden"


class TestCategoryUpdate:
    """Test category updates."""

    @pytest.mark.asyncio
    async def test_owner_renames(self, engine, member):
        """Test that the owner can rename a category."""
        category = await engine.categories.create(member, "Phones")

        updated = await engine.categories.update(member, category.id, {"name": " smart  PHONES"})

        assert updated.name == "Smart phones"
        assert updated.lower_name == "smart phones"
        assert await engine.categories.search_by_name("smart") != []

    @pytest.mark.asyncio
    async def test_rename_to_own_name(self, engine, member):
        """Test that re-casing a category's own name is not a duplicate."""
        category = await engine.categories.create(member, "Phones")

        updated = await engine.categories.update(member, category.id, {"name": "PHONES"})

        assert updated.name == "Phones"

    @pytest.mark.asyncio
    async def test_rename_to_taken_name(self, engine, member):
        """Test that renaming onto another active category is rejected."""
        await engine.categories.create(member, "Phones")
        tablets = await engine.categories.create(member, "Tablets")

        with pytest.raises(DuplicateNameError):
            await engine.categories.update(member, tablets.id, {"name": "phones"})

    @pytest.mark.asyncio
    async def test_non_owner_rejected(self, engine, member, admin):
        """Test that only the owner can update, whatever their role."""
        category = await engine.categories.create(member, "Phones")

        with pytest.raises(OwnershipError):
            await engine.categories.update(admin, category.id, {"name": "Mobiles"})

        assert (await engine.categories.get(category.id)).name == "Phones"

    @pytest.mark.asyncio
    async def test_protected_fields_ignored(self, engine, member, worker):
        """Test that state and owner cannot be changed through update."""
        category = await engine.categories.create(member, "Phones")

        updated = await engine.categories.update(
            member, category.id, {"state": False, "owner_id": worker.id}
        )

        assert updated.state is True
        assert updated.owner_id == member.id

    @pytest.mark.asyncio
    async def test_update_missing(self, engine, member):
        """Test updates of malformed ids."""
        with pytest.raises(ValidationRejectedError):
            await engine.categories.update(member, "nope", {"name": "X"})


class TestCategoryDelete:
    """Test soft deletion."""

    @pytest.mark.asyncio
    async def test_privileged_owner_deletes(self, engine, worker):
        """Test that the deleted category vanishes from reads."""
        category = await engine.categories.create(worker, "Phones")

        deleted = await engine.categories.delete(worker, category.id)

        assert deleted.state is False
        with pytest.raises(NotFoundError):
            await engine.categories.get(category.id)
        assert await engine.categories.list_active() == []
        assert await engine.categories.search_by_name("pho") == []
        assert await engine.search.search("categories", "pho") == []

        with pytest.raises(NotFoundError):
            await engine.categories.delete(worker, category.id)

    @pytest.mark.asyncio
    async def test_owner_without_role_rejected(self, engine, member):
        """Test that owning a category is not enough to delete it."""
        category = await engine.categories.create(member, "Phones")

        with pytest.raises(RolePermissionError):
            await engine.categories.delete(member, category.id)
        assert (await engine.categories.get(category.id)).state is True

    @pytest.mark.asyncio
    async def test_admin_non_owner_rejected(self, engine, member, admin):
        """Test that a privileged role does not bypass ownership."""
        category = await engine.categories.create(member, "Phones")

        with pytest.raises(OwnershipError):
            await engine.categories.delete(admin, category.id)


class TestCategoryReads:
    """Test listings and product lookups."""

    @pytest.mark.asyncio
    async def test_list_and_count(self, engine, member):
        """Test pagination of active categories."""
        for name in ("Phones", "Tablets", "Laptops"):
            await engine.categories.create(member, name)

        assert await engine.categories.count_active() == 3
        assert len(await engine.categories.list_active(limit=2)) == 2
        assert len(await engine.categories.list_active(skip=2)) == 1
        # Out of range page sizes are clamped
        assert len(await engine.categories.list_active(limit=0)) == 1

    @pytest.mark.asyncio
    async def test_get_malformed_id(self, engine):
        """Test that a malformed id is a validation error, not a miss."""
        with pytest.raises(ValidationRejectedError):
            await engine.categories.get("not an id")

    @pytest.mark.asyncio
    async def test_list_products(self, engine, worker):
        """Test that only active products of the category are listed."""
        phones = await engine.categories.create(worker, "Phones")
        tablets = await engine.categories.create(worker, "Tablets")
        kept = await engine.products.create(worker, {"name": "Pixel", "category": phones.id})
        gone = await engine.products.create(worker, {"name": "Galaxy", "category": phones.id})
        await engine.products.create(worker, {"name": "Ipad", "category": tablets.id})
        await engine.products.delete(worker, gone.id)

        products = await engine.categories.list_products(phones.id)

        assert [p.id for p in products] == [kept.id]

    @pytest.mark.asyncio
    async def test_list_products_of_deleted_category(self, engine, worker):
        """Test that a deleted category has no product listing."""
        phones = await engine.categories.create(worker, "Phones")
        await engine.categories.delete(worker, phones.id)

        with pytest.raises(NotFoundError):
            await engine.categories.list_products(phones.id)


class TestCategoryStorageErrors:
    """Test how storage failures of category writes reach the caller."""

    @pytest.mark.asyncio
    async def test_concurrent_create_same_name(self, engine, worker):
        """Test that only one of two simultaneous creates with the same name wins."""
        results = await asyncio.gather(
            engine.categories.create(worker, "Electronics"),
            engine.categories.create(worker, "electronics "),
            return_exceptions=True,
        )

        assert sorted(type(result).__name__ for result in results) == [
            "Category",
            "DuplicateNameError",
        ]

    @pytest.mark.asyncio
    async def test_sql_unique_index_is_duplicate_name(self, engine, worker, monkeypatch):
        """Test a create that passes the name check but hits the unique index."""
        if engine.config.backend != BACKEND_SQL:
            pytest.skip("SQL specific")
        await engine.categories.create(worker, "Electronics")
        monkeypatch.setattr(engine.uow.categories, "exists", AsyncMock(return_value=False))

        with pytest.raises(DuplicateNameError) as exc_info:
            await engine.categories.create(worker, "ELECTRONICS")

        assert exc_info.value.name == "Electronics"
        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert await engine.categories.count_active() == 1

    @pytest.mark.asyncio
    async def test_sql_unique_index_on_rename(self, engine, worker, monkeypatch):
        """Test that a rename hitting the unique index is a duplicate name."""
        if engine.config.backend != BACKEND_SQL:
            pytest.skip("SQL specific")
        await engine.categories.create(worker, "Electronics")
        garden = await engine.categories.create(worker, "Garden")
        monkeypatch.setattr(engine.uow.categories, "exists", AsyncMock(return_value=False))

        with pytest.raises(DuplicateNameError):
            await engine.categories.update(worker, garden.id, {"name": "electronics"})

        assert (await engine.categories.get(garden.id)).name == "Garden"

    @pytest.mark.asyncio
    async def test_mongo_duplicate_key_is_duplicate_name(self, engine, worker, monkeypatch):
        """Test that MongoDB's duplicate key error becomes a duplicate name."""
        if engine.config.backend != BACKEND_MONGO:
            pytest.skip("MongoDB specific")
        monkeypatch.setattr(
            engine.uow.categories,
            "create",
            AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key error")),
        )

        with pytest.raises(DuplicateNameError) as exc_info:
            await engine.categories.create(worker, "Electronics")

        assert isinstance(exc_info.value.__cause__, DuplicateKeyError)

    @pytest.mark.asyncio
    async def test_create_failure(self, engine, worker, monkeypatch, caplog):
        """Test that a driver error on create is a persistence failure."""
        monkeypatch.setattr(
            engine.uow.categories, "create", AsyncMock(side_effect=ConnectionError("down"))
        )

        with caplog.at_level(logging.ERROR, logger="catalog_engine.services.lifecycle"):
            with pytest.raises(PersistenceFailedError) as exc_info:
                await engine.categories.create(worker, "Electronics")

        assert exc_info.value.step == "create"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

        (record,) = [r for r in caplog.records if r.name == "catalog_engine.services.lifecycle"]
        assert record.operation == "category.create"
        assert record.requester_id == worker.id
        assert record.entity == "category"
        assert record.error_type == "ConnectionError"

    @pytest.mark.asyncio
    async def test_update_failure(self, engine, worker, monkeypatch):
        """Test that a driver error on update names the category."""
        category = await engine.categories.create(worker, "Garden")
        monkeypatch.setattr(
            engine.uow.categories, "update_fields", AsyncMock(side_effect=TimeoutError())
        )

        with pytest.raises(PersistenceFailedError) as exc_info:
            await engine.categories.update(worker, category.id, {"name": "Yard"})

        assert exc_info.value.step == "update"
        assert exc_info.value.entity_id == category.id

    @pytest.mark.asyncio
    async def test_delete_failure(self, engine, worker, monkeypatch):
        """Test that a driver error on soft delete is a persistence failure."""
        category = await engine.categories.create(worker, "Garden")
        monkeypatch.setattr(
            engine.uow.categories, "soft_delete", AsyncMock(side_effect=ConnectionError("down"))
        )

        with pytest.raises(PersistenceFailedError) as exc_info:
            await engine.categories.delete(worker, category.id)

        assert exc_info.value.step == "delete"
        assert exc_info.value.entity_id == category.id
        assert (await engine.categories.get(category.id)).is_active
