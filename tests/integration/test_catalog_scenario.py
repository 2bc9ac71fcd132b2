"""Integration tests running a whole catalog session.

The MongoDB and Firestore runs use in-process stand-ins; the SQL runs use
SQLite through aiosqlite.
"""

import pytest

from catalog_engine import CatalogEngine, EngineConfig
from catalog_engine.constants import ADMIN_ROLE, WORKER_ROLE
from catalog_engine.core.types import Requester
from catalog_engine.exceptions import (
    DuplicateNameError,
    NotFoundError,
    OwnershipError,
    RolePermissionError,
    ValidationRejectedError,
)


@pytest.mark.integration
@pytest.mark.asyncio
class TestCatalogScenario:
    """A shop staff session, on every backend."""

    async def test_staff_session(self, engine, asset_store, png_upload, make_user):
        """Test signing up, building a catalog, searching and cleaning up."""
        clerk = await make_user("Walter", WORKER_ROLE)
        boss = await make_user("Adele", ADMIN_ROLE)
        shopper = await make_user("Ana")

        login = await engine.auth.login("walter@example.com", "secret")
        assert login.user.id == clerk.id

        phones = await engine.categories.create(clerk, "  smart   PHONES ")
        assert phones.name == "Smart phones"
        with pytest.raises(DuplicateNameError):
            await engine.categories.create(boss, "SMART phones")

        pixel = await engine.products.create(
            clerk,
            {"name": "pixel 9", "category": "smart phones", "price": 799.5},
            image=png_upload(),
        )
        assert pixel.category_id == phones.id
        assert pixel.price == 799.5
        assert pixel.img == asset_store.assets[f"products/{pixel.id}"]

        with pytest.raises(ValidationRejectedError):
            await engine.products.create(
                clerk, {"name": "Case", "category": phones.id, "price": -1}
            )
        with pytest.raises(OwnershipError):
            await engine.products.update(boss, pixel.id, {"price": 1})

        renamed = await engine.products.update(clerk, pixel.id, {"name": "Pixel 9 PRO"})
        assert renamed.name == "Pixel 9 pro"
        assert [p.id for p in await engine.search.search("products", "pixel 9 p")] == [pixel.id]
        assert [p.id for p in await engine.categories.list_products(phones.id)] == [pixel.id]

        await engine.categories.delete(clerk, phones.id)
        assert await engine.products.list_active() == []
        assert await engine.products.search_by_name("pixel") == []
        assert await engine.search.search("products", "pixel") == []
        with pytest.raises(NotFoundError):
            await engine.categories.list_products(phones.id)

        with pytest.raises(RolePermissionError):
            await engine.users.delete(shopper, boss.id)
        await engine.users.delete(boss, clerk.id)
        assert await engine.search.search("users", "walter") == []

    async def test_ids_are_engine_specific(self, engine, make_user):
        """Test that ids from one engine family are rejected, not crashed on."""
        clerk = await make_user("Walter", WORKER_ROLE)
        category = await engine.categories.create(clerk, "Tablets")

        for foreign in ("0" * 24, "a" * 20, "42", "not an id"):
            if foreign == category.id:
                continue
            if engine.categories.adapter.is_valid_id(foreign):
                with pytest.raises(NotFoundError):
                    await engine.categories.get(foreign)
            else:
                with pytest.raises(ValidationRejectedError):
                    await engine.categories.get(foreign)


@pytest.mark.integration
@pytest.mark.asyncio
class TestSQLitePersistence:
    """Data written through one engine is visible to the next."""

    async def test_reopen_database(self, tmp_path):
        """Test that tables are reused and soft-deleted rows stay hidden."""
        config = EngineConfig(backend="sql", sql_url=f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}")

        async with CatalogEngine(config, password_rounds=4) as first:
            await first.seed_roles()
            user = await first.users.create(
                {"name": "walter", "email": "w@example.com", "password": "x", "role": WORKER_ROLE}
            )
            clerk = Requester(id=user.id, role_id=user.role_id)
            kept = await first.categories.create(clerk, "Tablets")
            gone = await first.categories.create(clerk, "Pagers")
            await first.categories.delete(clerk, gone.id)

        async with CatalogEngine(config, password_rounds=4) as second:
            assert await second.seed_roles() == []
            assert [c.id for c in await second.categories.list_active()] == [kept.id]
            assert (await second.users.get(user.id)).name == "Walter"
            reused = await second.categories.create(clerk, "pagers")
            assert reused.id != gone.id
