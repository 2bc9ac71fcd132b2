"""
Product service.

Products belong to the user who created them and to one active category.
Writes carrying an image go through the asset-link saga so that the image
is stored under the product id.
"""

import logging
from typing import Any, Optional

from ..assets.base import AssetStore, AssetUpload
from ..constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_PRODUCT_DESCRIPTION,
    PRODUCT_IMAGE_FIELD,
    PRODUCTS_ASSET_FOLDER,
)
from ..core.normalization import apply_name, search_key_for
from ..core.types import Category, Product, Requester
from ..exceptions import NotFoundError, ValidationRejectedError
from ..repositories.base import QueryAdapter
from ..repositories.unit_of_work import UnitOfWork
from .authorization import AuthorizationGate
from .lifecycle import EntityLifecycleRules, writable_payload
from .saga import AssetLinkSaga

logger = logging.getLogger(__name__)

PRODUCT_WRITABLE_FIELDS = ("name", "price", "description", "available", "category", "category_id")


def validate_price(value: Any) -> float:
    """
    Raises:
        ValidationRejectedError: If the price is not a number or is negative
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationRejectedError("The price must be a number", field="price")
    if value < 0:
        raise ValidationRejectedError("The price cannot be negative", field="price")
    return float(value)


async def with_active_category(
    categories: QueryAdapter[Category], products: list[Product]
) -> list[Product]:
    """Drop the products whose category is missing or soft-deleted."""
    active: dict[str | None, bool] = {}
    visible = []
    for product in products:
        category_id = product.category_id
        if category_id not in active:
            category = await categories.find_by_id(category_id) if category_id else None
            active[category_id] = category is not None and category.is_active
        if active[category_id]:
            visible.append(product)
    return visible


class ProductService(EntityLifecycleRules[Product]):
    """
    Example:
        product = await products.create(
            requester,
            {"name": "  washing   machine", "price": 499.0, "category": "Home appliances"},
            image=AssetUpload("/tmp/upload_1234.png", filename="machine.png", temporary=True),
        )
    """

    def __init__(self, uow: UnitOfWork, gate: AuthorizationGate, asset_store: Optional[AssetStore]):
        super().__init__(uow.products, gate)
        self._categories: QueryAdapter[Category] = uow.categories
        self._saga = (
            AssetLinkSaga(uow.products, asset_store, PRODUCTS_ASSET_FOLDER, PRODUCT_IMAGE_FIELD)
            if asset_store is not None
            else None
        )

    async def resolve_category(self, reference: str) -> Category:
        """
        Resolve a category given by id or by name to an active category.

        Raises:
            ValidationRejectedError: If no active category matches
        """
        if not isinstance(reference, str) or not reference.strip():
            raise ValidationRejectedError("The category is required", field="category")

        if self._categories.is_valid_id(reference):
            category = await self._categories.find_by_id(reference)
            if category is not None and category.is_active:
                return category

        matches = await self._categories.find_exact(
            {"lower_name": search_key_for(reference, Category.NAME_STYLE)}
        )
        if not matches:
            raise ValidationRejectedError(
                f"The category {reference} does not exist", field="category"
            )
        return matches[0]

    async def _prepare(self, data: dict[str, Any]) -> dict[str, Any]:
        payload = apply_name(writable_payload(data, PRODUCT_WRITABLE_FIELDS), Product.NAME_STYLE)
        if "price" in payload:
            payload["price"] = validate_price(payload["price"])

        reference = payload.pop("category", None) or payload.pop("category_id", None)
        payload.pop("category_id", None)
        if reference is not None:
            payload["category_id"] = (await self.resolve_category(reference)).id
        return payload

    def _require_saga(self, image: Optional[AssetUpload]) -> Optional[AssetLinkSaga]:
        if image is None:
            return None
        if self._saga is None:
            raise ValidationRejectedError(
                "Images cannot be stored: no asset store is configured", field=PRODUCT_IMAGE_FIELD
            )
        image.ensure_allowed_extension()
        return self._saga

    async def create(
        self,
        requester: Requester,
        data: dict[str, Any],
        image: Optional[AssetUpload] = None,
    ) -> Product:
        """
        Create a product owned by the requester.

        Args:
            data: name, category (id or name), and optionally price,
                description and available
            image: Optional product image

        Raises:
            ValidationRejectedError: Empty name, negative price, unknown category
            DuplicateNameError: If an active product has the same normalized name
            PersistenceFailedError: If the storage write failed
            SagaError: If storing the product with its image failed
        """
        if not data.get("name"):
            raise ValidationRejectedError("The name is required", field="name")
        if not data.get("category") and not data.get("category_id"):
            raise ValidationRejectedError("The category is required", field="category")

        saga = self._require_saga(image)
        payload = await self._prepare(data)
        await self.ensure_unique_name(payload["name"])

        product = Product(
            name=payload["name"],
            lower_name=payload["lower_name"],
            price=payload.get("price", 0.0),
            description=payload.get("description") or DEFAULT_PRODUCT_DESCRIPTION,
            available=payload.get("available", True),
            category_id=payload["category_id"],
            owner_id=requester.id,
        )
        with self.writing("create", requester, duplicate=self.duplicate_name(product.name)):
            if saga is None:
                product = await self._adapter.create(product)
            else:
                product = await saga.create(product, image)

        logger.info(f"Created product '{product.name}' ({product.id})")
        return product

    async def update(
        self,
        requester: Requester,
        product_id: str,
        changes: dict[str, Any],
        image: Optional[AssetUpload] = None,
    ) -> Product:
        """
        Update a product owned by the requester, optionally replacing its image.

        Raises:
            NotFoundError: If the product is missing or inactive
            OwnershipError: If the requester is not the owner
            DuplicateNameError: If the new name is used by another active product
            ValidationRejectedError: Negative price or unknown category
            PersistenceFailedError: If the storage write failed
            SagaError: If replacing the image failed
        """
        saga = self._require_saga(image)
        guards = []
        if changes.get("name"):
            guards.append(self._unique_name_guard(changes["name"], exclude_id=product_id))
        product = await self.load_owned(requester, product_id, *guards)

        payload = await self._prepare(changes)
        duplicate = self.duplicate_name(payload["name"]) if "name" in payload else None
        if saga is not None:
            with self.writing("update", requester, product_id, duplicate):
                return await saga.update(product_id, payload, image)
        if not payload:
            return product
        return await self.update_stored(requester, product_id, payload, duplicate)

    async def get(self, product_id: str) -> Product:
        """
        Get an active product of an active category.

        Raises:
            ValidationRejectedError: If the id is malformed for the engine
            NotFoundError: If the product or its category is missing or inactive
        """
        product = await super().get(product_id)
        if not await with_active_category(self._categories, [product]):
            raise NotFoundError(self.label, product_id)
        return product

    async def list_active(self, skip: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> list[Product]:
        """Active products whose category is active too."""
        return await with_active_category(self._categories, await super().list_active(skip, limit))

    async def search_by_name(self, prefix: str) -> list[Product]:
        return await with_active_category(self._categories, await super().search_by_name(prefix))
