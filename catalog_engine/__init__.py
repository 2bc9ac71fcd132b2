"""
CATALOG_ENGINE - Catalog Engine

Persistence and search core for a small catalog (users, roles, categories,
products) that gives MongoDB, Cloud Firestore, SQL and an in-memory store
one identical contract.
"""

from .assets import AssetStore, AssetUpload, StoredAsset
from .config import EngineConfig
from .core import CatalogEngine, Category, Product, Requester, Role, User
from .exceptions import (
    CatalogEngineError,
    CompensationFailedError,
    DuplicateNameError,
    NotFoundError,
    PersistenceFailedError,
    UnauthorizedError,
    UploadFailedError,
    ValidationRejectedError,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "CatalogEngine",
    "EngineConfig",
    # Types
    "Category",
    "Product",
    "Requester",
    "Role",
    "User",
    # Assets
    "AssetStore",
    "AssetUpload",
    "StoredAsset",
    # Errors
    "CatalogEngineError",
    "NotFoundError",
    "DuplicateNameError",
    "UnauthorizedError",
    "ValidationRejectedError",
    "UploadFailedError",
    "PersistenceFailedError",
    "CompensationFailedError",
]
