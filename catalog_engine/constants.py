"""
Constants for CATALOG_ENGINE.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# BACKEND CONSTANTS
# ============================================================================

BACKEND_MEMORY: Final[str] = "memory"
BACKEND_MONGO: Final[str] = "mongo"
BACKEND_FIRESTORE: Final[str] = "firestore"
BACKEND_SQL: Final[str] = "sql"

SUPPORTED_BACKENDS: Final[tuple[str, ...]] = (
    BACKEND_MEMORY,
    BACKEND_MONGO,
    BACKEND_FIRESTORE,
    BACKEND_SQL,
)
"""Storage engines a CatalogEngine can be configured with."""

# Connection pool defaults
DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 10
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""

DEFAULT_SQL_URL: Final[str] = "sqlite+aiosqlite:///./catalog.db"
"""Default SQLAlchemy async URL for the relational backend."""

# ============================================================================
# COLLECTION CONSTANTS
# ============================================================================

USERS_COLLECTION: Final[str] = "users"
ROLES_COLLECTION: Final[str] = "roles"
CATEGORIES_COLLECTION: Final[str] = "categories"
PRODUCTS_COLLECTION: Final[str] = "products"

# ============================================================================
# LISTING CONSTANTS
# ============================================================================

DEFAULT_PAGE_SIZE: Final[int] = 100
"""Default number of records returned by listing operations."""

MAX_PAGE_SIZE: Final[int] = 1000
"""Upper bound on records returned by a single listing call."""

# ============================================================================
# ROLE CONSTANTS
# ============================================================================

ADMIN_ROLE: Final[str] = "ADMIN_ROLE"
WORKER_ROLE: Final[str] = "WORKER_ROLE"
USER_ROLE: Final[str] = "USER_ROLE"

DEFAULT_ROLES: Final[tuple[str, ...]] = (ADMIN_ROLE, WORKER_ROLE, USER_ROLE)
"""Fixed role set seeded by `catalog-engine init`."""

PRIVILEGED_ROLES: Final[frozenset[str]] = frozenset({ADMIN_ROLE, WORKER_ROLE})
"""Roles allowed to perform destructive operations."""

DEFAULT_USER_ROLE: Final[str] = USER_ROLE
"""Role assigned when a user is created without one."""

# ============================================================================
# ASSET CONSTANTS
# ============================================================================

DEFAULT_ASSET_ROOT_FOLDER: Final[str] = "catalog"
"""Top-level folder in the object store under which entity folders live."""

USERS_ASSET_FOLDER: Final[str] = "users"
PRODUCTS_ASSET_FOLDER: Final[str] = "products"

USER_AVATAR_FIELD: Final[str] = "avatar"
PRODUCT_IMAGE_FIELD: Final[str] = "img"

ALLOWED_IMAGE_EXTENSIONS: Final[tuple[str, ...]] = ("jpg", "jpeg", "png")
"""File extensions accepted for avatars and product images."""

# ============================================================================
# PRODUCT CONSTANTS
# ============================================================================

DEFAULT_PRODUCT_DESCRIPTION: Final[str] = "No description"

# ============================================================================
# AUTHENTICATION CONSTANTS
# ============================================================================

DEFAULT_BCRYPT_ROUNDS: Final[int] = 12
"""Cost factor used when hashing passwords."""
