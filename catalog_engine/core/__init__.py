"""
Core Catalog Engine components.

This module contains the CatalogEngine class, backend connection
management, the domain types and name normalization.
"""

from .connection import ConnectionManager
from .engine import CatalogEngine
from .normalization import (
    NameStyle,
    NormalizedName,
    apply_name,
    normalize_email,
    normalize_name,
    search_key_for,
)
from .types import (
    AuthResult,
    Category,
    Entity,
    IdentityProfile,
    Product,
    Requester,
    Role,
    User,
)

__all__ = [
    # Engine
    "CatalogEngine",
    "ConnectionManager",
    # Normalization
    "NameStyle",
    "NormalizedName",
    "normalize_name",
    "normalize_email",
    "search_key_for",
    "apply_name",
    # Types
    "Entity",
    "Role",
    "User",
    "Category",
    "Product",
    "Requester",
    "IdentityProfile",
    "AuthResult",
]
