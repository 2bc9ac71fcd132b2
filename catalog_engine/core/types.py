"""
Domain entities and request-level value types.

Entities are plain dataclasses. References between them are explicit id
fields (``owner_id``, ``category_id``, ``role_id``); nothing stores a
back-reference, related records are always resolved by query.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, TypeVar

from ..constants import DEFAULT_PRODUCT_DESCRIPTION
from .normalization import NameStyle


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive timestamps read back from storage as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass
class Entity:
    """
    Base class for persisted entities.

    Class attributes:
        ENTITY_LABEL: Human readable label used in errors and logs
        NAME_STYLE: Casing rule applied to ``name`` (None when the entity has no name)
        SEARCH_KEYS: Maps a searchable field to the lower-cased field that backs it
        ID_FIELDS: Fields holding ids of other entities
        TIMESTAMP_FIELDS: Datetime fields read back as UTC-aware values
    """

    ENTITY_LABEL: ClassVar[str] = "entity"
    NAME_STYLE: ClassVar[NameStyle | None] = None
    SEARCH_KEYS: ClassVar[dict[str, str]] = {}
    ID_FIELDS: ClassVar[tuple[str, ...]] = ()
    TIMESTAMP_FIELDS: ClassVar[tuple[str, ...]] = ("created_at", "updated_at")

    id: str | None = None
    created_at: datetime | None = field(default=None)
    updated_at: datetime | None = field(default=None)

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in dataclasses.fields(cls)}

    def to_dict(self, include_id: bool = False) -> dict[str, Any]:
        """Convert entity to a storage dictionary, skipping unset values."""
        data = {}
        for key in self.field_names():
            value = getattr(self, key)
            if value is None or (key == "id" and not include_id):
                continue
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entity":
        """Create entity from a storage dictionary, ignoring unknown keys."""
        names = cls.field_names()
        values = {k: v for k, v in data.items() if k in names}
        # SQLite and pymongo without tz_aware hand back naive UTC datetimes
        for key in cls.TIMESTAMP_FIELDS:
            if isinstance(values.get(key), datetime):
                values[key] = ensure_aware(values[key])
        return cls(**values)

    @property
    def is_active(self) -> bool:
        return getattr(self, "state", True) is True


@dataclass
class Role(Entity):
    ENTITY_LABEL: ClassVar[str] = "role"
    NAME_STYLE: ClassVar[NameStyle | None] = NameStyle.UPPER

    name: str = ""


@dataclass
class User(Entity):
    ENTITY_LABEL: ClassVar[str] = "user"
    NAME_STYLE: ClassVar[NameStyle | None] = NameStyle.TITLE
    SEARCH_KEYS: ClassVar[dict[str, str]] = {"name": "lower_name", "email": "email"}
    ID_FIELDS: ClassVar[tuple[str, ...]] = ("role_id",)

    name: str = ""
    lower_name: str = ""
    email: str = ""
    password_hash: str = ""
    avatar: str | None = None
    role_id: str | None = None
    online: bool = False
    google: bool = False
    state: bool = True

    def public_dict(self) -> dict[str, Any]:
        """Storage dictionary without the password hash, for outward responses."""
        data = self.to_dict(include_id=True)
        data.pop("password_hash", None)
        return data


@dataclass
class Category(Entity):
    ENTITY_LABEL: ClassVar[str] = "category"
    NAME_STYLE: ClassVar[NameStyle | None] = NameStyle.SENTENCE
    SEARCH_KEYS: ClassVar[dict[str, str]] = {"name": "lower_name"}
    ID_FIELDS: ClassVar[tuple[str, ...]] = ("owner_id",)

    name: str = ""
    lower_name: str = ""
    owner_id: str | None = None
    state: bool = True


@dataclass
class Product(Entity):
    ENTITY_LABEL: ClassVar[str] = "product"
    NAME_STYLE: ClassVar[NameStyle | None] = NameStyle.SENTENCE
    SEARCH_KEYS: ClassVar[dict[str, str]] = {"name": "lower_name"}
    ID_FIELDS: ClassVar[tuple[str, ...]] = ("owner_id", "category_id")

    name: str = ""
    lower_name: str = ""
    price: float = 0.0
    description: str = DEFAULT_PRODUCT_DESCRIPTION
    available: bool = True
    img: str | None = None
    owner_id: str | None = None
    category_id: str | None = None
    state: bool = True


EntityT = TypeVar("EntityT", bound=Entity)


@dataclass(frozen=True)
class Requester:
    """Authenticated identity acting on the catalog."""

    id: str
    role_id: str | None = None


@dataclass(frozen=True)
class IdentityProfile:
    """Profile returned by an external identity provider after token verification."""

    email: str
    name: str
    picture: str | None = None


@dataclass
class AuthResult:
    user: User
    token: str
