"""
SQL Query Adapter

SQLAlchemy 2.0 async implementation of the QueryAdapter interface. Rows use
integer primary keys; at the adapter boundary every id (primary key and
reference column) is a decimal string so services stay engine agnostic.

Prefix search is a LIKE on the normalized ``lower_name`` column with
wildcards escaped, so it never depends on the database collation. Contains
search on other columns goes through ``lower()``; SQLite's built-in one only
folds ASCII, so ``install_sqlite_functions`` replaces it with Python's.
"""

import logging
import re
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    event,
    false,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..constants import (
    CATEGORIES_COLLECTION,
    DEFAULT_PRODUCT_DESCRIPTION,
    PRODUCTS_COLLECTION,
    ROLES_COLLECTION,
    USERS_COLLECTION,
)
from ..core.types import EntityT, utcnow
from .base import QueryAdapter

logger = logging.getLogger(__name__)

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

_INTEGER_ID_PATTERN = re.compile(r"^[1-9][0-9]*$")
_LIKE_ESCAPE = "\\"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` only ever matches literally."""
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def _unicode_lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _register_unicode_lower(dbapi_connection: Any, _connection_record: Any) -> None:
    dbapi_connection.create_function("lower", 1, _unicode_lower)


def install_sqlite_functions(engine: AsyncEngine) -> None:
    """
    Make ``lower()`` fold every script on SQLite connections opened by ``engine``.

    Must run before the engine opens its first connection; other dialects
    already lower-case Unicode and are left alone.
    """
    if engine.dialect.name != "sqlite":
        return
    if not event.contains(engine.sync_engine, "connect", _register_unicode_lower):
        event.listen(engine.sync_engine, "connect", _register_unicode_lower)


class CatalogBase(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class RoleRow(TimestampMixin, CatalogBase):
    __tablename__ = ROLES_COLLECTION

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class UserRow(TimestampMixin, CatalogBase):
    __tablename__ = USERS_COLLECTION
    __table_args__ = (
        Index(
            "uq_users_email_active",
            "email",
            unique=True,
            sqlite_where=text("state = 1"),
            postgresql_where=text("state"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    lower_name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    role_id: Mapped[int | None] = mapped_column(ForeignKey("roles.id"), nullable=True)
    online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    google: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    state: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)


class CategoryRow(TimestampMixin, CatalogBase):
    __tablename__ = CATEGORIES_COLLECTION
    __table_args__ = (
        Index(
            "uq_categories_lower_name_active",
            "lower_name",
            unique=True,
            sqlite_where=text("state = 1"),
            postgresql_where=text("state"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    lower_name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    state: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)


class ProductRow(TimestampMixin, CatalogBase):
    __tablename__ = PRODUCTS_COLLECTION
    __table_args__ = (
        Index(
            "uq_products_lower_name_active",
            "lower_name",
            unique=True,
            sqlite_where=text("state = 1"),
            postgresql_where=text("state"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    lower_name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    description: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_PRODUCT_DESCRIPTION
    )
    available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    img: Mapped[str | None] = mapped_column(String(500), nullable=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True)
    state: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)


ROW_CLASSES: dict[str, type[CatalogBase]] = {
    ROLES_COLLECTION: RoleRow,
    USERS_COLLECTION: UserRow,
    CATEGORIES_COLLECTION: CategoryRow,
    PRODUCTS_COLLECTION: ProductRow,
}


class SQLAdapter(QueryAdapter[EntityT]):
    """
    SQLAlchemy implementation of the QueryAdapter interface.

    Each call opens its own session from the factory and commits before
    returning; there is no transaction spanning several adapter calls.

    Example:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        categories = SQLAdapter(factory, CategoryRow, Category)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        row_class: type[CatalogBase],
        entity_class: type[EntityT],
    ):
        super().__init__(entity_class)
        self._session_factory = session_factory
        self._row_class = row_class
        self._columns = {column.key for column in row_class.__table__.columns}

    def is_valid_id(self, value: Any) -> bool:
        return isinstance(value, str) and bool(_INTEGER_ID_PATTERN.match(value))

    def is_duplicate_key(self, error: BaseException | None) -> bool:
        # Only the partial unique indexes can fail a write the services validated
        return isinstance(error, IntegrityError)

    def _column(self, name: str) -> Any:
        return getattr(self._row_class, name)

    def _condition(self, key: str, value: Any) -> Any:
        column = self._column(key)
        if key in self._entity_class.ID_FIELDS:
            if value is None:
                return column.is_(None)
            if not self.is_valid_id(value):
                return false()
            return column == int(value)
        return column == value

    def _where(
        self, filters: dict[str, Any] | None = None, include_inactive: bool = False
    ) -> list[Any]:
        state = {} if include_inactive else self._active_filter()
        merged = {**(filters or {}), **state}
        return [self._condition(key, value) for key, value in merged.items()]

    def _to_row_values(self, data: dict[str, Any]) -> dict[str, Any]:
        values = {}
        for key, value in data.items():
            if key not in self._columns or key == "id":
                continue
            if key in self._entity_class.ID_FIELDS and value is not None:
                value = int(value)
            values[key] = value
        return values

    def _row_to_entity(self, row: Any) -> EntityT:
        data = {key: getattr(row, key) for key in self._columns}
        data["id"] = str(data["id"])
        for key in self._entity_class.ID_FIELDS:
            if data.get(key) is not None:
                data[key] = str(data[key])
        return self._to_entity(data)

    async def _select(self, *conditions: Any, skip: int = 0, limit: int = 0) -> list[EntityT]:
        statement = select(self._row_class).where(*conditions).order_by(self._row_class.id)
        if skip > 0:
            statement = statement.offset(skip)
        if limit > 0:
            statement = statement.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._row_to_entity(row) for row in result.scalars().all()]

    async def find_by_id(self, entity_id: str) -> EntityT | None:
        if not self.is_valid_id(entity_id):
            return None
        async with self._session_factory() as session:
            row = await session.get(self._row_class, int(entity_id))
            return self._row_to_entity(row) if row is not None else None

    async def find_exact(
        self, fields: dict[str, Any], include_inactive: bool = False
    ) -> list[EntityT]:
        return await self._select(*self._where(fields, include_inactive))

    async def find_prefix(self, field: str, value: str) -> list[EntityT]:
        column = self._column(self.search_key(field))
        pattern = escape_like(value.lower()) + "%"
        return await self._select(column.like(pattern, escape=_LIKE_ESCAPE), *self._where())

    async def find_contains(self, fields: list[str], value: str) -> list[EntityT]:
        pattern = "%" + escape_like(value.lower()) + "%"
        clauses = []
        for field in fields:
            key = self._entity_class.SEARCH_KEYS.get(field)
            # Search keys are already lower-cased; other columns go through lower()
            column = self._column(key) if key else func.lower(self._column(field))
            clauses.append(column.like(pattern, escape=_LIKE_ESCAPE))
        return await self._select(or_(*clauses), *self._where())

    async def exists(self, fields: dict[str, Any], exclude_id: str | None = None) -> bool:
        conditions = self._where(fields)
        if exclude_id is not None and self.is_valid_id(exclude_id):
            conditions.append(self._row_class.id != int(exclude_id))
        statement = select(self._row_class.id).where(*conditions).limit(1)
        async with self._session_factory() as session:
            return (await session.scalar(statement)) is not None

    async def list_active(
        self,
        filters: dict[str, Any] | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[EntityT]:
        return await self._select(*self._where(filters), skip=skip, limit=limit)

    async def count_active(self, filters: dict[str, Any] | None = None) -> int:
        statement = select(func.count()).select_from(self._row_class).where(*self._where(filters))
        async with self._session_factory() as session:
            return await session.scalar(statement) or 0

    async def create(self, entity: EntityT) -> EntityT:
        entity.created_at = entity.updated_at = utcnow()
        async with self._session_factory() as session:
            row = self._row_class(**self._to_row_values(entity.to_dict()))
            session.add(row)
            await session.flush()
            entity.id = str(row.id)
            await session.commit()

        logger.debug(f"Added {self._entity_class.__name__} with id={entity.id}")
        return entity

    async def update_fields(self, entity_id: str, fields: dict[str, Any]) -> EntityT | None:
        if not self.is_valid_id(entity_id):
            return None
        async with self._session_factory() as session:
            row = await session.get(self._row_class, int(entity_id))
            if row is None:
                return None
            for key, value in self._to_row_values(fields).items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            await session.flush()
            entity = self._row_to_entity(row)
            await session.commit()
            return entity

    async def delete(self, entity_id: str) -> bool:
        if not self.is_valid_id(entity_id):
            return False
        async with self._session_factory() as session:
            row = await session.get(self._row_class, int(entity_id))
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True
