"""
Connection management for Catalog Engine.

Opens and closes the configured storage backend and builds the query
adapter of each collection for it. This module and ``repositories/`` are
the only places that touch storage drivers.
"""

import logging
import time
from typing import Any, Optional

from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from ..config import EngineConfig
from ..constants import (
    BACKEND_FIRESTORE,
    BACKEND_MEMORY,
    BACKEND_MONGO,
    BACKEND_SQL,
    DEFAULT_MAX_IDLE_TIME_MS,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from ..exceptions import InitializationError
from ..observability import get_logger as get_contextual_logger
from ..observability import record_operation
from ..repositories.base import QueryAdapter
from ..repositories.firestore import FirestoreAdapter
from ..repositories.memory import InMemoryAdapter, InMemoryStore
from ..repositories.mongo import MongoAdapter
from ..repositories.sql import ROW_CLASSES, CatalogBase, SQLAdapter, install_sqlite_functions
from .types import Entity

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class ConnectionManager:
    """
    Manages the storage backend lifecycle.

    Clients can be injected (an already built Motor client, Firestore client
    or SQLAlchemy engine); the manager then uses them instead of building
    its own from the configuration. Injected clients stay owned by the caller
    and are not closed on shutdown.
    """

    def __init__(
        self,
        config: EngineConfig,
        mongo_client: Optional[Any] = None,
        firestore_client: Optional[Any] = None,
        sql_engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.config = config

        self._owned_clients = all(c is None for c in (mongo_client, firestore_client, sql_engine))
        self._mongo_client = mongo_client
        self._mongo_db: AsyncIOMotorDatabase | None = None
        self._firestore_client = firestore_client
        self._sql_engine = sql_engine
        self._session_factory: async_sessionmaker | None = None
        self._memory_store: InMemoryStore | None = None
        self._initialized: bool = False

    @property
    def backend(self) -> str:
        return self.config.backend

    async def initialize(self) -> None:
        """
        Open the configured backend.

        Raises:
            InitializationError: If the backend cannot be reached
        """
        start_time = time.time()

        if self._initialized:
            logger.warning("ConnectionManager already initialized. Skipping re-initialization.")
            return

        contextual_logger.info(
            f"Initializing {self.backend} backend", extra={"backend": self.backend}
        )

        try:
            if self.backend == BACKEND_MONGO:
                await self._open_mongo()
            elif self.backend == BACKEND_FIRESTORE:
                self._open_firestore()
            elif self.backend == BACKEND_SQL:
                await self._open_sql()
            else:
                self._memory_store = InMemoryStore()
        except (
            ConnectionFailure,
            ServerSelectionTimeoutError,
            GoogleAuthError,
            SQLAlchemyError,
        ) as e:
            duration_ms = (time.time() - start_time) * 1000
            record_operation(
                "connection.initialize", duration_ms, success=False, backend=self.backend
            )
            contextual_logger.critical(
                f"{self.backend} backend initialization failed",
                extra={
                    "backend": self.backend,
                    "error_type": type(e).__name__,
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise InitializationError(
                f"Failed to initialize the {self.backend} backend: {e}",
                backend=self.backend,
                context={"error_type": type(e).__name__},
            ) from e

        self._initialized = True
        duration_ms = (time.time() - start_time) * 1000
        record_operation("connection.initialize", duration_ms, success=True, backend=self.backend)
        contextual_logger.info(
            f"{self.backend} backend initialized successfully",
            extra={"backend": self.backend, "duration_ms": round(duration_ms, 2)},
        )

    async def _open_mongo(self) -> None:
        if self._mongo_client is None:
            self._mongo_client = AsyncIOMotorClient(
                self.config.mongo_uri,
                serverSelectionTimeoutMS=DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
                appname="CATALOG_ENGINE",
                maxPoolSize=self.config.max_pool_size,
                minPoolSize=self.config.min_pool_size,
                maxIdleTimeMS=DEFAULT_MAX_IDLE_TIME_MS,
                retryWrites=True,
                retryReads=True,
            )
            # Verify connection
            await self._mongo_client.admin.command("ping")
        self._mongo_db = self._mongo_client[self.config.db_name]

    def _open_firestore(self) -> None:
        if self._firestore_client is None:
            self._firestore_client = firestore.AsyncClient(project=self.config.firestore_project)

    async def _open_sql(self) -> None:
        if self._sql_engine is None:
            self._sql_engine = create_async_engine(
                self.config.sql_url, echo=self.config.sql_echo, pool_pre_ping=True
            )
        install_sqlite_functions(self._sql_engine)
        self._session_factory = async_sessionmaker(self._sql_engine, expire_on_commit=False)
        async with self._sql_engine.begin() as conn:
            await conn.run_sync(CatalogBase.metadata.create_all)

    async def shutdown(self) -> None:
        """
        Close the backend and clean up resources.

        This method is idempotent - it's safe to call multiple times.
        """
        start_time = time.time()

        if not self._initialized:
            return

        contextual_logger.info(f"Shutting down {self.backend} backend...")

        if self._owned_clients:
            if self._mongo_client is not None:
                self._mongo_client.close()
            if self._firestore_client is not None:
                self._firestore_client.close()
            if self._sql_engine is not None:
                await self._sql_engine.dispose()

        self._initialized = False
        self._mongo_client = None
        self._mongo_db = None
        self._firestore_client = None
        self._sql_engine = None
        self._session_factory = None
        self._memory_store = None

        duration_ms = (time.time() - start_time) * 1000
        record_operation("connection.shutdown", duration_ms, success=True, backend=self.backend)
        contextual_logger.info(
            f"{self.backend} backend shutdown complete",
            extra={"duration_ms": round(duration_ms, 2)},
        )

    def adapter_factory(self, collection_name: str, entity_class: type[Entity]) -> QueryAdapter:
        """
        Build the query adapter of a collection for the open backend.

        Raises:
            RuntimeError: If the connection is not initialized
        """
        if not self._initialized:
            raise RuntimeError("ConnectionManager not initialized. Call initialize() first.")

        if self.backend == BACKEND_MONGO:
            return MongoAdapter(self._mongo_db[collection_name], entity_class)
        if self.backend == BACKEND_FIRESTORE:
            return FirestoreAdapter(self._firestore_client, collection_name, entity_class)
        if self.backend == BACKEND_SQL:
            return SQLAdapter(self._session_factory, ROW_CLASSES[collection_name], entity_class)
        return InMemoryAdapter(self._memory_store, collection_name, entity_class)

    @property
    def mongo_db(self) -> AsyncIOMotorDatabase:
        """
        Get the MongoDB database.

        Raises:
            RuntimeError: If the MongoDB backend is not initialized
        """
        if not self._initialized or self._mongo_db is None:
            raise RuntimeError("MongoDB backend not initialized. Call initialize() first.")
        return self._mongo_db

    @property
    def sql_engine(self) -> AsyncEngine:
        if not self._initialized or self._sql_engine is None:
            raise RuntimeError("SQL backend not initialized. Call initialize() first.")
        return self._sql_engine

    @property
    def memory_store(self) -> InMemoryStore:
        if not self._initialized or self._memory_store is None:
            raise RuntimeError(
                f"{BACKEND_MEMORY} backend not initialized. Call initialize() first."
            )
        return self._memory_store

    @property
    def initialized(self) -> bool:
        """Check if connection is initialized."""
        return self._initialized
