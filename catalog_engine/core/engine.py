"""
Engine

The entry point of Catalog Engine. It owns:
- the storage connection for the configured backend
- the UnitOfWork handing adapters to the services
- the injected asset store and token issuer
- the services (categories, products, users, roles, auth, search)
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..config import EngineConfig
from ..constants import (
    BACKEND_MONGO,
    CATEGORIES_COLLECTION,
    DEFAULT_BCRYPT_ROUNDS,
    PRODUCTS_COLLECTION,
    ROLES_COLLECTION,
    USERS_COLLECTION,
)
from ..exceptions import ConfigurationError
from ..observability import get_logger as get_contextual_logger
from ..observability import get_metrics_collector
from ..repositories.unit_of_work import UnitOfWork
from ..services.auth import AuthService, TokenIssuer
from ..services.authorization import AuthorizationGate
from ..services.categories import CategoryService
from ..services.products import ProductService
from ..services.roles import RoleService
from ..services.search import SearchFacade
from ..services.users import UserService
from .connection import ConnectionManager

if TYPE_CHECKING:
    from ..assets.base import AssetStore

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)

# Fields that must be unique among active records, per collection
UNIQUE_FIELDS: dict[str, tuple[str, ...]] = {
    USERS_COLLECTION: ("email",),
    ROLES_COLLECTION: ("name",),
    CATEGORIES_COLLECTION: ("lower_name",),
    PRODUCTS_COLLECTION: ("lower_name",),
}


class CatalogEngine:
    """
    The catalog engine.

    Usage:
        async with CatalogEngine(EngineConfig(backend="sql"), asset_store=store) as engine:
            category = await engine.categories.create(requester, "  home   appliances")
            results = await engine.search.search("categories", "appl")
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        asset_store: Optional["AssetStore"] = None,
        token_issuer: Optional[TokenIssuer] = None,
        password_rounds: int = DEFAULT_BCRYPT_ROUNDS,
        **clients: Any,
    ) -> None:
        """
        Initialize the Catalog Engine.

        Args:
            config: Engine configuration (defaults to environment variables)
            asset_store: Store for user avatars and product images (optional;
                writes carrying an image are rejected without one)
            token_issuer: Issues tokens for authentication results (optional;
                required by ``engine.auth``)
            password_rounds: bcrypt cost factor
            **clients: Pre-built driver clients passed to the ConnectionManager
                (``mongo_client``, ``firestore_client``, ``sql_engine``)
        """
        self.config = config or EngineConfig()
        self.asset_store = asset_store
        self.token_issuer = token_issuer
        self.password_rounds = password_rounds

        self._connection_manager = ConnectionManager(self.config, **clients)
        self._uow: Optional[UnitOfWork] = None
        self._services: dict[str, Any] = {}

    async def initialize(self) -> None:
        """
        Validate the configuration, open the backend and build the services.

        Raises:
            ConfigurationError: If the configuration is invalid
            InitializationError: If the backend cannot be opened
        """
        self.config.validate()
        await self._connection_manager.initialize()

        self._uow = UnitOfWork(self._connection_manager.adapter_factory)
        gate = AuthorizationGate(self._uow.users, self._uow.roles)
        users = UserService(self._uow, gate, self.asset_store, self.password_rounds)
        self._services = {
            "gate": gate,
            "users": users,
            "roles": RoleService(self._uow.roles),
            "categories": CategoryService(self._uow, gate),
            "products": ProductService(self._uow, gate, self.asset_store),
            "search": SearchFacade(self._uow),
        }
        if self.token_issuer is not None:
            self._services["auth"] = AuthService(users, self.token_issuer)

        contextual_logger.info(
            "Catalog engine ready",
            extra={"backend": self.config.backend, "assets": self.asset_store is not None},
        )

    def _service(self, name: str) -> Any:
        if self._uow is None:
            raise RuntimeError("CatalogEngine not initialized. Call initialize() first.")
        return self._services[name]

    @property
    def initialized(self) -> bool:
        return self._uow is not None

    @property
    def connection(self) -> ConnectionManager:
        return self._connection_manager

    @property
    def uow(self) -> UnitOfWork:
        if self._uow is None:
            raise RuntimeError("CatalogEngine not initialized. Call initialize() first.")
        return self._uow

    @property
    def gate(self) -> AuthorizationGate:
        return self._service("gate")

    @property
    def users(self) -> UserService:
        return self._service("users")

    @property
    def roles(self) -> RoleService:
        return self._service("roles")

    @property
    def categories(self) -> CategoryService:
        return self._service("categories")

    @property
    def products(self) -> ProductService:
        return self._service("products")

    @property
    def search(self) -> SearchFacade:
        return self._service("search")

    @property
    def auth(self) -> AuthService:
        """
        Raises:
            ConfigurationError: If no token issuer was given
        """
        if self._uow is not None and "auth" not in self._services:
            raise ConfigurationError(
                "Authentication needs a token issuer (pass token_issuer to CatalogEngine)",
                config_key="token_issuer",
            )
        return self._service("auth")

    async def ensure_indexes(self) -> dict[str, list[str]]:
        """
        Create the indexes the queries rely on.

        Only MongoDB needs this step: SQL tables and their indexes are created
        on initialize, Firestore single-field indexes are automatic and the
        memory store has none.

        Returns:
            Created index names per collection
        """
        if self.config.backend != BACKEND_MONGO:
            logger.debug(f"No index management needed for the {self.config.backend} backend")
            return {}

        created = {}
        for name, unique_fields in UNIQUE_FIELDS.items():
            created[name] = await self.uow.adapter(name).ensure_indexes(unique_fields)
        return created

    async def seed_roles(self) -> list[str]:
        """Create the default roles that are missing; returns their names."""
        return [role.name for role in await self.roles.seed_defaults()]

    def get_metrics(self) -> dict[str, Any]:
        """Operation metrics recorded so far (saga steps, connection lifecycle)."""
        return get_metrics_collector().get_metrics()

    async def shutdown(self) -> None:
        """
        Shutdown the engine and close the backend.

        This method is idempotent - it's safe to call multiple times.
        """
        if self._uow is not None:
            self._uow.dispose()
        self._uow = None
        self._services = {}
        await self._connection_manager.shutdown()

    async def __aenter__(self) -> "CatalogEngine":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()
