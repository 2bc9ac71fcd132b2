"""
Configuration management for CATALOG_ENGINE.

Values come from explicit constructor arguments first and from environment
variables second, so a CatalogEngine can be configured either way.
"""

import os

from .constants import (
    BACKEND_MEMORY,
    BACKEND_MONGO,
    BACKEND_SQL,
    DEFAULT_ASSET_ROOT_FOLDER,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SQL_URL,
    SUPPORTED_BACKENDS,
)
from .exceptions import ConfigurationError


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class EngineConfig:
    """
    Catalog Engine configuration.

    Example:
        # Using environment variables
        config = EngineConfig()
        engine = CatalogEngine(config)

        # Or using direct parameters
        config = EngineConfig(backend="mongo", mongo_uri="mongodb://localhost:27017",
                              db_name="catalog")
    """

    def __init__(
        self,
        backend: str | None = None,
        mongo_uri: str | None = None,
        db_name: str | None = None,
        max_pool_size: int | None = None,
        min_pool_size: int | None = None,
        firestore_project: str | None = None,
        sql_url: str | None = None,
        sql_echo: bool | None = None,
        cloudinary_cloud: str | None = None,
        cloudinary_api_key: str | None = None,
        cloudinary_secret: str | None = None,
        asset_root_folder: str | None = None,
    ):
        """
        Initialize configuration.

        Args:
            backend: Storage engine (memory, mongo, firestore, sql; defaults to
                CATALOG_BACKEND env var or "memory")
            mongo_uri: MongoDB connection URI (defaults to MONGO_URI env var)
            db_name: MongoDB database name (defaults to DB_NAME env var)
            max_pool_size: Maximum MongoDB pool size (defaults to MONGO_MAX_POOL_SIZE or 50)
            min_pool_size: Minimum MongoDB pool size (defaults to MONGO_MIN_POOL_SIZE or 10)
            firestore_project: Google Cloud project (defaults to FIRESTORE_PROJECT env var)
            sql_url: SQLAlchemy async URL (defaults to SQL_DATABASE_URL env var)
            sql_echo: Log emitted SQL (defaults to SQL_ECHO env var)
            cloudinary_cloud: Cloudinary cloud name (defaults to CLOUDINARY_CLOUD)
            cloudinary_api_key: Cloudinary API key (defaults to CLOUDINARY_API_KEY)
            cloudinary_secret: Cloudinary API secret (defaults to CLOUDINARY_SECRET_KEY)
            asset_root_folder: Root folder in the object store (defaults to ASSET_ROOT_FOLDER)
        """
        self.backend = (backend or os.getenv("CATALOG_BACKEND", BACKEND_MEMORY)).lower()
        self.mongo_uri = mongo_uri or os.getenv("MONGO_URI", "")
        self.db_name = db_name or os.getenv("DB_NAME", "")
        self.max_pool_size = max_pool_size or int(
            os.getenv("MONGO_MAX_POOL_SIZE", str(DEFAULT_MAX_POOL_SIZE))
        )
        self.min_pool_size = min_pool_size or int(
            os.getenv("MONGO_MIN_POOL_SIZE", str(DEFAULT_MIN_POOL_SIZE))
        )
        self.firestore_project = firestore_project or os.getenv("FIRESTORE_PROJECT") or None
        self.sql_url = sql_url or os.getenv("SQL_DATABASE_URL", DEFAULT_SQL_URL)
        self.sql_echo = sql_echo if sql_echo is not None else _env_bool("SQL_ECHO")
        self.cloudinary_cloud = cloudinary_cloud or os.getenv("CLOUDINARY_CLOUD", "")
        self.cloudinary_api_key = cloudinary_api_key or os.getenv("CLOUDINARY_API_KEY", "")
        self.cloudinary_secret = cloudinary_secret or os.getenv("CLOUDINARY_SECRET_KEY", "")
        self.asset_root_folder = asset_root_folder or os.getenv(
            "ASSET_ROOT_FOLDER", DEFAULT_ASSET_ROOT_FOLDER
        )

    @property
    def cloudinary_configured(self) -> bool:
        """True when every Cloudinary credential is present."""
        return bool(self.cloudinary_cloud and self.cloudinary_api_key and self.cloudinary_secret)

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If required configuration is missing or invalid
        """
        if self.backend not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Unsupported backend '{self.backend}', expected one of {SUPPORTED_BACKENDS}",
                config_key="backend",
                config_value=self.backend,
            )

        if self.backend == BACKEND_MONGO:
            if not self.mongo_uri:
                raise ConfigurationError(
                    "mongo_uri is required (set MONGO_URI environment variable or pass directly)",
                    config_key="mongo_uri",
                )
            if not self.db_name:
                raise ConfigurationError(
                    "db_name is required (set DB_NAME environment variable or pass directly)",
                    config_key="db_name",
                )
            if self.max_pool_size < 1:
                raise ConfigurationError(
                    f"max_pool_size must be >= 1, got {self.max_pool_size}",
                    config_key="max_pool_size",
                    config_value=self.max_pool_size,
                )
            if self.min_pool_size < 1:
                raise ConfigurationError(
                    f"min_pool_size must be >= 1, got {self.min_pool_size}",
                    config_key="min_pool_size",
                    config_value=self.min_pool_size,
                )
            if self.min_pool_size > self.max_pool_size:
                raise ConfigurationError(
                    f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                    f"max_pool_size ({self.max_pool_size})",
                    config_key="min_pool_size",
                    config_value=self.min_pool_size,
                )

        if self.backend == BACKEND_SQL and "+" not in self.sql_url.split("://", 1)[0]:
            raise ConfigurationError(
                "sql_url must name an async driver, e.g. sqlite+aiosqlite:///catalog.db",
                config_key="sql_url",
                config_value=self.sql_url,
            )
