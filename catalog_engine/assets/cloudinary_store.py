"""
Cloudinary asset store.

The Cloudinary SDK is synchronous; every call runs in a worker thread so it
never blocks the event loop.
"""

import asyncio
import logging
from typing import Any, Union

import cloudinary
import cloudinary.uploader

from ..config import EngineConfig
from ..constants import DEFAULT_ASSET_ROOT_FOLDER
from ..exceptions import AssetRemovalError, ConfigurationError
from .base import AssetStore, StoredAsset

logger = logging.getLogger(__name__)

# Outcomes of destroy() that leave no asset behind
_REMOVED_RESULTS = frozenset({"ok", "not found"})


def public_id_from_url(url: str) -> str:
    """Last path segment of an asset URL without its extension."""
    return url.rstrip("/").split("/")[-1].split(".")[0]


class CloudinaryAssetStore(AssetStore):
    """
    AssetStore backed by Cloudinary.

    Assets are uploaded to ``<root_folder>/<folder>``. Passing the entity id as
    the key makes later uploads for the same entity overwrite the previous
    image instead of leaving an orphan behind.

    Example:
        store = CloudinaryAssetStore.from_config(EngineConfig())
        asset = await store.upload("/tmp/avatar.png", key=user.id, folder="users")
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        root_folder: str = DEFAULT_ASSET_ROOT_FOLDER,
    ):
        self._root_folder = root_folder.strip("/")
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )

    @classmethod
    def from_config(cls, config: EngineConfig) -> "CloudinaryAssetStore":
        """
        Build the store from an EngineConfig.

        Raises:
            ConfigurationError: If a Cloudinary credential is missing
        """
        if not config.cloudinary_configured:
            raise ConfigurationError(
                "Cloudinary credentials are incomplete (set CLOUDINARY_CLOUD, "
                "CLOUDINARY_API_KEY and CLOUDINARY_SECRET_KEY)",
                config_key="cloudinary",
            )
        return cls(
            cloud_name=config.cloudinary_cloud,
            api_key=config.cloudinary_api_key,
            api_secret=config.cloudinary_secret,
            root_folder=config.asset_root_folder,
        )

    def _folder(self, folder: str) -> str:
        return f"{self._root_folder}/{folder}" if folder else self._root_folder

    async def upload(self, source: Union[str, bytes], key: str | None, folder: str) -> StoredAsset:
        options: dict[str, Any] = {"folder": self._folder(folder), "overwrite": bool(key)}
        if key:
            options["public_id"] = key

        result = await asyncio.to_thread(cloudinary.uploader.upload, source, **options)

        logger.debug(f"Uploaded asset {result.get('public_id')} to {options['folder']}")
        return StoredAsset(url=result["secure_url"], key=result["public_id"])

    async def remove(self, key_or_url: str, folder: str) -> None:
        public_id = f"{self._folder(folder)}/{public_id_from_url(key_or_url)}"
        result = await asyncio.to_thread(cloudinary.uploader.destroy, public_id)
        outcome = result.get("result")
        if outcome not in _REMOVED_RESULTS:
            raise AssetRemovalError(public_id, outcome)
        logger.debug(f"Removed asset {public_id}: {outcome}")
