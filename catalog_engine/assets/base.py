"""
Asset store interface.

Images (user avatars, product pictures) live in an external object store.
Services never talk to the store directly: the asset-link saga calls it
through this interface so a fake store can be injected in tests.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

from ..constants import ALLOWED_IMAGE_EXTENSIONS
from ..exceptions import ValidationRejectedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredAsset:
    """Result of a successful upload."""

    url: str
    key: str


@dataclass
class AssetUpload:
    """
    An image waiting to be uploaded.

    Attributes:
        source: Local file path or raw bytes
        filename: Original file name, used to check the extension
        temporary: Whether ``source`` is a temporary file to discard after
            the upload attempt
    """

    source: Union[str, bytes]
    filename: str = ""
    temporary: bool = False

    @property
    def extension(self) -> str:
        name = self.filename or (self.source if isinstance(self.source, str) else "")
        return os.path.splitext(name)[1].lstrip(".").lower()

    def ensure_allowed_extension(self, allowed: tuple[str, ...] = ALLOWED_IMAGE_EXTENSIONS) -> None:
        """
        Raises:
            ValidationRejectedError: If the file extension is not an accepted image type
        """
        if self.extension not in allowed:
            raise ValidationRejectedError(
                f"The extension '{self.extension}' is not allowed, use one of {', '.join(allowed)}",
                field="filename",
            )

    def discard(self) -> None:
        """Remove the temporary local file, if any. Failures are only logged."""
        if not self.temporary or not isinstance(self.source, str):
            return
        try:
            os.remove(self.source)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary upload file {self.source}: {e}")


class AssetStore(ABC):
    """
    Object store holding entity images.

    ``folder`` is the entity folder ("users", "products"); implementations
    place it under their configured root folder.
    """

    @abstractmethod
    async def upload(self, source: Union[str, bytes], key: str | None, folder: str) -> StoredAsset:
        """
        Upload an image.

        Args:
            source: Local path, URL or raw bytes
            key: Stable key; an existing asset with the same key is overwritten.
                None lets the store generate one.
            folder: Entity folder

        Returns:
            StoredAsset with the public URL and the key actually used
        """

    @abstractmethod
    async def remove(self, key_or_url: str, folder: str) -> None:
        """
        Remove an asset by key or by the URL returned from ``upload``.

        An asset that is already gone counts as removed.

        Raises:
            AssetRemovalError: If the store reports that the asset was kept
        """
