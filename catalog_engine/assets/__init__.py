"""
Asset stores for entity images.

The Cloudinary implementation lives in ``cloudinary_store`` and is
constructed explicitly by the caller.
"""

from .base import AssetStore, AssetUpload, StoredAsset

__all__ = ["AssetStore", "AssetUpload", "StoredAsset"]
