"""Image storage factory.

``IMAGE_STORAGE`` selects the adapter: ``memory`` (default) or ``local``,
which writes under ``IMAGE_STORAGE_ROOT``.
"""

import os

from ordering.storage.port import ImageStorage

_storage_instance: ImageStorage | None = None


def get_image_storage() -> ImageStorage:
    """Return the configured image storage adapter (singleton)."""
    global _storage_instance
    if _storage_instance is None:
        adapter = os.environ.get("IMAGE_STORAGE", "memory")
        if adapter == "memory":
            from ordering.storage.fake_adapter import InMemoryImageStorage

            _storage_instance = InMemoryImageStorage()
        elif adapter == "local":
            from ordering.storage.local_adapter import LocalImageStorage

            _storage_instance = LocalImageStorage(os.environ.get("IMAGE_STORAGE_ROOT", "uploads"))
        else:
            raise ValueError(f"Unknown image storage adapter: {adapter}")
    return _storage_instance


def set_image_storage(storage: ImageStorage) -> None:
    global _storage_instance
    _storage_instance = storage


def reset_image_storage() -> None:
    """Reset the storage singleton (useful for testing)."""
    global _storage_instance
    _storage_instance = None
