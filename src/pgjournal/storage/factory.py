"""
Storage backend factory.

Provides a centralized way to create and configure the journal backend
based on application settings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pgjournal.storage.backends.postgres import PostgresJournalStorage

if TYPE_CHECKING:
    from pgjournal.config import Settings
    from pgjournal.storage.base import JournalStorage


async def create_storage_backend(settings: Settings) -> JournalStorage:
    """
    Create and initialize a storage backend based on settings.

    Args:
        settings: Journal settings

    Returns:
        Initialized storage backend

    Raises:
        ValueError: If backend type is unsupported
        VersionUnsupported: If the database server is too old
    """
    backend_type = settings.BACKEND.lower()

    if backend_type in ("postgres", "postgresql"):
        backend = PostgresJournalStorage(
            uri=settings.URI,
            drop=settings.DROP,
            connect_timeout=settings.CONNECT_TIMEOUT,
        )
    else:
        raise ValueError(
            f"Unsupported storage backend: {backend_type}. Supported backends: postgres"
        )

    await backend.initialize()

    return backend


# Global storage backend instance (singleton)
_storage_backend: JournalStorage | None = None


async def get_storage_backend(settings: Settings | None = None) -> JournalStorage:
    """
    Get or create the global storage backend instance.

    Args:
        settings: Journal settings (optional, will use get_settings() if None)

    Returns:
        Storage backend instance
    """
    global _storage_backend

    if _storage_backend is None:
        if settings is None:
            from pgjournal.config import get_settings

            settings = get_settings()

        _storage_backend = await create_storage_backend(settings)

    return _storage_backend


async def close_storage_backend() -> None:
    """Close and cleanup the global storage backend."""
    global _storage_backend

    if _storage_backend is not None:
        await _storage_backend.close()
        _storage_backend = None
