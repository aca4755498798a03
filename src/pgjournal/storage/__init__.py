"""
Journal storage layer.

Provides the storage contract, the query compiler, and the PostgreSQL backend
with capability-based detection of JSONB support.
"""

from pgjournal.storage.backends import PostgresJournalStorage
from pgjournal.storage.base import DropResult, JournalStorage, StorageCapabilities
from pgjournal.storage.compiler import CompiledQuery, QueryCompiler, StandardEscaper
from pgjournal.storage.factory import (
    close_storage_backend,
    create_storage_backend,
    get_storage_backend,
)
from pgjournal.storage.version import ServerCapabilities, probe_capabilities

__all__ = [
    "CompiledQuery",
    "DropResult",
    "JournalStorage",
    "PostgresJournalStorage",
    "QueryCompiler",
    "ServerCapabilities",
    "StandardEscaper",
    "StorageCapabilities",
    "close_storage_backend",
    "create_storage_backend",
    "get_storage_backend",
    "probe_capabilities",
]
