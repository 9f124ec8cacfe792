"""Storage providers for devlog entries."""

from .base import StorageProvider
from .factory import StorageProviderFactory, create_storage_provider
from .github import GitHubStorageProvider
from .hybrid import (
    ConflictResolution,
    HybridStorageProvider,
    RemoteSyncStatus,
    SyncResult,
    SyncState,
    SyncStats,
)
from .local import LocalJsonStorageProvider
from .sqlite import SQLiteStorageProvider

__all__ = [
    "ConflictResolution",
    "GitHubStorageProvider",
    "HybridStorageProvider",
    "LocalJsonStorageProvider",
    "RemoteSyncStatus",
    "SQLiteStorageProvider",
    "StorageProvider",
    "StorageProviderFactory",
    "SyncResult",
    "SyncState",
    "SyncStats",
    "create_storage_provider",
]
