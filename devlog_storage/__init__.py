"""
Devlog Storage

Storage layer for devlog entries (task, feature and bug journals with
notes, context and AI-agent metadata).

Provides:
- One async provider interface over several backends (JSON files, SQLite, GitHub issues)
- Hybrid GitHub + SQLite storage with bidirectional reconciliation
- Rate limiting with exponential backoff for the GitHub API
- Lossless mapping between devlog entries and GitHub issues

Usage:

    >>> from devlog_storage import DevlogEntry, StorageConfig, create_storage_provider
    >>> config = StorageConfig.from_dict({
    ...     "strategy": "hybrid-github",
    ...     "github": {"owner": "acme", "repo": "app", "token": token},
    ...     "sqlite": {"file_path": ".devlog/cache.db"},
    ... })
    >>> storage = await create_storage_provider(config)
    >>> entry = DevlogEntry(title="Add export to CSV")
    >>> await storage.save(entry)
    >>> await storage.get(entry.id)

Backend Selection:

    # Local JSON files
    {"strategy": "local-json", "json": {"directory": ".devlog"}}

    # SQLite
    {"strategy": "local-sqlite", "sqlite": {"file_path": ".devlog/devlog.db"}}

    # GitHub issues
    {"strategy": "github", "github": {...}}

    # GitHub issues with a local SQLite cache
    {"strategy": "hybrid-github", "github": {...}, "sqlite": {...}}
"""

from .config import (
    GitHubStorageConfig,
    JsonStorageConfig,
    RateLimitConfig,
    RemoteCacheConfig,
    SQLiteConfig,
    StorageConfig,
    StorageStrategy,
)
from .exceptions import (
    ConfigurationError,
    DevlogNotFoundError,
    DevlogStorageError,
    InvalidIdentifierError,
    RateLimitExceededError,
    RemoteAPIError,
    RemoteUnavailableError,
    StorageConnectionError,
    StorageIOError,
    SyncConflictError,
)
from .logging_utils import StructuredJsonFormatter, configure_structured_logging
from .models import (
    AIContext,
    Decision,
    Dependency,
    DevlogContext,
    DevlogEntry,
    DevlogFilter,
    DevlogNote,
    DevlogPriority,
    DevlogStats,
    DevlogStatus,
    DevlogType,
    ExternalReference,
    NoteCategory,
    Risk,
)
from .storage import (
    ConflictResolution,
    GitHubStorageProvider,
    HybridStorageProvider,
    LocalJsonStorageProvider,
    RemoteSyncStatus,
    SQLiteStorageProvider,
    StorageProvider,
    StorageProviderFactory,
    SyncResult,
    SyncState,
    SyncStats,
    create_storage_provider,
)

__version__ = "0.1.0"

__all__ = [
    # Models
    "AIContext",
    "Decision",
    "Dependency",
    "DevlogContext",
    "DevlogEntry",
    "DevlogFilter",
    "DevlogNote",
    "DevlogPriority",
    "DevlogStats",
    "DevlogStatus",
    "DevlogType",
    "ExternalReference",
    "NoteCategory",
    "Risk",
    # Config
    "GitHubStorageConfig",
    "JsonStorageConfig",
    "RateLimitConfig",
    "RemoteCacheConfig",
    "SQLiteConfig",
    "StorageConfig",
    "StorageStrategy",
    # Providers
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
    # Logging
    "StructuredJsonFormatter",
    "configure_structured_logging",
    # Exceptions
    "ConfigurationError",
    "DevlogNotFoundError",
    "DevlogStorageError",
    "InvalidIdentifierError",
    "RateLimitExceededError",
    "RemoteAPIError",
    "RemoteUnavailableError",
    "StorageConnectionError",
    "StorageIOError",
    "SyncConflictError",
]
