"""
Abstract devlog storage interface.

Defines the contract that all storage providers must implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import DevlogEntry, DevlogFilter, DevlogStats


class StorageProvider(ABC):
    """Abstract interface for devlog storage.

    All storage implementations (local JSON, SQLite, GitHub, hybrid) must
    implement this interface. Ids are positive integers; operations that
    read by id treat a malformed id as absent, while ``delete`` rejects it
    with ``InvalidIdentifierError``.

    Providers are async context managers:

        async with SQLiteStorageProvider(config) as storage:
            await storage.save(DevlogEntry(title="Add login page"))
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend. Idempotent; must run before any other call."""
        ...

    @abstractmethod
    async def exists(self, devlog_id: Any) -> bool:
        """Check whether an entry exists.

        Args:
            devlog_id: The entry id (malformed ids yield False)

        Returns:
            True if a record with this id is stored
        """
        ...

    @abstractmethod
    async def get(self, devlog_id: Any) -> DevlogEntry | None:
        """Read an entry.

        Args:
            devlog_id: The entry id (malformed ids yield None)

        Returns:
            The entry, or None when absent
        """
        ...

    @abstractmethod
    async def save(self, entry: DevlogEntry, *, touch: bool = True) -> None:
        """Insert or update an entry.

        Entries without an id are inserted and receive one; entries with an
        id are upserted. The assigned id is written back onto ``entry``.

        Args:
            entry: The entry to persist
            touch: Refresh ``updated_at`` before writing. Pass False to
                persist timestamps verbatim (used when copying between stores).

        Raises:
            DevlogStorageError: If the write fails
        """
        ...

    @abstractmethod
    async def delete(self, devlog_id: Any) -> None:
        """Delete an entry. Deleting an absent well-formed id is a no-op.

        Raises:
            InvalidIdentifierError: If the id is malformed
        """
        ...

    @abstractmethod
    async def list(self, devlog_filter: DevlogFilter | None = None) -> list[DevlogEntry]:
        """Return all entries matching the filter (all entries when None)."""
        ...

    @abstractmethod
    async def search(self, query: str) -> list[DevlogEntry]:
        """Free-text search across title, description and notes."""
        ...

    @abstractmethod
    async def get_stats(self) -> DevlogStats:
        """Aggregate counts over the currently persisted entries."""
        ...

    @abstractmethod
    async def get_next_id(self) -> int:
        """The id the provider would assign to the next inserted entry."""
        ...

    @abstractmethod
    async def dispose(self) -> None:
        """Close connections and cleanup resources."""
        ...

    def is_remote_storage(self) -> bool:
        return False

    def is_git_based(self) -> bool:
        return False

    async def __aenter__(self) -> StorageProvider:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.dispose()
