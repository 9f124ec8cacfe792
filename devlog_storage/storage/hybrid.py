"""
Hybrid devlog storage: GitHub issues with a local SQLite cache.

The remote is the durable, shared copy; the cache serves reads. Writes go
to both stores, and reconciliation passes bring the cache back in line
with the remote after partial failures or changes made elsewhere.

Consistency model:
- get/exists read the cache first and fill it from the remote on a miss
- list/search/get_stats read the cache only
- save/delete write both stores with no rollback; a half-failed write
  raises and is repaired by the next reconciliation
- remote -> cache reconciliation compares updated_at and removes cache
  entries missing from the remote
- cache -> remote push writes every cache entry unconditionally
- at most one reconciliation runs at a time; overlapping calls return
  immediately
"""

from __future__ import annotations

import asyncio
import copy
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from ..exceptions import (
    ConfigurationError,
    DevlogStorageError,
    InvalidIdentifierError,
    SyncConflictError,
)
from ..logging_utils import StorageLoggerAdapter, get_storage_logger
from ..models import DevlogEntry, DevlogFilter, DevlogStats, parse_devlog_id, utc_now
from .base import StorageProvider
from .github import GitHubStorageProvider

logger = get_storage_logger("hybrid")

T = TypeVar("T")

_REPOSITORY_RE = re.compile(
    r"^(?:https?://[^/]+/|git@[^:]+:)?(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
)


class ConflictResolution(Enum):
    """Strategy for resolving differences between cache and remote."""

    LOCAL_WINS = "local-wins"  # Push the cache over the remote
    REMOTE_WINS = "remote-wins"  # Overwrite the cache from the remote
    TIMESTAMP_WINS = "timestamp-wins"  # Newer updated_at wins per entry
    INTERACTIVE = "interactive"  # Report conflicts to the caller


class SyncState(Enum):
    SYNCED = "synced"
    DIVERGED = "diverged"
    ERROR = "error"


@dataclass
class SyncResult:
    """Entry ids touched by one reconciliation pass."""

    upserted: list[int] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)
    pushed: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"upserted": self.upserted, "deleted": self.deleted, "pushed": self.pushed}


@dataclass
class SyncStats:
    """Coarse sync health: equal counts are reported as in sync."""

    remote_entries: int
    cache_entries: int
    last_sync: datetime | None
    needs_sync: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "remote_entries": self.remote_entries,
            "cache_entries": self.cache_entries,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "needs_sync": self.needs_sync,
        }


@dataclass
class RemoteSyncStatus:
    state: SyncState
    remote_entries: int | None = None
    cache_entries: int | None = None
    last_sync: datetime | None = None
    error: str | None = None


def _is_newer(a: DevlogEntry, b: DevlogEntry) -> bool:
    """True when ``a`` was updated strictly after ``b``."""
    if a.updated_at is None:
        return False
    return b.updated_at is None or a.updated_at > b.updated_at


def parse_repository(repository: str) -> tuple[str, str]:
    """Split ``owner/repo`` (or a GitHub URL) into owner and repo."""
    match = _REPOSITORY_RE.match(repository.strip())
    if not match:
        raise ConfigurationError(f"Invalid repository: {repository!r}", field="repository")
    return match.group("owner"), match.group("repo")


class HybridStorageProvider(StorageProvider):
    """Remote GitHub storage fronted by a local cache provider.

    Example:
        >>> storage = HybridStorageProvider(
        ...     GitHubStorageProvider(github_config),
        ...     SQLiteStorageProvider(SQLiteConfig(".devlog/cache.db")),
        ...     sync_interval=300,
        ... )
        >>> await storage.initialize()   # reconciles remote -> cache
        >>> await storage.save(DevlogEntry(title="Add export"))
        >>> await storage.get_sync_stats()
    """

    def __init__(
        self,
        remote: GitHubStorageProvider,
        cache: StorageProvider,
        *,
        sync_interval: float | None = None,
        sync_on_initialize: bool = True,
        on_sync_error: Callable[[Exception], None] | None = None,
    ) -> None:
        """Initialize hybrid storage.

        Args:
            remote: Authoritative remote provider
            cache: Local provider serving reads
            sync_interval: Seconds between background reconciliations (None = off)
            sync_on_initialize: Reconcile remote -> cache during initialize()
            on_sync_error: Callback when a background reconciliation fails
        """
        self.remote = remote
        self.cache = cache
        self.sync_interval = sync_interval
        self.sync_on_initialize = sync_on_initialize
        self.on_sync_error = on_sync_error

        self.last_sync: datetime | None = None
        self._sync_in_progress = False
        self._sync_task: asyncio.Task[None] | None = None
        self._running = False
        self._log = StorageLoggerAdapter(
            logger, {"provider": "hybrid", "repository": remote.config.full_name}
        )

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    async def initialize(self) -> None:
        """Initialize both stores, then pull the remote into the cache.

        A failed initial pull leaves the provider usable from the cache
        (offline mode); the next reconciliation retries.
        """
        await asyncio.gather(self.remote.initialize(), self.cache.initialize())

        if self.sync_on_initialize:
            try:
                await self.sync_from_remote_to_cache()
            except DevlogStorageError as e:
                self._log.warning(f"Remote not available, running from cache: {e}")

        if self.sync_interval:
            await self.start()

    async def dispose(self) -> None:
        """Stop background sync and close both stores."""
        await self.stop()
        await asyncio.gather(self.remote.dispose(), self.cache.dispose())

    def is_remote_storage(self) -> bool:
        return True

    def is_git_based(self) -> bool:
        return True

    # =========================================================================
    # Reads
    # =========================================================================

    async def exists(self, devlog_id: Any) -> bool:
        """Check the cache, then the remote; never fills the cache."""
        if await self.cache.exists(devlog_id):
            return True
        return await self.remote.exists(devlog_id)

    async def get(self, devlog_id: Any) -> DevlogEntry | None:
        """Read from the cache, falling back to the remote and filling the cache."""
        entry = await self.cache.get(devlog_id)
        if entry is not None:
            return entry

        entry = await self.remote.get(devlog_id)
        if entry is not None:
            await self.cache.save(copy.deepcopy(entry), touch=False)
        return entry

    async def list(self, devlog_filter: DevlogFilter | None = None) -> list[DevlogEntry]:
        return await self.cache.list(devlog_filter)

    async def search(self, query: str) -> list[DevlogEntry]:
        return await self.cache.search(query)

    async def get_stats(self) -> DevlogStats:
        return await self.cache.get_stats()

    async def get_next_id(self) -> int:
        return await self.remote.get_next_id()

    # =========================================================================
    # Writes
    # =========================================================================

    async def save(self, entry: DevlogEntry, *, touch: bool = True) -> None:
        """Write the entry to both stores.

        New entries go to the remote first so the cache stores them under
        the issue number. Updates are written to both stores concurrently.

        Raises:
            DevlogStorageError: If either write fails. The other write is not
                rolled back.
        """
        if touch or entry.created_at is None or entry.updated_at is None:
            entry.touch()

        if entry.id is None:
            await self.remote.save(entry, touch=False)
            try:
                await self.cache.save(copy.deepcopy(entry), touch=False)
            except Exception as e:
                self._log.warning(
                    f"Partial write: devlog {entry.id} saved to remote but not to cache: {e}"
                )
                raise
            return

        remote_copy = copy.deepcopy(entry)
        results = await asyncio.gather(
            self.remote.save(remote_copy, touch=False),
            self.cache.save(entry, touch=False),
            return_exceptions=True,
        )
        self._raise_partial_failure("save", entry.id, results)

        if remote_copy.id != entry.id:
            await self._rekey(entry, remote_copy.id)

    async def delete(self, devlog_id: Any) -> None:
        """Delete from both stores concurrently.

        Raises:
            InvalidIdentifierError: If the id is malformed
            DevlogStorageError: If either delete fails (no rollback)
        """
        number = parse_devlog_id(devlog_id)
        if number is None:
            raise InvalidIdentifierError(devlog_id, operation="delete")

        results = await asyncio.gather(
            self.remote.delete(number),
            self.cache.delete(number),
            return_exceptions=True,
        )
        self._raise_partial_failure("delete", number, results)

    def _raise_partial_failure(
        self, operation: str, devlog_id: int | None, results: list[Any]
    ) -> None:
        remote_result, cache_result = results
        failed = [
            (name, result)
            for name, result in (("remote", remote_result), ("cache", cache_result))
            if isinstance(result, BaseException)
        ]
        if not failed:
            return

        if len(failed) == 1:
            name, error = failed[0]
            self._log.warning(
                f"Partial {operation}: devlog {devlog_id} failed on {name} only "
                f"(left for the next reconciliation): {error}"
            )
        else:
            self._log.error(f"{operation} of devlog {devlog_id} failed on both stores")
        raise failed[0][1]

    async def _rekey(self, entry: DevlogEntry, new_id: int | None) -> None:
        """Move a cache entry to the id the remote assigned it."""
        old_id = entry.id
        self._log.warning(f"Remote re-created devlog {old_id} as {new_id}, re-keying cache")
        await self.cache.delete(old_id)
        entry.id = new_id
        await self.cache.save(entry, touch=False)

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def _run_exclusive(
        self, name: str, operation: Callable[[], Awaitable[T]]
    ) -> T | None:
        """Run a reconciliation unless one is already running."""
        if self._sync_in_progress:
            self._log.info(f"Sync already in progress, skipping {name}")
            return None

        self._sync_in_progress = True
        try:
            result = await operation()
            self.last_sync = utc_now()
            return result
        except Exception as e:
            self._log.error(f"{name} failed: {e}")
            raise
        finally:
            self._sync_in_progress = False

    async def sync_from_remote_to_cache(self) -> SyncResult | None:
        """Bring the cache in line with the remote.

        Remote entries missing from the cache, or newer than their cached
        copy, are written to the cache; cache entries missing from the
        remote are deleted.

        Returns:
            The ids changed, or None if another reconciliation was running
        """
        return await self._run_exclusive(
            "remote -> cache sync", lambda: self._pull(overwrite=False)
        )

    async def sync_from_cache_to_remote(self) -> SyncResult | None:
        """Write every cache entry to the remote, without comparing timestamps.

        Returns:
            The ids pushed, or None if another reconciliation was running
        """
        return await self._run_exclusive("cache -> remote sync", self._push)

    # Name used by callers written against git-backed storage
    sync_from_cache_to_git = sync_from_cache_to_remote

    async def force_sync_both_directions(self) -> SyncResult:
        """Run remote -> cache, then cache -> remote. Not atomic."""
        result = SyncResult()
        pulled = await self.sync_from_remote_to_cache()
        if pulled:
            result.upserted, result.deleted = pulled.upserted, pulled.deleted
        pushed = await self.sync_from_cache_to_remote()
        if pushed:
            result.pushed = pushed.pushed
        return result

    async def _snapshot(self) -> tuple[dict[int, DevlogEntry], dict[int, DevlogEntry]]:
        remote_entries, cache_entries = await asyncio.gather(self.remote.list(), self.cache.list())
        remote_map = {e.id: e for e in remote_entries if e.id is not None}
        cache_map = {e.id: e for e in cache_entries if e.id is not None}
        return remote_map, cache_map

    async def _pull(self, overwrite: bool) -> SyncResult:
        remote_map, cache_map = await self._snapshot()
        result = SyncResult()

        to_upsert = [
            entry
            for devlog_id, entry in remote_map.items()
            if devlog_id not in cache_map
            or _is_newer(entry, cache_map[devlog_id])
            or (overwrite and entry.to_dict() != cache_map[devlog_id].to_dict())
        ]
        to_delete = [devlog_id for devlog_id in cache_map if devlog_id not in remote_map]

        self._log.info(
            f"Syncing remote -> cache: {len(to_upsert)} to add/update, {len(to_delete)} to delete"
        )
        for entry in to_upsert:
            await self.cache.save(entry, touch=False)
            result.upserted.append(entry.id)
        for devlog_id in to_delete:
            await self.cache.delete(devlog_id)
            result.deleted.append(devlog_id)

        return result

    async def _push(self, only: set[int] | None = None) -> SyncResult:
        result = SyncResult()
        entries = await self.cache.list()
        for entry in entries:
            if only is not None and entry.id not in only:
                continue
            remote_copy = copy.deepcopy(entry)
            await self.remote.save(remote_copy, touch=False)
            if remote_copy.id != entry.id:
                await self._rekey(entry, remote_copy.id)
            result.pushed.append(entry.id)

        self._log.info(f"Synced {len(result.pushed)} entries from cache to remote")
        return result

    async def get_sync_stats(self) -> SyncStats:
        """Entry counts on both sides; ``needs_sync`` is a count comparison only."""
        remote_count, cache_stats = await asyncio.gather(
            self.remote.count(), self.cache.get_stats()
        )
        return SyncStats(
            remote_entries=remote_count,
            cache_entries=cache_stats.total_entries,
            last_sync=self.last_sync,
            needs_sync=remote_count != cache_stats.total_entries,
        )

    # =========================================================================
    # Repository operations
    # =========================================================================

    async def clone(self, repository: str, branch: str | None = None) -> SyncResult | None:
        """Switch to ``owner/repo``, prepare its labels and pull it into the cache."""
        owner, repo = parse_repository(repository)
        self.remote.retarget(owner, repo)
        if branch:
            self.remote.config.branch = branch
        self._log.extra["repository"] = self.remote.config.full_name

        await self.remote.prepare_repository()
        return await self.sync_from_remote_to_cache()

    async def pull(self) -> SyncResult | None:
        return await self.sync_from_remote_to_cache()

    async def push(self, message: str = "") -> SyncResult | None:
        if message:
            self._log.info(f"Pushing cache to remote: {message}")
        return await self.sync_from_cache_to_remote()

    async def get_remote_status(self) -> RemoteSyncStatus:
        """Compare entry counts; never raises for remote failures."""
        try:
            stats = await self.get_sync_stats()
        except DevlogStorageError as e:
            return RemoteSyncStatus(state=SyncState.ERROR, last_sync=self.last_sync, error=str(e))

        return RemoteSyncStatus(
            state=SyncState.DIVERGED if stats.needs_sync else SyncState.SYNCED,
            remote_entries=stats.remote_entries,
            cache_entries=stats.cache_entries,
            last_sync=stats.last_sync,
        )

    async def resolve_conflicts(self, strategy: ConflictResolution) -> SyncResult | None:
        """Resolve cache/remote differences with the given strategy.

        Raises:
            SyncConflictError: For INTERACTIVE when any entry differs
        """
        if strategy is ConflictResolution.LOCAL_WINS:
            return await self.sync_from_cache_to_remote()
        if strategy is ConflictResolution.REMOTE_WINS:
            return await self._run_exclusive(
                "remote-wins resolution", lambda: self._pull(overwrite=True)
            )
        if strategy is ConflictResolution.TIMESTAMP_WINS:
            return await self._run_exclusive("timestamp-wins resolution", self._resolve_by_timestamp)

        conflicts = await self.find_conflicts()
        if conflicts:
            raise SyncConflictError(conflicts)
        return SyncResult()

    async def find_conflicts(self) -> list[int]:
        """Ids present on both sides whose copies differ."""
        remote_map, cache_map = await self._snapshot()
        return sorted(
            devlog_id
            for devlog_id, entry in remote_map.items()
            if devlog_id in cache_map and entry.to_dict() != cache_map[devlog_id].to_dict()
        )

    async def _resolve_by_timestamp(self) -> SyncResult:
        remote_map, cache_map = await self._snapshot()
        result = SyncResult()

        for devlog_id, entry in remote_map.items():
            cached = cache_map.get(devlog_id)
            if cached is None or _is_newer(entry, cached):
                await self.cache.save(entry, touch=False)
                result.upserted.append(devlog_id)

        # Cache-only entries are local work the remote has not seen yet
        newer_locally = {
            devlog_id
            for devlog_id, cached in cache_map.items()
            if devlog_id not in remote_map or _is_newer(cached, remote_map[devlog_id])
        }
        if newer_locally:
            result.pushed = (await self._push(only=newer_locally)).pushed
        return result

    # =========================================================================
    # Background sync
    # =========================================================================

    async def start(self, sync_interval: float | None = None) -> None:
        """Start periodic remote -> cache reconciliation."""
        if self._running:
            return

        interval = sync_interval or self.sync_interval
        if not interval or interval <= 0:
            raise ConfigurationError("sync_interval must be positive", field="sync_interval")

        self.sync_interval = interval
        self._running = True
        self._sync_task = asyncio.create_task(self._sync_loop())

    async def stop(self) -> None:
        """Stop background sync."""
        self._running = False

        if self._sync_task:
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass
            self._sync_task = None

    async def _sync_loop(self) -> None:
        """Background sync loop. Failures are logged and reported, never raised."""
        while self._running:
            try:
                await asyncio.sleep(self.sync_interval or 0)
                await self.sync_from_remote_to_cache()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._log.warning(f"Background sync failed: {e}")
                if self.on_sync_error:
                    self.on_sync_error(e)
