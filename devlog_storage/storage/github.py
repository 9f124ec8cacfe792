"""
GitHub Issues storage provider.

Uses a repository's issues as the primary store: one issue per devlog
entry, the issue number as the entry id. Every request goes through the
client's rate limiter. GitHub does not allow deleting issues, so deletion
closes the issue and swaps its labels for a tombstone label.
"""

from __future__ import annotations

import copy
import logging
import time
from typing import Any

from ..cache import TTLCache
from ..config import GitHubStorageConfig
from ..exceptions import (
    ConfigurationError,
    DevlogNotFoundError,
    InvalidIdentifierError,
    RemoteAPIError,
    RemoteUnavailableError,
)
from ..github.client import GitHubAPIClient, GitHubIssue
from ..github.labels import GitHubLabelManager, deleted_label, marker_label
from ..github.mapper import DevlogGitHubMapper
from ..github.query import build_search_query, build_text_query
from ..models import DevlogEntry, DevlogFilter, DevlogStats, compute_stats, parse_devlog_id
from .base import StorageProvider

logger = logging.getLogger(__name__)


class GitHubStorageProvider(StorageProvider):
    """Devlog storage backed by GitHub issues.

    ``initialize()`` performs no network call. Call ``prepare_repository()``
    once per repository to verify access and create the devlog labels.

    Example:
        >>> async with GitHubStorageProvider(config) as storage:
        ...     await storage.prepare_repository()
        ...     entry = DevlogEntry(title="Fix login redirect", type=DevlogType.BUGFIX)
        ...     await storage.save(entry)
        ...     entry.id  # issue number
        128
    """

    def __init__(
        self,
        config: GitHubStorageConfig,
        client: GitHubAPIClient | None = None,
        mapper: DevlogGitHubMapper | None = None,
    ) -> None:
        self.config = config
        self.client = client or GitHubAPIClient(config)
        self.mapper = mapper or DevlogGitHubMapper(config.labels_prefix)
        self.label_manager = GitHubLabelManager(self.client, config.labels_prefix)
        self._cache: TTLCache[int, DevlogEntry] = TTLCache(
            max_entries=config.cache.max_entries, ttl=config.cache.ttl
        )
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        self.config.validate()
        self._initialized = True
        logger.info(f"GitHub storage initialized for {self.config.full_name}")

    async def dispose(self) -> None:
        self._cache.clear()
        await self.client.close()
        self._initialized = False

    def is_remote_storage(self) -> bool:
        return True

    # =========================================================================
    # Repository setup
    # =========================================================================

    async def verify_access(self) -> dict[str, Any]:
        """Check that the token can read the repository.

        Raises:
            ConfigurationError: If the repository is missing or the token is rejected
            RemoteUnavailableError: If GitHub cannot be reached
        """
        try:
            return await self.client.get_repository()
        except RemoteUnavailableError:
            raise
        except RemoteAPIError as e:
            if e.status in (401, 403, 404):
                raise ConfigurationError(
                    f"GitHub API access verification failed for {self.config.full_name}: "
                    f"{e.message}. Check the token permissions and repository access.",
                    field="github.token",
                ) from e
            raise

    async def prepare_repository(self) -> list[str]:
        """Verify access and create any missing devlog labels.

        Returns:
            Names of labels created
        """
        await self.verify_access()
        return await self.label_manager.ensure_required_labels()

    def retarget(self, owner: str, repo: str) -> None:
        """Switch to another repository with the same credentials."""
        self.client.retarget(owner, repo)
        self.label_manager = GitHubLabelManager(self.client, self.config.labels_prefix)
        self._cache.clear()
        logger.info(f"GitHub storage now targets {self.config.full_name}")

    # =========================================================================
    # Single-entry operations
    # =========================================================================

    def _is_deleted(self, issue: GitHubIssue) -> bool:
        return deleted_label(self.config.labels_prefix) in issue.labels

    async def exists(self, devlog_id: Any) -> bool:
        return await self.get(devlog_id) is not None

    async def get(self, devlog_id: Any) -> DevlogEntry | None:
        number = parse_devlog_id(devlog_id)
        if number is None:
            return None

        if self.config.cache.enabled:
            cached = self._cache.get(number)
            if cached is not None:
                return copy.deepcopy(cached)

        try:
            issue = await self.client.get_issue(number)
        except DevlogNotFoundError:
            return None

        if self._is_deleted(issue):
            return None

        entry = self.mapper.issue_to_devlog(issue)
        if self.config.cache.enabled:
            self._cache.put(number, copy.deepcopy(entry))
        return entry

    async def save(self, entry: DevlogEntry, *, touch: bool = True) -> None:
        """Create or update the issue for ``entry``.

        Entries without an id, or whose issue no longer exists, become new
        issues and take the new issue number as their id.
        """
        if touch or entry.created_at is None or entry.updated_at is None:
            entry.touch()

        payload = self.mapper.devlog_to_issue(entry)

        if entry.id is not None:
            try:
                await self.client.update_issue(entry.id, payload)
                self._cache.delete(entry.id)
                return
            except DevlogNotFoundError:
                logger.warning(f"Issue #{entry.id} not found in {self.config.full_name}, recreating")

        state = payload.pop("state")
        issue = await self.client.create_issue(payload)
        if state == "closed":
            # The create endpoint does not accept a state
            await self.client.update_issue(issue.number, {"state": "closed"})

        entry.id = issue.number
        self._cache.delete(entry.id)
        logger.debug(f"Created issue #{issue.number} for devlog '{entry.title}'")

    async def delete(self, devlog_id: Any) -> None:
        number = parse_devlog_id(devlog_id)
        if number is None:
            raise InvalidIdentifierError(devlog_id, operation="delete")

        try:
            await self.client.update_issue(
                number,
                {"state": "closed", "labels": [deleted_label(self.config.labels_prefix)]},
            )
        except DevlogNotFoundError:
            logger.debug(f"Issue #{number} already absent")
        self._cache.delete(number)

    async def get_next_id(self) -> int:
        """Time-based placeholder; the issue number replaces it on save."""
        return int(time.time() * 1000)

    # =========================================================================
    # Queries
    # =========================================================================

    async def list(self, devlog_filter: DevlogFilter | None = None) -> list[DevlogEntry]:
        """List entries in issue creation order.

        The full listing reads the repository's issues directly, so it is
        complete and current. Filtered listings go through search, which
        indexes new issues with a delay and stops at 1000 results.
        """
        if devlog_filter is None or devlog_filter == DevlogFilter():
            issues = await self.client.list_issues(marker_label(self.config.labels_prefix))
            return self._to_entries(issues)

        query = build_search_query(
            devlog_filter,
            owner=self.config.owner,
            repo=self.config.repo,
            prefix=self.config.labels_prefix,
        )
        return self._to_entries(await self.client.search_issues(query))

    async def search(self, query: str) -> list[DevlogEntry]:
        search_query = build_text_query(
            query,
            owner=self.config.owner,
            repo=self.config.repo,
            prefix=self.config.labels_prefix,
        )
        return self._to_entries(await self.client.search_issues(search_query))

    async def get_stats(self) -> DevlogStats:
        return compute_stats(await self.list())

    async def count(self) -> int:
        """Number of live entries, from a single search count request."""
        query = build_search_query(
            None,
            owner=self.config.owner,
            repo=self.config.repo,
            prefix=self.config.labels_prefix,
        )
        return await self.client.search_issues_count(query)

    def _to_entries(self, issues: list[GitHubIssue]) -> list[DevlogEntry]:
        return [self.mapper.issue_to_devlog(i) for i in issues if not self._is_deleted(i)]
