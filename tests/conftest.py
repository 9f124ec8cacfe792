"""
Shared test configuration and fixtures.

Provides an in-memory GitHub client that stands in for GitHubAPIClient in
provider and hybrid tests, plus ready-made providers for each backend.
"""

import asyncio
import copy
import logging
from datetime import UTC, datetime, timedelta

import pytest

from devlog_storage.config import GitHubStorageConfig, JsonStorageConfig, SQLiteConfig
from devlog_storage.exceptions import DevlogNotFoundError
from devlog_storage.github.client import GitHubIssue
from devlog_storage.github.mapper import DevlogGitHubMapper
from devlog_storage.models import DevlogEntry
from devlog_storage.storage.github import GitHubStorageProvider
from devlog_storage.storage.hybrid import HybridStorageProvider
from devlog_storage.storage.local import LocalJsonStorageProvider
from devlog_storage.storage.sqlite import SQLiteStorageProvider

logger = logging.getLogger(__name__)

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def ts(minutes: int) -> datetime:
    """Fixed timestamp ``minutes`` after T0."""
    return T0 + timedelta(minutes=minutes)


def make_entry(title: str, devlog_id: int | None = None, updated: int | None = None, **kwargs):
    """Build an entry; ``updated`` sets both timestamps to ts(updated)."""
    entry = DevlogEntry(title=title, id=devlog_id, **kwargs)
    if updated is not None:
        entry.created_at = ts(0)
        entry.updated_at = ts(updated)
    return entry


class FakeGitHubClient:
    """
    In-memory GitHub issues API with the GitHubAPIClient interface.

    Listing and search ignore everything but the marker label: every issue
    carrying it is returned. Search queries are recorded for assertions.
    """

    def __init__(self, config: GitHubStorageConfig):
        self.config = config
        self.issues: dict[int, GitHubIssue] = {}
        self.labels: list[dict] = []
        self.queries: list[str] = []
        self.calls: list[str] = []
        self._next_number = 1

        # Raise this from every call (simulates an outage)
        self.fail_with: Exception | None = None
        # When set, listing and search wait for it (holds a sync in flight)
        self.search_gate: asyncio.Event | None = None
        self.search_started = asyncio.Event()
        # Issue numbers the search index has not caught up with yet
        self.unindexed: set[int] = set()
        self.closed = False

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def put_entry(self, entry: DevlogEntry) -> GitHubIssue:
        """Store ``entry`` directly as issue #entry.id (bypasses the API)."""
        payload = DevlogGitHubMapper(self.config.labels_prefix).devlog_to_issue(entry)
        issue = GitHubIssue(
            number=entry.id,
            title=payload["title"],
            body=payload["body"],
            state=payload["state"],
            labels=payload["labels"],
            assignees=payload["assignees"],
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )
        self.issues[entry.id] = issue
        self._next_number = max(self._next_number, entry.id + 1)
        return issue

    def retarget(self, owner: str, repo: str) -> None:
        self.config.owner = owner
        self.config.repo = repo

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    async def get_issue(self, number: int) -> GitHubIssue:
        self._record("get_issue")
        if number not in self.issues:
            raise DevlogNotFoundError(number, source="github")
        return copy.deepcopy(self.issues[number])

    async def create_issue(self, payload: dict) -> GitHubIssue:
        self._record("create_issue")
        now = datetime.now(UTC)
        issue = GitHubIssue(
            number=self._next_number,
            title=payload["title"],
            body=payload.get("body"),
            state="open",
            labels=list(payload.get("labels") or []),
            assignees=list(payload.get("assignees") or []),
            created_at=now,
            updated_at=now,
        )
        self._next_number += 1
        self.issues[issue.number] = issue
        return copy.deepcopy(issue)

    async def update_issue(self, number: int, payload: dict) -> GitHubIssue:
        self._record("update_issue")
        if number not in self.issues:
            raise DevlogNotFoundError(number, source="github")
        issue = self.issues[number]
        for field in ("title", "body", "state"):
            if field in payload:
                setattr(issue, field, payload[field])
        if "labels" in payload:
            issue.labels = list(payload["labels"])
        if "assignees" in payload:
            issue.assignees = list(payload["assignees"])
        issue.updated_at = datetime.now(UTC)
        return copy.deepcopy(issue)

    async def _marked_issues(self, label: str, indexed_only: bool) -> list[GitHubIssue]:
        self.search_started.set()
        if self.search_gate is not None:
            await self.search_gate.wait()
        return [
            copy.deepcopy(i)
            for i in self.issues.values()
            if label in i.labels and not (indexed_only and i.number in self.unindexed)
        ]

    async def list_issues(self, labels: str, state: str = "all") -> list[GitHubIssue]:
        self._record("list_issues")
        return await self._marked_issues(labels, indexed_only=False)

    async def search_issues(self, query: str) -> list[GitHubIssue]:
        self._record("search_issues")
        self.queries.append(query)
        return await self._marked_issues(self.config.labels_prefix, indexed_only=True)

    async def search_issues_count(self, query: str) -> int:
        self._record("search_issues_count")
        self.queries.append(query)
        return len(await self._marked_issues(self.config.labels_prefix, indexed_only=True))

    async def get_repository(self) -> dict:
        self._record("get_repository")
        return {"full_name": self.config.full_name}

    async def get_labels(self) -> list[dict]:
        self._record("get_labels")
        return list(self.labels)

    async def create_label(self, name: str, color: str, description: str | None = None) -> None:
        self._record("create_label")
        self.labels.append({"name": name, "color": color, "description": description})


@pytest.fixture
def github_config():
    """GitHub config with the read cache disabled so reads hit the fake client."""
    config = GitHubStorageConfig(owner="acme", repo="devlog", token="test-token")
    config.cache.enabled = False
    return config


@pytest.fixture
def fake_client(github_config):
    return FakeGitHubClient(github_config)


@pytest.fixture
async def github_storage(github_config, fake_client):
    storage = GitHubStorageProvider(github_config, client=fake_client)
    await storage.initialize()
    yield storage
    await storage.dispose()


@pytest.fixture
async def sqlite_storage():
    storage = SQLiteStorageProvider(SQLiteConfig(":memory:"))
    await storage.initialize()
    yield storage
    await storage.dispose()


@pytest.fixture
async def json_storage(tmp_path):
    storage = LocalJsonStorageProvider(JsonStorageConfig(directory=tmp_path / "devlog"))
    await storage.initialize()
    yield storage
    await storage.dispose()


@pytest.fixture
async def hybrid_parts(github_config, fake_client):
    """Uninitialized hybrid provider plus its two halves."""
    remote = GitHubStorageProvider(github_config, client=fake_client)
    cache = SQLiteStorageProvider(SQLiteConfig(":memory:"))
    hybrid = HybridStorageProvider(remote, cache, sync_on_initialize=False)
    await hybrid.initialize()
    yield hybrid, remote, cache
    await hybrid.dispose()
