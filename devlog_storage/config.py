"""
Storage configuration descriptors.

The storage factory consumes a ``StorageConfig`` whose ``strategy``
selects one of the provider variants; the matching sub-config carries
the backend-specific fields. Loading these descriptors from files is the
host application's job; ``from_dict`` accepts an already-loaded mapping.

Environment Variables (``GitHubStorageConfig.from_env``):
    DEVLOG_GITHUB_OWNER: Repository owner
    DEVLOG_GITHUB_REPO: Repository name
    DEVLOG_GITHUB_TOKEN: API token
    DEVLOG_GITHUB_API_URL: Custom API base URL (GitHub Enterprise)
    DEVLOG_GITHUB_LABELS_PREFIX: Label prefix (default: devlog)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .exceptions import ConfigurationError

DEFAULT_API_URL = "https://api.github.com"


class StorageStrategy(Enum):
    """Provider variant selected by the factory."""

    LOCAL_JSON = "local-json"
    LOCAL_SQLITE = "local-sqlite"
    GITHUB = "github"
    HYBRID_GITHUB = "hybrid-github"


@dataclass
class RateLimitConfig:
    """Hourly request quota and retry policy for the remote API.

    Attributes:
        requests_per_hour: Sliding one-hour request quota
        retry_delay: Base backoff delay in seconds (doubled per attempt)
        max_retries: Attempts before giving up on a rate-limited call
    """

    requests_per_hour: int = 5000
    retry_delay: float = 1.0
    max_retries: int = 3

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RateLimitConfig:
        data = data or {}
        defaults = cls()
        return cls(
            requests_per_hour=int(data.get("requests_per_hour", defaults.requests_per_hour)),
            retry_delay=float(data.get("retry_delay", defaults.retry_delay)),
            max_retries=int(data.get("max_retries", defaults.max_retries)),
        )


@dataclass
class RemoteCacheConfig:
    """Read cache in front of remote ``get`` calls. ``ttl`` is in seconds."""

    enabled: bool = True
    ttl: float = 300.0
    max_entries: int = 100

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RemoteCacheConfig:
        data = data or {}
        defaults = cls()
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            ttl=float(data.get("ttl", defaults.ttl)),
            max_entries=int(data.get("max_entries", defaults.max_entries)),
        )


@dataclass
class GitHubStorageConfig:
    """Configuration for GitHub-issue-backed storage."""

    owner: str
    repo: str
    token: str
    api_url: str = DEFAULT_API_URL
    branch: str = "main"
    labels_prefix: str = "devlog"
    timeout: float = 30.0
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: RemoteCacheConfig = field(default_factory=RemoteCacheConfig)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def validate(self) -> None:
        for name in ("owner", "repo", "token"):
            if not getattr(self, name):
                raise ConfigurationError(f"GitHub storage requires '{name}'", field=f"github.{name}")
        if self.rate_limit.requests_per_hour < 1:
            raise ConfigurationError(
                "requests_per_hour must be >= 1", field="github.rate_limit.requests_per_hour"
            )
        if self.rate_limit.max_retries < 1:
            raise ConfigurationError(
                "max_retries must be >= 1", field="github.rate_limit.max_retries"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GitHubStorageConfig:
        return cls(
            owner=data.get("owner", ""),
            repo=data.get("repo", ""),
            token=data.get("token", ""),
            api_url=(data.get("api_url") or DEFAULT_API_URL).rstrip("/"),
            branch=data.get("branch") or "main",
            labels_prefix=data.get("labels_prefix") or "devlog",
            timeout=float(data.get("timeout", 30.0)),
            rate_limit=RateLimitConfig.from_dict(data.get("rate_limit")),
            cache=RemoteCacheConfig.from_dict(data.get("cache")),
        )

    @classmethod
    def from_env(cls) -> GitHubStorageConfig:
        """Create config from environment variables."""
        return cls(
            owner=os.environ.get("DEVLOG_GITHUB_OWNER", ""),
            repo=os.environ.get("DEVLOG_GITHUB_REPO", ""),
            token=os.environ.get("DEVLOG_GITHUB_TOKEN", ""),
            api_url=os.environ.get("DEVLOG_GITHUB_API_URL", DEFAULT_API_URL).rstrip("/"),
            labels_prefix=os.environ.get("DEVLOG_GITHUB_LABELS_PREFIX", "devlog"),
        )


@dataclass
class SQLiteConfig:
    """Configuration for the SQLite cache/database provider."""

    file_path: str | Path = ":memory:"
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SQLiteConfig:
        return cls(
            file_path=data.get("file_path") or data.get("connection_string") or ":memory:",
            options=dict(data.get("options") or {}),
        )


@dataclass
class JsonStorageConfig:
    """Configuration for the local JSON-file provider."""

    directory: str | Path = ".devlog"
    min_padding: int = 3

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JsonStorageConfig:
        return cls(
            directory=data.get("directory") or ".devlog",
            min_padding=int(data.get("min_padding", 3)),
        )


@dataclass
class StorageConfig:
    """Discriminated storage descriptor.

    Attributes:
        strategy: Which provider variant to build
        json: Sub-config for LOCAL_JSON
        sqlite: Sub-config for LOCAL_SQLITE, and the cache store for HYBRID_GITHUB
        github: Sub-config for GITHUB and HYBRID_GITHUB
        sync_interval: Seconds between background reconciliations (hybrid only, None = off)
        sync_on_initialize: Reconcile remote -> cache when the hybrid provider initializes
    """

    strategy: StorageStrategy
    json: JsonStorageConfig | None = None
    sqlite: SQLiteConfig | None = None
    github: GitHubStorageConfig | None = None
    sync_interval: float | None = None
    sync_on_initialize: bool = True

    def validate(self) -> None:
        """Raise ConfigurationError if the descriptor cannot build its provider."""
        if self.strategy is StorageStrategy.LOCAL_SQLITE and self.sqlite is None:
            raise ConfigurationError("local-sqlite storage requires 'sqlite'", field="sqlite")
        if self.strategy in (StorageStrategy.GITHUB, StorageStrategy.HYBRID_GITHUB):
            if self.github is None:
                raise ConfigurationError(
                    f"{self.strategy.value} storage requires 'github'", field="github"
                )
            self.github.validate()
        if self.strategy is StorageStrategy.HYBRID_GITHUB and self.sqlite is None:
            raise ConfigurationError(
                "hybrid-github storage requires a 'sqlite' cache", field="sqlite"
            )
        if self.sync_interval is not None and self.sync_interval <= 0:
            raise ConfigurationError("sync_interval must be positive", field="sync_interval")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StorageConfig:
        """Build a descriptor from an already-loaded mapping."""
        raw_strategy = data.get("strategy")
        try:
            strategy = StorageStrategy(raw_strategy)
        except ValueError:
            raise ConfigurationError(
                f"Unsupported storage strategy: {raw_strategy}", field="strategy"
            ) from None

        json_data = data.get("json")
        sqlite_data = data.get("sqlite") or data.get("cache")
        github_data = data.get("github")
        return cls(
            strategy=strategy,
            json=JsonStorageConfig.from_dict(json_data) if json_data is not None else None,
            sqlite=SQLiteConfig.from_dict(sqlite_data) if sqlite_data is not None else None,
            github=GitHubStorageConfig.from_dict(github_data) if github_data is not None else None,
            sync_interval=data.get("sync_interval"),
            sync_on_initialize=bool(data.get("sync_on_initialize", True)),
        )
