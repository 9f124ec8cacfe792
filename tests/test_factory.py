"""Tests for storage configuration and the provider factory."""

import pytest

from devlog_storage import create_storage_provider
from devlog_storage.config import (
    GitHubStorageConfig,
    SQLiteConfig,
    StorageConfig,
    StorageStrategy,
)
from devlog_storage.exceptions import ConfigurationError
from devlog_storage.storage.factory import StorageProviderFactory
from devlog_storage.storage.github import GitHubStorageProvider
from devlog_storage.storage.hybrid import HybridStorageProvider
from devlog_storage.storage.local import LocalJsonStorageProvider
from devlog_storage.storage.sqlite import SQLiteStorageProvider

GITHUB = {"owner": "acme", "repo": "devlog", "token": "t"}


class TestStorageConfig:
    """Tests for descriptor parsing and validation."""

    def test_from_dict(self):
        config = StorageConfig.from_dict(
            {
                "strategy": "hybrid-github",
                "github": {
                    **GITHUB,
                    "api_url": "https://ghe.example.com/api/v3/",
                    "rate_limit": {"requests_per_hour": 100},
                    "cache": {"enabled": False},
                },
                "sqlite": {"file_path": ".devlog/cache.db"},
                "sync_interval": 60,
            }
        )

        assert config.strategy is StorageStrategy.HYBRID_GITHUB
        assert config.github.api_url == "https://ghe.example.com/api/v3"
        assert config.github.rate_limit.requests_per_hour == 100
        assert config.github.rate_limit.max_retries == 3
        assert config.github.cache.enabled is False
        assert config.sqlite.file_path == ".devlog/cache.db"
        assert config.sync_interval == 60

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError) as exc_info:
            StorageConfig.from_dict({"strategy": "postgres"})
        assert exc_info.value.field == "strategy"

    @pytest.mark.parametrize(
        "config,field",
        [
            (StorageConfig(StorageStrategy.LOCAL_SQLITE), "sqlite"),
            (StorageConfig(StorageStrategy.GITHUB), "github"),
            (
                StorageConfig(StorageStrategy.HYBRID_GITHUB, github=GitHubStorageConfig(**GITHUB)),
                "sqlite",
            ),
            (
                StorageConfig(
                    StorageStrategy.GITHUB,
                    github=GitHubStorageConfig(owner="acme", repo="devlog", token=""),
                ),
                "github.token",
            ),
            (
                StorageConfig(StorageStrategy.LOCAL_SQLITE, sqlite=SQLiteConfig(), sync_interval=0),
                "sync_interval",
            ),
        ],
    )
    def test_validate(self, config, field):
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert exc_info.value.field == field

    def test_github_from_env(self, monkeypatch):
        monkeypatch.setenv("DEVLOG_GITHUB_OWNER", "acme")
        monkeypatch.setenv("DEVLOG_GITHUB_REPO", "devlog")
        monkeypatch.setenv("DEVLOG_GITHUB_TOKEN", "secret")
        monkeypatch.setenv("DEVLOG_GITHUB_LABELS_PREFIX", "work")

        config = GitHubStorageConfig.from_env()

        assert config.full_name == "acme/devlog"
        assert config.labels_prefix == "work"
        config.validate()


class TestFactory:
    """Tests for provider construction."""

    def test_local_json(self, tmp_path):
        provider = StorageProviderFactory.build(
            {"strategy": "local-json", "json": {"directory": str(tmp_path)}}
        )
        assert isinstance(provider, LocalJsonStorageProvider)

    def test_local_sqlite(self):
        provider = StorageProviderFactory.build(
            StorageConfig(StorageStrategy.LOCAL_SQLITE, sqlite=SQLiteConfig())
        )
        assert isinstance(provider, SQLiteStorageProvider)

    def test_github(self):
        provider = StorageProviderFactory.build({"strategy": "github", "github": GITHUB})
        assert isinstance(provider, GitHubStorageProvider)
        assert provider.is_remote_storage()

    def test_hybrid(self):
        provider = StorageProviderFactory.build(
            {
                "strategy": "hybrid-github",
                "github": GITHUB,
                "sqlite": {"file_path": ":memory:"},
                "sync_interval": 30,
                "sync_on_initialize": False,
            }
        )
        assert isinstance(provider, HybridStorageProvider)
        assert isinstance(provider.remote, GitHubStorageProvider)
        assert isinstance(provider.cache, SQLiteStorageProvider)
        assert provider.sync_interval == 30
        assert provider.sync_on_initialize is False
        assert provider.is_git_based()

    def test_missing_sub_config(self):
        with pytest.raises(ConfigurationError):
            StorageProviderFactory.build({"strategy": "github"})

    async def test_create_initializes(self, tmp_path):
        provider = await create_storage_provider(
            {"strategy": "local-sqlite", "sqlite": {"file_path": str(tmp_path / "d.db")}}
        )
        try:
            assert await provider.get_next_id() == 1
        finally:
            await provider.dispose()

    async def test_create_without_initialize(self, tmp_path):
        provider = await StorageProviderFactory.create(
            {"strategy": "local-json", "json": {"directory": str(tmp_path / "devlog")}},
            initialize=False,
        )
        assert not (tmp_path / "devlog").exists()
        assert isinstance(provider, LocalJsonStorageProvider)
