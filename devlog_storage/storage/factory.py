"""
Storage provider factory.

Builds the provider selected by a ``StorageConfig`` strategy.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..config import JsonStorageConfig, StorageConfig, StorageStrategy
from ..exceptions import ConfigurationError
from .base import StorageProvider
from .github import GitHubStorageProvider
from .hybrid import HybridStorageProvider
from .local import LocalJsonStorageProvider
from .sqlite import SQLiteStorageProvider

logger = logging.getLogger(__name__)


class StorageProviderFactory:
    """Creates storage providers from configuration descriptors."""

    @classmethod
    def build(cls, config: StorageConfig | Mapping[str, Any]) -> StorageProvider:
        """Construct (but do not initialize) the provider for ``config``.

        Raises:
            ConfigurationError: If the strategy is unsupported or a required
                sub-config is missing
        """
        if not isinstance(config, StorageConfig):
            config = StorageConfig.from_dict(config)
        config.validate()

        if config.strategy is StorageStrategy.LOCAL_JSON:
            return LocalJsonStorageProvider(config.json or JsonStorageConfig())

        if config.strategy is StorageStrategy.LOCAL_SQLITE:
            return SQLiteStorageProvider(config.sqlite)

        if config.strategy is StorageStrategy.GITHUB:
            return GitHubStorageProvider(config.github)  # type: ignore[arg-type]

        if config.strategy is StorageStrategy.HYBRID_GITHUB:
            return HybridStorageProvider(
                GitHubStorageProvider(config.github),  # type: ignore[arg-type]
                SQLiteStorageProvider(config.sqlite),
                sync_interval=config.sync_interval,
                sync_on_initialize=config.sync_on_initialize,
            )

        raise ConfigurationError(
            f"Unsupported storage strategy: {config.strategy}", field="strategy"
        )

    @classmethod
    async def create(
        cls,
        config: StorageConfig | Mapping[str, Any],
        initialize: bool = True,
    ) -> StorageProvider:
        """Construct the provider for ``config`` and initialize it.

        Args:
            config: Descriptor, or an already-loaded mapping for ``StorageConfig.from_dict``
            initialize: Run ``initialize()`` before returning

        Returns:
            The provider
        """
        provider = cls.build(config)
        if initialize:
            await provider.initialize()
        logger.info(f"Created {type(provider).__name__}")
        return provider


async def create_storage_provider(
    config: StorageConfig | Mapping[str, Any],
    initialize: bool = True,
) -> StorageProvider:
    """Create a storage provider from configuration."""
    return await StorageProviderFactory.create(config, initialize=initialize)
