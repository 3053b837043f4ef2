# SPDX-License-Identifier: MIT
"""Configuration management for the sync layer."""

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_CACHE_TTL,
    DEFAULT_CLEANUP_INTERVAL,
    DEFAULT_COLLECTION_ENDPOINTS,
    DEFAULT_COLLECTION_TTLS,
    DEFAULT_FLUSH_MAX_RETRIES,
    DEFAULT_FLUSH_RETRY_DELAY,
    DEFAULT_HEALTH_ENDPOINT,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
)


ENV_PREFIX = "ZOOQUEST_SYNC_"


class CollectionConfig(BaseModel):
    """Configuration for a single synchronized collection."""

    endpoint: str = Field(..., description="List endpoint relative to the API base URL")
    ttl_seconds: float = Field(
        DEFAULT_CACHE_TTL, gt=0, description="Freshness window for cached data"
    )


class SyncSettings(BaseModel):
    """Configuration for refresh timers and the pending-write queue."""

    refresh_interval_seconds: float = Field(
        DEFAULT_REFRESH_INTERVAL, gt=0, description="Periodic refresh interval"
    )
    cleanup_interval_seconds: float = Field(
        DEFAULT_CLEANUP_INTERVAL, gt=0, description="Expired-entry sweep interval"
    )
    default_ttl_seconds: float = Field(
        DEFAULT_CACHE_TTL, gt=0, description="TTL for collections without config"
    )
    flush_max_retries: int = Field(
        DEFAULT_FLUSH_MAX_RETRIES,
        ge=0,
        description="Retries for network failures while flushing queued writes",
    )
    flush_retry_delay_seconds: float = Field(
        DEFAULT_FLUSH_RETRY_DELAY, ge=0, description="Initial flush retry delay"
    )
    refresh_on_invalidate: bool = Field(
        True, description="Re-fetch tracked collections when their cache is busted"
    )


class TransportSettings(BaseModel):
    """Configuration for the HTTP transport."""

    base_url: str = Field(DEFAULT_API_BASE_URL, description="API base URL")
    timeout_seconds: float = Field(
        DEFAULT_REQUEST_TIMEOUT, ge=1, le=120, description="Total request timeout"
    )
    auth_token: str | None = Field(None, description="Bearer token for requests")
    health_endpoint: str = Field(
        DEFAULT_HEALTH_ENDPOINT, description="Endpoint used for reachability checks"
    )
    probe_interval_seconds: float = Field(
        DEFAULT_PROBE_INTERVAL, gt=0, description="Reachability probe interval"
    )


def _default_collections() -> dict[str, CollectionConfig]:
    return {
        name: CollectionConfig(
            endpoint=endpoint,
            ttl_seconds=DEFAULT_COLLECTION_TTLS.get(name, DEFAULT_CACHE_TTL),
        )
        for name, endpoint in DEFAULT_COLLECTION_ENDPOINTS.items()
    }


class AppConfig(BaseModel):
    """Main application configuration."""

    collections: dict[str, CollectionConfig] = Field(
        default_factory=_default_collections, description="Collection configurations"
    )
    sync: SyncSettings = SyncSettings()
    transport: TransportSettings = TransportSettings()


class ConfigManager:
    """Manages application configuration from files and environment."""

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or self._find_config_file()
        self._config: AppConfig | None = None

    def _find_config_file(self) -> Path | None:
        """Find configuration file in standard locations."""
        search_paths = [
            Path.cwd() / ".zooquest-sync" / "config.yaml",
            Path.cwd() / "config" / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.home() / ".config" / "zooquest-sync" / "config.yaml",
            Path("/etc/zooquest-sync/config.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def load_config(self) -> AppConfig:
        """Load configuration from file or create default."""
        if self._config is not None:
            return self._config

        default_config = self.get_default_config()

        if self.config_path and self.config_path.exists():
            with open(self.config_path, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}

            config_data = self._deep_merge_configs(default_config, file_config)
        else:
            config_data = default_config

        config_data = self._apply_env_overrides(config_data)

        self._config = AppConfig(**config_data)
        return self._config

    def _deep_merge_configs(
        self, default_config: dict[str, Any], override_config: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge override config into default config.

        Collections are merged one by one, so a file that only sets
        ``collections: {animals: {ttl_seconds: 60}}`` keeps the default
        endpoint for ``animals`` and every other default collection.

        Args:
            default_config: Base configuration with all defaults
            override_config: User-provided overrides

        Returns:
            Merged configuration
        """
        result = copy.deepcopy(default_config)

        for key, value in override_config.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                if key == "collections":
                    for name, collection_config in value.items():
                        if name in result[key] and isinstance(collection_config, dict):
                            result[key][name].update(collection_config)
                        else:
                            result[key][name] = collection_config
                else:
                    result[key].update(value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config_data: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variable overrides to config.

        ``ZOOQUEST_SYNC_<SECTION>_<FIELD>`` sets ``<field>`` in the ``sync`` or
        ``transport`` section, e.g. ``ZOOQUEST_SYNC_TRANSPORT_BASE_URL``.
        """
        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            config_key = key[len(ENV_PREFIX) :].lower()
            section, _, field = config_key.partition("_")
            if section not in ("sync", "transport") or not field:
                continue

            config_data.setdefault(section, {})
            config_data[section][field] = value

        return config_data

    def get_collection_config(self, collection_key: str) -> CollectionConfig | None:
        """Get configuration for a specific collection."""
        config = self.load_config()
        return config.collections.get(collection_key)

    def get_ttl(self, collection_key: str) -> float:
        """Get the cache TTL for a collection, falling back to the default TTL."""
        collection_config = self.get_collection_config(collection_key)
        if collection_config is not None:
            return collection_config.ttl_seconds
        return self.load_config().sync.default_ttl_seconds

    def get_complete_config_dict(self) -> dict[str, Any]:
        """Get the complete configuration as a dictionary for display."""
        config = self.load_config()
        return config.model_dump()

    def show_config(self) -> str:
        """Show the complete configuration in YAML format.

        Returns:
            YAML formatted configuration string
        """
        config_dict = self.get_complete_config_dict()
        return yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    def get_default_config(self) -> dict[str, Any]:
        """Get default configuration with the standard collections."""
        return AppConfig().model_dump()

    def create_default_config(self, output_path: Path) -> None:
        """Create a default configuration file."""
        default_config = self.get_default_config()

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)


# Global config manager instance with factory pattern
_config_manager_instance: ConfigManager | None = None


def get_config_manager(config_path: Path | None = None) -> ConfigManager:
    """Get or create the global config manager instance.

    Args:
        config_path: Optional path to config file (only used on first call)

    Returns:
        The global ConfigManager instance
    """
    global _config_manager_instance
    if _config_manager_instance is None:
        _config_manager_instance = ConfigManager(config_path)
    return _config_manager_instance


def set_config_manager(manager: ConfigManager) -> None:
    """Set the config manager instance (primarily for testing).

    Args:
        manager: ConfigManager instance to use globally
    """
    global _config_manager_instance
    _config_manager_instance = manager


def reset_config_manager() -> None:
    """Reset the config manager instance (primarily for testing)."""
    global _config_manager_instance
    _config_manager_instance = None
