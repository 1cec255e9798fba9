"""
Source Registry Module
======================

Manages pipeline configuration loaded from YAML files: fetch-layer
settings, processing and price-refresh settings, and the retail sources
with their adapters.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kbeauty_pipeline.ingestion.fetcher import DEFAULT_USER_AGENTS


@dataclass
class FetchConfig:
    """Settings for the shared resilient fetcher."""

    concurrency: int = 3
    delay_seconds: float = 2.0
    max_retries: int = 3
    timeout: float = 30.0
    retry_after_default: float = 10.0
    retry_after_cap: float = 60.0
    user_agents: list[str] = field(default_factory=lambda: list(DEFAULT_USER_AGENTS))

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FetchConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            concurrency=int(data.get("concurrency", 3)),
            delay_seconds=float(data.get("delay_seconds", 2.0)),
            max_retries=int(data.get("max_retries", 3)),
            timeout=float(data.get("timeout", 30.0)),
            retry_after_default=float(data.get("retry_after_default", 10.0)),
            retry_after_cap=float(data.get("retry_after_cap", 60.0)),
            user_agents=list(data.get("user_agents") or DEFAULT_USER_AGENTS),
        )


@dataclass
class ProcessingConfig:
    """Settings for the batch processor and ingredient linker."""

    batch_size: int = 20
    concurrency: int = 5
    link_batch_size: int = 50

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ProcessingConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            batch_size=int(data.get("batch_size", 20)),
            concurrency=int(data.get("concurrency", 5)),
            link_batch_size=int(data.get("link_batch_size", 50)),
        )


@dataclass
class PriceConfig:
    """Settings for the price pipeline."""

    batch_size: int = 100
    stale_hours: int = 24
    min_confidence: float = 0.4
    retailers: list[str] = field(
        default_factory=lambda: ["yesstyle", "soko_glam", "stylekorean", "amazon"]
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PriceConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        defaults = cls()
        return cls(
            batch_size=int(data.get("batch_size", 100)),
            stale_hours=int(data.get("stale_hours", 24)),
            min_confidence=float(data.get("min_confidence", 0.4)),
            retailers=list(data.get("retailers") or defaults.retailers),
        )


@dataclass
class SourceConfig:
    """Configuration for a single retail source."""

    name: str
    adapter: str
    enabled: bool = True
    description: str = ""
    reliability: str = "high"
    delay_seconds: float | None = None
    custom_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceConfig:
        """Create from dictionary."""
        delay = data.get("delay_seconds")
        return cls(
            name=data["name"],
            adapter=data.get("adapter", data["name"]),
            enabled=data.get("enabled", True),
            description=data.get("description", ""),
            reliability=data.get("reliability", "high"),
            delay_seconds=float(delay) if delay is not None else None,
            custom_config=data.get("custom_config", {}) or {},
        )

    def adapter_config(self) -> dict[str, Any]:
        """Configuration dict handed to the adapter constructor."""
        config = dict(self.custom_config)
        if self.delay_seconds is not None:
            config.setdefault("delay_seconds", self.delay_seconds)
        return config


class SourceRegistry:
    """
    Registry for pipeline and source configuration.

    Loads definitions from a YAML file and provides methods
    to query and manage them.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceConfig] = {}
        self._fetch: FetchConfig = FetchConfig()
        self._processing: ProcessingConfig = ProcessingConfig()
        self._prices: PriceConfig = PriceConfig()
        self._config_path: Path | None = None

    @property
    def fetch(self) -> FetchConfig:
        """Get fetch-layer configuration."""
        return self._fetch

    @property
    def processing(self) -> ProcessingConfig:
        """Get batch processing configuration."""
        return self._processing

    @property
    def prices(self) -> PriceConfig:
        """Get price pipeline configuration."""
        return self._prices

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the pipeline.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._fetch = FetchConfig.from_dict(data.get("fetch"))
        self._processing = ProcessingConfig.from_dict(data.get("processing"))
        self._prices = PriceConfig.from_dict(data.get("prices"))

        self._sources.clear()
        for source_data in data.get("sources", []):
            source = SourceConfig.from_dict(source_data)
            self._sources[source.name] = source

    def get_source(self, name: str) -> SourceConfig | None:
        """
        Get a source configuration by name.

        Args:
            name: Source name

        Returns:
            SourceConfig if found, None otherwise
        """
        return self._sources.get(name)

    def list_sources(self) -> list[SourceConfig]:
        """Get all registered sources."""
        return list(self._sources.values())

    def list_enabled_sources(self) -> list[SourceConfig]:
        """Get all enabled sources."""
        return [s for s in self._sources.values() if s.enabled]

    def enable_source(self, name: str) -> bool:
        """Enable a source. Returns False if it is unknown."""
        source = self._sources.get(name)
        if source is None:
            return False
        source.enabled = True
        return True

    def disable_source(self, name: str) -> bool:
        """Disable a source. Returns False if it is unknown."""
        source = self._sources.get(name)
        if source is None:
            return False
        source.enabled = False
        return True


# Global registry instance
_default_registry: SourceRegistry | None = None


def get_default_registry() -> SourceRegistry:
    """
    Get the default source registry instance.

    Loads configuration from the path specified in PIPELINE_CONFIG_PATH
    environment variable, or falls back to config/pipeline.yaml.

    Returns:
        The global SourceRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = SourceRegistry()

        config_path = os.environ.get("PIPELINE_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            # Default to config/pipeline.yaml relative to project root
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "pipeline.yaml"

        if path.exists():
            _default_registry.load_config(path)

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
