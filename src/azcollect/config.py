"""Collector configuration.

Settings are read from the ``[collector]`` table of a TOML file
(default ``~/.azcollect/config.toml``). A missing file yields defaults.

Example config.toml:

    [collector]
    parallel_thread_limit = 8
    targeted_api_collection_threshold = 500
    enabled_deployments_caching = true
    region = "westus2"
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import tomli

from azcollect.errors import ConfigError

logger = logging.getLogger(__name__)

TEST_MODE_ENV = "AZCOLLECT_TEST_MODE"


def is_test_mode() -> bool:
    """True when running under the test suite (parallel fetches are disabled)."""
    return os.environ.get(TEST_MODE_ENV, "").lower() == "true"


@dataclass
class CollectorConfig:
    """Collector settings.

    Attributes:
        parallel_thread_limit: Max concurrent API calls per parallel pass (0 = sequential)
        targeted_api_collection_threshold: Max target refs fetched one by one in a
            targeted run; larger targets fall back to a filtered full listing
        enabled_deployments_caching: Reuse snapshot data for unchanged stacks
        timestamp_tolerance_seconds: Clock skew under which stack timestamps are equal
        created_operation_pattern: Regex (case-insensitive) selecting deployment
            operations that created a resource
        power_state_prefix: Status code prefix of the power state entry in instance views
        snapshot_batch_size: Max stack ids per snapshot resource query
        region: Region to collect (None collects every region)
        proxy: Proxy URL for template downloads
        ssl_verify: Verify TLS certificates on template downloads
        template_download_timeout: Template download timeout in seconds
    """

    parallel_thread_limit: int = 0
    targeted_api_collection_threshold: int = 500
    enabled_deployments_caching: bool = True
    timestamp_tolerance_seconds: float = 1.0
    created_operation_pattern: str = r"^create$"
    power_state_prefix: str = "PowerState/"
    snapshot_batch_size: int = 1000
    region: str | None = None
    proxy: str | None = None
    ssl_verify: bool = True
    template_download_timeout: int = 30

    def __post_init__(self) -> None:
        if self.parallel_thread_limit < 0:
            raise ConfigError("parallel_thread_limit cannot be negative")
        if self.targeted_api_collection_threshold < 0:
            raise ConfigError("targeted_api_collection_threshold cannot be negative")
        if self.timestamp_tolerance_seconds < 0:
            raise ConfigError("timestamp_tolerance_seconds cannot be negative")
        if self.snapshot_batch_size <= 0:
            raise ConfigError("snapshot_batch_size must be positive")
        if self.template_download_timeout <= 0:
            raise ConfigError("template_download_timeout must be positive")
        try:
            re.compile(self.created_operation_pattern)
        except re.error as e:
            raise ConfigError(f"Invalid created_operation_pattern: {e}") from e

    @property
    def thread_limit(self) -> int:
        """Effective worker limit; always 0 in test mode to keep runs deterministic."""
        return 0 if is_test_mode() else self.parallel_thread_limit

    @property
    def created_operation_regex(self) -> re.Pattern:
        return re.compile(self.created_operation_pattern, re.IGNORECASE)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CollectorConfig":
        """Create from dictionary, ignoring unknown keys.

        Raises:
            ConfigError: If a value has the wrong type or is out of range
        """
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            logger.warning(f"Ignoring unknown collector settings: {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for name, value in data.items():
            if name not in known:
                continue
            default = known[name].default
            if default is not None and value is not None:
                expected = float if isinstance(default, float) else type(default)
                if expected is float and isinstance(value, int) and not isinstance(value, bool):
                    value = float(value)
                if not isinstance(value, expected) or (
                    expected is int and isinstance(value, bool)
                ):
                    raise ConfigError(
                        f"Invalid value for {name}: expected {expected.__name__}, "
                        f"got {type(value).__name__}"
                    )
            values[name] = value
        return cls(**values)


class ConfigManager:
    """Load collector configuration from TOML."""

    DEFAULT_CONFIG_DIR = Path.home() / ".azcollect"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"
    SECTION = "collector"

    @classmethod
    def get_config_path(cls, custom_path: str | Path | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If a custom path is given and does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path
        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | Path | None = None) -> CollectorConfig:
        """Load configuration from file.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            CollectorConfig object

        Raises:
            ConfigError: If the file cannot be parsed or holds invalid values
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return CollectorConfig()

        try:
            with open(config_path, "rb") as f:
                data = tomli.load(f)
        except (OSError, tomli.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        section = data.get(cls.SECTION, {})
        if not isinstance(section, dict):
            raise ConfigError(f"[{cls.SECTION}] must be a table")

        logger.debug(f"Loaded config from: {config_path}")
        return CollectorConfig.from_dict(section)


__all__ = ["TEST_MODE_ENV", "CollectorConfig", "ConfigManager", "ConfigError", "is_test_mode"]
