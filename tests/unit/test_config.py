"""
Unit tests for collector configuration.

Test Coverage:
- Defaults and validation
- Loading from TOML
- Type checking of file values
- Test mode worker override
"""

import logging

import pytest

from azcollect.config import TEST_MODE_ENV, CollectorConfig, ConfigManager
from azcollect.errors import ConfigError


class TestCollectorConfig:
    """CollectorConfig dataclass."""

    def test_defaults(self):
        config = CollectorConfig()

        assert config.parallel_thread_limit == 0
        assert config.targeted_api_collection_threshold == 500
        assert config.enabled_deployments_caching is True
        assert config.timestamp_tolerance_seconds == 1.0
        assert config.power_state_prefix == "PowerState/"
        assert config.snapshot_batch_size == 1000
        assert config.region is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"parallel_thread_limit": -1},
            {"targeted_api_collection_threshold": -5},
            {"timestamp_tolerance_seconds": -0.1},
            {"snapshot_batch_size": 0},
            {"template_download_timeout": 0},
            {"created_operation_pattern": "(unclosed"},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigError):
            CollectorConfig(**kwargs)

    def test_created_operation_regex_ignores_case(self):
        regex = CollectorConfig().created_operation_regex

        assert regex.search("Create")
        assert regex.search("CREATE")
        assert not regex.search("CreateOrUpdate")

    def test_thread_limit_forced_to_zero_in_test_mode(self, monkeypatch):
        monkeypatch.setenv(TEST_MODE_ENV, "true")
        assert CollectorConfig(parallel_thread_limit=8).thread_limit == 0

        monkeypatch.delenv(TEST_MODE_ENV)
        assert CollectorConfig(parallel_thread_limit=8).thread_limit == 8

    def test_to_dict_drops_none(self):
        data = CollectorConfig(region="eastus").to_dict()

        assert data["region"] == "eastus"
        assert "proxy" not in data

    def test_from_dict_coerces_int_tolerance(self):
        config = CollectorConfig.from_dict({"timestamp_tolerance_seconds": 2})

        assert config.timestamp_tolerance_seconds == 2.0
        assert isinstance(config.timestamp_tolerance_seconds, float)

    @pytest.mark.parametrize(
        "data",
        [
            {"parallel_thread_limit": "8"},
            {"parallel_thread_limit": True},
            {"enabled_deployments_caching": "yes"},
            {"created_operation_pattern": 5},
        ],
    )
    def test_from_dict_rejects_wrong_types(self, data):
        with pytest.raises(ConfigError, match="Invalid value"):
            CollectorConfig.from_dict(data)

    def test_from_dict_warns_on_unknown_keys(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = CollectorConfig.from_dict({"region": "westus", "colour": "blue"})

        assert config.region == "westus"
        assert "colour" in caplog.text


class TestConfigManager:
    """Loading configuration files."""

    def test_missing_default_file_yields_defaults(self, temp_config_dir, monkeypatch):
        monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", temp_config_dir / "config.toml")

        assert ConfigManager.load_config() == CollectorConfig()

    def test_missing_custom_file_raises(self, temp_config_dir):
        with pytest.raises(ConfigError, match="not found"):
            ConfigManager.load_config(temp_config_dir / "absent.toml")

    def test_loads_collector_table(self, temp_config_dir):
        path = temp_config_dir / "config.toml"
        path.write_text(
            "[collector]\n"
            "parallel_thread_limit = 8\n"
            'region = "westus2"\n'
            "enabled_deployments_caching = false\n"
        )

        config = ConfigManager.load_config(path)

        assert config.parallel_thread_limit == 8
        assert config.region == "westus2"
        assert config.enabled_deployments_caching is False

    def test_file_without_collector_table_yields_defaults(self, temp_config_dir):
        path = temp_config_dir / "config.toml"
        path.write_text('[other]\nname = "x"\n')

        assert ConfigManager.load_config(path) == CollectorConfig()

    def test_invalid_toml_raises(self, temp_config_dir):
        path = temp_config_dir / "config.toml"
        path.write_text("[collector\nregion = ")

        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config(path)

    def test_collector_must_be_table(self, temp_config_dir):
        path = temp_config_dir / "config.toml"
        path.write_text('collector = "fast"\n')

        with pytest.raises(ConfigError, match="must be a table"):
            ConfigManager.load_config(path)
