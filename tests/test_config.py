"""Tests for configuration management."""

from pathlib import Path

import pytest

from pantry_tracker.config import DEFAULT_API_URL, ConfigManager


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("""
[data]
storage_dir = "/custom/data"
backend = "sqlite"

[defaults]
household = "casa"
category = "food"

[inventory]
low_stock_threshold = 0.3
restore_expiration_days = 10

[predictions]
batch_limit = 4
time_budget_ms = 5000
enrichment_enabled = false

[completion]
model = "tiny"
api_key_env = "PANTRY_KEY"

[logging]
level = "DEBUG"
""")
    return config_path


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_data_config(self, config_file):
        manager = ConfigManager(config_path=config_file)

        assert manager.data.storage_dir == Path("/custom/data")
        assert manager.data.backend == "sqlite"

    def test_defaults_config(self, config_file):
        manager = ConfigManager(config_path=config_file)

        assert manager.defaults.household == "casa"
        assert manager.defaults.category == "food"
        assert manager.defaults.unit == "count"

    def test_inventory_config(self, config_file):
        manager = ConfigManager(config_path=config_file)

        assert manager.inventory.low_stock_threshold == 0.3
        assert manager.inventory.restore_expiration_days == 10
        assert manager.inventory.expiring_soon_days == 3

    def test_predictions_config(self, config_file):
        manager = ConfigManager(config_path=config_file)

        assert manager.predictions.batch_limit == 4
        assert manager.predictions.time_budget_ms == 5000
        assert manager.predictions.enrichment_enabled is False
        assert manager.predictions.inter_call_delay_ms == 500

    def test_completion_and_logging(self, config_file):
        manager = ConfigManager(config_path=config_file)

        assert manager.completion.model == "tiny"
        assert manager.completion.api_key_env == "PANTRY_KEY"
        assert manager.completion.api_url == DEFAULT_API_URL
        assert manager.logging.level == "DEBUG"

    def test_missing_file_uses_defaults(self, tmp_path):
        manager = ConfigManager(config_path=tmp_path / "nope.toml")

        assert manager.data.backend == "json"
        assert manager.defaults.household == "home"
        assert manager.inventory.low_stock_threshold == 0.2
        assert manager.predictions.batch_limit == 8
        assert manager.completion.api_key_env == "GROQ_API_KEY"
        assert manager.logging.level == "WARNING"

    def test_finds_config_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "config.toml").write_text('[defaults]\nhousehold = "cwd"\n')
        monkeypatch.chdir(tmp_path)

        manager = ConfigManager()
        assert manager.config_path == tmp_path / "config.toml"
        assert manager.defaults.household == "cwd"


class TestConfigGet:
    """Tests for dot-path lookup."""

    def test_get_nested(self, config_file):
        manager = ConfigManager(config_path=config_file)
        assert manager.get("predictions.batch_limit") == 4
        assert manager.get("defaults.household") == "casa"

    def test_get_missing_returns_default(self, config_file):
        manager = ConfigManager(config_path=config_file)
        assert manager.get("predictions.unknown") is None
        assert manager.get("nothing.here", "fallback") == "fallback"
