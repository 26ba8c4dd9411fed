"""Configuration management for Pantry Tracker."""

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_API_URL = "https://api.groq.com/openai/v1/chat/completions"


@dataclass
class DataConfig:
    """Data storage configuration."""

    storage_dir: Path
    backend: str = "json"


@dataclass
class DefaultsConfig:
    """Default values configuration."""

    household: str = "home"
    category: str = "other"
    unit: str = "count"


@dataclass
class InventoryConfig:
    """Inventory rules configuration."""

    low_stock_threshold: float = 0.2
    restore_expiration_days: int = 30
    expiring_soon_days: int = 3


@dataclass
class PredictionsConfig:
    """Prediction engine configuration."""

    history_months: int = 2
    batch_limit: int = 8
    time_budget_ms: int = 15000
    inter_call_delay_ms: int = 500
    purchase_horizon_days: int = 14
    rate_limit_cooldown_s: float = 60.0
    enrichment_enabled: bool = True


@dataclass
class CompletionConfig:
    """Text-completion service configuration."""

    api_url: str = DEFAULT_API_URL
    model: str = "llama-3.3-70b-versatile"
    parse_model: str = "llama-3.1-8b-instant"
    temperature: float = 0.1
    max_tokens: int = 500
    timeout_s: float = 20.0
    api_key_env: str = "GROQ_API_KEY"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"


@dataclass
class Config:
    """Complete application configuration."""

    data: DataConfig
    defaults: DefaultsConfig
    inventory: InventoryConfig
    predictions: PredictionsConfig
    completion: CompletionConfig
    logging: LoggingConfig


class ConfigManager:
    """Manages application configuration from TOML files."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional explicit path to config file.
                        If not provided, searches standard locations.
        """
        self.config_path = config_path or self._find_config()
        self._config = self._load_config()

    @property
    def data(self) -> DataConfig:
        """Get data configuration."""
        return self._config.data

    @property
    def defaults(self) -> DefaultsConfig:
        """Get defaults configuration."""
        return self._config.defaults

    @property
    def inventory(self) -> InventoryConfig:
        """Get inventory configuration."""
        return self._config.inventory

    @property
    def predictions(self) -> PredictionsConfig:
        """Get predictions configuration."""
        return self._config.predictions

    @property
    def completion(self) -> CompletionConfig:
        """Get completion service configuration."""
        return self._config.completion

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        return self._config.logging

    def _find_config(self) -> Path:
        """Find config file in standard locations."""
        locations = [
            Path.cwd() / "config.toml",
            Path.home() / ".config" / "pantry-tracker" / "config.toml",
            Path.home() / ".pantry-tracker" / "config.toml",
        ]

        for loc in locations:
            if loc.exists():
                return loc

        # Return default location if none found
        return Path.home() / ".config" / "pantry-tracker" / "config.toml"

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "rb") as f:
            data = tomllib.load(f)

        data_section = data.get("data", {})
        defaults = data.get("defaults", {})
        inventory = data.get("inventory", {})
        predictions = data.get("predictions", {})
        completion = data.get("completion", {})

        return Config(
            data=DataConfig(
                storage_dir=Path(
                    data_section.get("storage_dir", "~/pantry-tracker/data")
                ).expanduser(),
                backend=data_section.get("backend", "json"),
            ),
            defaults=DefaultsConfig(
                household=defaults.get("household", "home"),
                category=defaults.get("category", "other"),
                unit=defaults.get("unit", "count"),
            ),
            inventory=InventoryConfig(
                low_stock_threshold=inventory.get("low_stock_threshold", 0.2),
                restore_expiration_days=inventory.get("restore_expiration_days", 30),
                expiring_soon_days=inventory.get("expiring_soon_days", 3),
            ),
            predictions=PredictionsConfig(
                history_months=predictions.get("history_months", 2),
                batch_limit=predictions.get("batch_limit", 8),
                time_budget_ms=predictions.get("time_budget_ms", 15000),
                inter_call_delay_ms=predictions.get("inter_call_delay_ms", 500),
                purchase_horizon_days=predictions.get("purchase_horizon_days", 14),
                rate_limit_cooldown_s=predictions.get("rate_limit_cooldown_s", 60.0),
                enrichment_enabled=predictions.get("enrichment_enabled", True),
            ),
            completion=CompletionConfig(
                api_url=completion.get("api_url", DEFAULT_API_URL),
                model=completion.get("model", "llama-3.3-70b-versatile"),
                parse_model=completion.get("parse_model", "llama-3.1-8b-instant"),
                temperature=completion.get("temperature", 0.1),
                max_tokens=completion.get("max_tokens", 500),
                timeout_s=completion.get("timeout_s", 20.0),
                api_key_env=completion.get("api_key_env", "GROQ_API_KEY"),
            ),
            logging=LoggingConfig(level=data.get("logging", {}).get("level", "WARNING")),
        )

    def _default_config(self) -> Config:
        """Return default configuration."""
        return Config(
            data=DataConfig(storage_dir=Path.home() / "pantry-tracker" / "data"),
            defaults=DefaultsConfig(),
            inventory=InventoryConfig(),
            predictions=PredictionsConfig(),
            completion=CompletionConfig(),
            logging=LoggingConfig(),
        )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-notation path.

        Args:
            key_path: Dot-separated path like 'data.storage_dir'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value: Any = self._config

        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        return value if value is not None else default
