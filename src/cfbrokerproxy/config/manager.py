"""Configuration Manager - Two-Tier Configuration System.

This module implements the configuration management system for the broker proxy:
1. Static configuration loading from TOML files and environment variables
2. Dynamic configuration defaults with in-process updates
3. Update notification for subscribers (e.g. log level changes)

Design:
- Static Config: Loaded at startup from default.toml + env overrides (restart required)
- Dynamic Config: Seeded from TOML, updatable at runtime through update_dynamic_config()
- Required keys (broker and Cloud Controller credentials) have no default and
  fail startup when absent
"""

import os
from pathlib import Path
from typing import Any, Optional
from collections.abc import Callable

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore

from dotenv import load_dotenv
import structlog

from .registry import (
    get_config_key,
    validate_config_value,
    get_default_values,
    get_static_keys,
    get_dynamic_keys,
)

logger = structlog.get_logger()

ENV_PREFIX = "CFBROKER_"

# Bare environment variables honoured for platform compatibility (PORT is
# injected by Cloud Foundry itself). Prefixed variables take precedence.
PLATFORM_ENV_ALIASES = {
    "broker.port": "PORT",
}

# Secret keys that should never be logged
SENSITIVE_KEYS = {
    "password",
    "token",
}


def _redact_sensitive_value(key: str, value: Any) -> Any:
    """Redact sensitive configuration values for logging.

    Args:
        key: Configuration key
        value: Configuration value

    Returns:
        Original value if not sensitive, otherwise "[REDACTED]"
    """
    key_lower = key.lower()
    for sensitive_key in SENSITIVE_KEYS:
        if sensitive_key in key_lower:
            return "[REDACTED]"
    return value


def env_key_for(key: str) -> str:
    """Return the environment variable name overriding a config key.

    Example: broker.port -> CFBROKER_BROKER_PORT
    """
    return ENV_PREFIX + key.replace(".", "_").upper()


class ConfigManager:
    """Manages two-tier configuration system with update notifications.

    Attributes:
        static_config: Static configuration (restart required)
        dynamic_config: Dynamic configuration (hot-reloadable)
        _subscribers: Subscribers notified on dynamic config updates
    """

    def __init__(self, config_file: Optional[Path] = None, env_file: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file (default: config/default.toml)
            env_file: Path to .env file (default: .env in project root)
        """
        self.static_config: dict[str, Any] = {}
        self.dynamic_config: dict[str, Any] = {}
        self._subscribers: list[Callable[[str, Any], None]] = []

        if config_file is None:
            config_file = Path("config/default.toml")
        if env_file is None:
            env_file = Path(".env")

        self.config_file = config_file
        self.env_file = env_file

        logger.info("config_manager_initialized",
                   config_file=str(config_file),
                   env_file=str(env_file))

    def load_static_config(self) -> dict[str, Any]:
        """Load static configuration from TOML and environment variables.

        Precedence: code defaults < TOML file < environment variables

        Returns:
            Dictionary of static configuration key-value pairs

        Raises:
            ValueError: If a value fails validation or a required key is missing
        """
        logger.info("loading_static_config", config_file=str(self.config_file))

        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.info("env_file_loaded", env_file=str(self.env_file))

        static_keys = get_static_keys()
        config = self._apply_toml(static_keys)
        self._apply_env_overrides(config, static_keys)
        self._validate(config, "static")

        self.static_config = config
        logger.info("static_config_loaded",
                   keys_count=len(config),
                   values={k: _redact_sensitive_value(k, v) for k, v in config.items()})
        return config

    def load_dynamic_config_defaults(self) -> dict[str, Any]:
        """Load dynamic configuration seed values from TOML and environment.

        Returns:
            Dictionary of dynamic configuration key-value pairs
        """
        logger.info("loading_dynamic_config_defaults")

        dynamic_keys = get_dynamic_keys()
        config = self._apply_toml(dynamic_keys)
        self._apply_env_overrides(config, dynamic_keys)
        self._validate(config, "dynamic")

        self.dynamic_config = config
        logger.info("dynamic_config_defaults_loaded", keys_count=len(config))
        return config

    def update_dynamic_config(self, key: str, value: Any) -> None:
        """Update a dynamic configuration value and notify subscribers.

        Args:
            key: Configuration key path
            value: New value

        Raises:
            KeyError: If key is not a dynamic config key
            ValueError: If value validation fails
        """
        config_key_def = get_config_key(key)

        if config_key_def.tier != "dynamic":
            raise KeyError(f"Cannot hot-update static config key '{key}' - restart required")

        is_valid, error_msg = validate_config_value(key, value)
        if not is_valid:
            raise ValueError(f"Config validation failed for '{key}': {error_msg}")

        old_value = self.dynamic_config.get(key)
        self.dynamic_config[key] = value

        logger.info("dynamic_config_updated",
                   key=key,
                   old_value=_redact_sensitive_value(key, old_value),
                   new_value=_redact_sensitive_value(key, value))

        self._notify_subscribers(key, value)

    def _notify_subscribers(self, key: str, value: Any) -> None:
        """Notify all subscribers of configuration update.

        Subscriber failures are logged and do not stop the remaining subscribers.
        """
        for subscriber in self._subscribers:
            try:
                subscriber(key, value)
            except Exception as e:
                logger.error("subscriber_notification_failed",
                           key=key,
                           subscriber=getattr(subscriber, "__name__", repr(subscriber)),
                           error=str(e))

    def subscribe(self, callback: Callable[[str, Any], None]) -> None:
        """Subscribe to configuration update events.

        Args:
            callback: Function called when config is updated
                     Signature: (key: str, value: Any) -> None
        """
        self._subscribers.append(callback)
        logger.info("config_subscriber_added",
                   callback=getattr(callback, "__name__", repr(callback)))

    def get(self, key: str) -> Any:
        """Get configuration value (static or dynamic).

        Raises:
            KeyError: If key not found
        """
        config_key_def = get_config_key(key)

        if config_key_def.tier == "static":
            return self.static_config.get(key, config_key_def.default)
        else:
            return self.dynamic_config.get(key, config_key_def.default)

    def _apply_toml(self, keys: list[str]) -> dict[str, Any]:
        defaults = get_default_values()
        config = {key: defaults[key] for key in keys}

        if self.config_file.exists():
            with open(self.config_file, "rb") as f:
                toml_data = tomllib.load(f)

            flattened = self._flatten_toml(toml_data)
            for key in keys:
                if key in flattened:
                    config[key] = flattened[key]

            logger.info("toml_config_loaded", keys_count=len(flattened))
        else:
            logger.warning("config_file_not_found",
                          config_file=str(self.config_file),
                          using_defaults=True)
        return config

    def _apply_env_overrides(self, config: dict[str, Any], keys: list[str]) -> None:
        """Apply environment variable overrides in place.

        Environment variables use the CFBROKER_ prefix and underscores.
        Example: CFBROKER_CF_API_URL overrides cf.api_url
        """
        for key in keys:
            candidates = []
            if key in PLATFORM_ENV_ALIASES:
                candidates.append(PLATFORM_ENV_ALIASES[key])
            candidates.append(env_key_for(key))

            for env_key in candidates:
                env_value = os.getenv(env_key)
                if env_value is None or env_value == "":
                    continue
                config_key_def = get_config_key(key)
                try:
                    config[key] = self._parse_env_value(env_value, config_key_def.value_type)
                except ValueError as e:
                    logger.error("env_parse_error", key=key, env_key=env_key, error=str(e))
                    raise ValueError(f"Failed to parse env var {env_key}: {e}")
                logger.info("env_override_applied", key=key, env_key=env_key)

    def _validate(self, config: dict[str, Any], tier: str) -> None:
        missing = [key for key, value in config.items()
                   if value is None and get_config_key(key).required]
        if missing:
            env_names = [env_key_for(key) for key in missing]
            logger.error("required_config_missing", keys=missing, env_vars=env_names)
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)} "
                f"(set {', '.join(env_names)})"
            )

        for key, value in config.items():
            is_valid, error_msg = validate_config_value(key, value)
            if not is_valid:
                logger.error(f"{tier}_config_validation_failed", key=key, error=error_msg)
                raise ValueError(
                    f"{tier.capitalize()} config validation failed for '{key}': {error_msg}"
                )

    def _flatten_toml(self, data: dict) -> dict[str, Any]:
        """Flatten nested TOML structure to dotted keys.

        Example: {"broker": {"port": 8080}} -> {"broker.port": 8080}
        """
        result = {}

        def _flatten(d: dict, prefix: str = ""):
            for key, value in d.items():
                full_key = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    _flatten(value, full_key)
                else:
                    result[full_key] = value

        _flatten(data)
        return result

    def _parse_env_value(self, value: str, target_type: type) -> Any:
        """Parse environment variable string to target type.

        Raises:
            ValueError: If parsing fails
        """
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")
        elif target_type == int:
            return int(value)
        elif target_type == float:
            return float(value)
        elif target_type == list:
            return [item.strip() for item in value.split(",")]
        elif target_type == str:
            return value
        else:
            raise ValueError(f"Unsupported type for env parsing: {target_type}")


def initialize_config(config_file: Optional[Path] = None,
                     env_file: Optional[Path] = None) -> ConfigManager:
    """Build a ConfigManager with static config and dynamic defaults loaded.

    Args:
        config_file: Path to TOML config file
        env_file: Path to .env file

    Returns:
        Initialized ConfigManager instance
    """
    config = ConfigManager(config_file, env_file)
    config.load_static_config()
    config.load_dynamic_config_defaults()
    return config
