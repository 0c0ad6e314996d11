"""Configuration Registry - Defines all configuration keys with tier classification.

This module provides the ConfigKey dataclass and REGISTRY dictionary that defines
all configuration options available in the broker proxy.

Two-Tier System:
- Static Config (tier="static"): Requires restart to apply changes
  Examples: listen port, broker credentials, Cloud Controller endpoint
- Dynamic Config (tier="dynamic"): Can be hot-reloaded without restart
  Examples: log level, Cloud Controller request timeout

Keys marked required have no usable default and must be supplied through the
TOML file or the environment before the broker starts.
"""

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional
from urllib.parse import urlparse


@dataclass
class ConfigKey:
    """Defines a single configuration key with validation and tier classification.

    Attributes:
        tier: "static" (restart required) or "dynamic" (hot-reloadable)
        value_type: Expected Python type (str, int, float, bool, list)
        default: Default value if not specified in config files
        min_value: Minimum value for numeric types (optional)
        max_value: Maximum value for numeric types (optional)
        restart_required: Auto-derived from tier (True for static, False for dynamic)
        validator: Custom validation function (optional)
        required: Key must be provided explicitly (default is ignored)
    """
    tier: Literal["static", "dynamic"]
    value_type: type
    default: Any
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
    restart_required: bool = False
    validator: Optional[Callable[[Any], bool]] = None
    required: bool = False

    def __post_init__(self):
        """Auto-derive restart_required from tier."""
        self.restart_required = (self.tier == "static")


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# Configuration Registry
# =======================
# All configuration keys must be registered here with their tier classification.

REGISTRY: dict[str, ConfigKey] = {
    # ===== BROKER PROTOCOL SERVER (Static - bound at startup) =====
    "broker.host": ConfigKey(
        tier="static",
        value_type=str,
        default="0.0.0.0",
    ),
    "broker.port": ConfigKey(
        tier="static",
        value_type=int,
        default=8080,
        min_value=1,
        max_value=65535,
    ),
    "broker.username": ConfigKey(
        tier="static",
        value_type=str,
        default=None,
        validator=lambda v: len(v) > 0,
        required=True,
    ),
    "broker.password": ConfigKey(
        tier="static",
        value_type=str,
        default=None,
        validator=lambda v: len(v) > 0,
        required=True,
    ),

    # ===== CLOUD CONTROLLER (Static endpoint/credentials, Dynamic tuning) =====
    "cf.api_url": ConfigKey(
        tier="static",
        value_type=str,
        default=None,
        validator=_is_http_url,
        required=True,
    ),
    "cf.username": ConfigKey(
        tier="static",
        value_type=str,
        default=None,
        validator=lambda v: len(v) > 0,
        required=True,
    ),
    "cf.password": ConfigKey(
        tier="static",
        value_type=str,
        default=None,
        validator=lambda v: len(v) > 0,
        required=True,
    ),
    "cf.skip_ssl_validation": ConfigKey(
        tier="static",
        value_type=bool,
        default=False,
    ),
    "cf.request_timeout_seconds": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=30,
        min_value=1,
        max_value=600,
    ),

    # ===== CATALOG (Static - protocol limit) =====
    "catalog.description_max_length": ConfigKey(
        tier="static",
        value_type=int,
        default=254,
        min_value=1,
        max_value=254,
    ),

    # ===== LOGGING (Dynamic verbosity) =====
    "logging.level": ConfigKey(
        tier="dynamic",
        value_type=str,
        default="INFO",
        validator=lambda v: v in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Get configuration key definition from registry.

    Args:
        key: Configuration key path (e.g., "broker.port")

    Returns:
        ConfigKey definition

    Raises:
        KeyError: If key not found in registry
    """
    if key not in REGISTRY:
        raise KeyError(f"Configuration key '{key}' not found in registry")
    return REGISTRY[key]


def validate_config_value(key: str, value: Any) -> tuple[bool, Optional[str]]:
    """Validate a configuration value against its registered definition.

    Args:
        key: Configuration key path
        value: Value to validate

    Returns:
        Tuple of (is_valid, error_message)
        error_message is None if valid
    """
    try:
        config_key = get_config_key(key)
    except KeyError as e:
        return False, str(e)

    if value is None:
        if config_key.required:
            return False, "Required value is missing"
        return True, None

    # bool is a subclass of int, reject it for numeric keys
    if config_key.value_type is int and isinstance(value, bool):
        return False, "Expected type int, got bool"

    # Type validation
    if not isinstance(value, config_key.value_type):
        return False, f"Expected type {config_key.value_type.__name__}, got {type(value).__name__}"

    # Range validation for numeric types
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if config_key.min_value is not None and value < config_key.min_value:
            return False, f"Value {value} below minimum {config_key.min_value}"
        if config_key.max_value is not None and value > config_key.max_value:
            return False, f"Value {value} above maximum {config_key.max_value}"

    # Custom validator
    if config_key.validator is not None:
        try:
            if not config_key.validator(value):
                return False, f"Custom validation failed for value: {value}"
        except Exception as e:
            return False, f"Validator error: {str(e)}"

    return True, None


def get_default_values() -> dict[str, Any]:
    """Get default values for all configuration keys."""
    return {key: config_key.default for key, config_key in REGISTRY.items()}


def get_static_keys() -> list[str]:
    """Get list of all static configuration keys (restart required)."""
    return [key for key, config_key in REGISTRY.items() if config_key.tier == "static"]


def get_dynamic_keys() -> list[str]:
    """Get list of all dynamic configuration keys (hot-reloadable)."""
    return [key for key, config_key in REGISTRY.items() if config_key.tier == "dynamic"]


def get_required_keys() -> list[str]:
    """Get list of keys that have no default and must be supplied."""
    return [key for key, config_key in REGISTRY.items() if config_key.required]
