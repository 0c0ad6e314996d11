# Configuration - registry of typed keys and the two-tier manager

from .manager import ConfigManager, initialize_config
from .registry import REGISTRY, ConfigKey, get_config_key, validate_config_value

__all__ = [
    "ConfigManager",
    "ConfigKey",
    "REGISTRY",
    "get_config_key",
    "initialize_config",
    "validate_config_value",
]
