"""Observability subsystem for the broker proxy.

Provides structlog configuration bridged onto the standard logging module
and the config subscriber that applies log level changes at runtime.
"""

from .logging_config import configure_logging, on_config_updated, set_log_level

__all__ = ["configure_logging", "on_config_updated", "set_log_level"]
