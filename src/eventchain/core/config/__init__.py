"""
Configuration subsystem for eventchain.

Exports the static `Config` settings holder and its error types.
"""

from eventchain.core.config.config import Config, Environment
from eventchain.core.config.errors import ConfigError, ConfigValidationError

__all__ = [
    "Config",
    "Environment",
    "ConfigError",
    "ConfigValidationError",
]
