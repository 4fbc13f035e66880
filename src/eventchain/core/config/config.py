"""
Static configuration management for eventchain.

Purpose
-------
Provides centralized configuration loaded from environment variables (with
.env support) and optional YAML files, with type validation and bounds
checking. The event bus reads its defaults from here when a constructor
argument is left unset.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Overlay settings from a YAML file
- Provide type-safe access to all configuration values
- Track which values came from the environment versus defaults

Non-Responsibilities
--------------------
- Per-bus settings (passed to EventBus directly)
- Runtime listener capacity changes (EventBus.set_max_listeners)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- Auto-loads on module import via Config.load()
- Invalid environment values fall back to defaults and are recorded

Dependencies
------------
- python-dotenv: Environment variable loading
- PyYAML: YAML overlay files

Environment Variables
---------------------
All optional, prefixed with EVENTCHAIN_:
- ENVIRONMENT: Environment type (default: development)
- DEBUG: Debug mode flag (default: False)
- LOG_LEVEL: Logging level (default: INFO)
- LOG_JSON: Force JSON log output (default: production only)
- LOG_COLORS: Colored console logs on a TTY (default: True)
- LOG_TO_FILE: Enable the rotating JSON log file (default: False)
- LOGS_DIR: Directory for the log file (default: ./logs)
- MAX_LISTENERS: Per-event listener capacity, 0 = unlimited (default: 10)
- METRICS_ENABLED: Collect bus metrics (default: True)
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from eventchain.core.config.errors import ConfigValidationError

# Load environment variables from .env file
load_dotenv()

ENV_PREFIX = "EVENTCHAIN_"


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        Example
        -------
        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("invalid") == Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            logging.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


class _ConfigLoadMetrics:
    """
    Internal metrics tracker for configuration loading.

    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self):
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, value: Any, default: Any):
        """Record whether a config value came from environment."""
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str):
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
            "last_reload": self.last_reload,
        }


class Config:
    """
    Centralized static configuration for eventchain.

    Usage
    -----
    >>> Config.MAX_LISTENERS
    10
    >>> Config.load_yaml("eventchain.yaml")
    >>> Config.get_config_summary()["max_listeners"]
    25
    """

    # =========================================================================
    # Internal State
    # =========================================================================

    _metrics: Optional[_ConfigLoadMetrics] = None

    # =========================================================================
    # Environment / Logging
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True
    LOG_TO_FILE: bool = False
    LOGS_DIR: Path = Path.cwd() / "logs"

    # =========================================================================
    # Event Bus Defaults
    # =========================================================================

    MAX_LISTENERS: int = 10
    METRICS_ENABLED: bool = True

    # Setting name (as used in YAML files) -> expected type
    _YAML_SETTINGS: Dict[str, type] = {
        "environment": str,
        "debug": bool,
        "log_level": str,
        "log_json": bool,
        "log_colors": bool,
        "log_to_file": bool,
        "logs_dir": str,
        "max_listeners": int,
        "metrics_enabled": bool,
    }

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls):
        if cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _record_error(cls, key: str, error: str) -> None:
        logging.warning(error)
        if cls._metrics:
            cls._metrics.record_validation_error(key, error)

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Safely parse integer from environment with validation.

        Parameters
        ----------
        key:
            Setting name without the EVENTCHAIN_ prefix.
        default:
            Default value if not set or invalid.
        min_val:
            Minimum allowed value (inclusive).
        max_val:
            Maximum allowed value (inclusive).

        Example
        -------
        >>> Config._safe_int("MAX_LISTENERS", 10, min_val=0)
        10
        """
        cls._init_metrics()
        env_key = ENV_PREFIX + key
        raw_value = os.getenv(env_key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default, default)
            return default

        try:
            value = int(raw_value)
        except ValueError:
            cls._record_error(
                key, f"{env_key}='{raw_value}' is not a valid integer, using default {default}"
            )
            return default

        if min_val is not None and value < min_val:
            cls._record_error(
                key, f"{env_key}={value} is below minimum {min_val}, using default {default}"
            )
            return default

        if max_val is not None and value > max_val:
            cls._record_error(
                key, f"{env_key}={value} exceeds maximum {max_val}, using default {default}"
            )
            return default

        cls._metrics.record_env_load(key, True, value, default)
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """
        Safely parse boolean from environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).
        """
        cls._init_metrics()
        env_key = ENV_PREFIX + key
        raw_value = os.getenv(env_key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default, default)
            return default

        normalized = raw_value.lower().strip()
        if normalized in {"true", "yes", "1", "on"}:
            value = True
        elif normalized in {"false", "no", "0", "off"}:
            value = False
        else:
            cls._record_error(
                key, f"{env_key}='{raw_value}' is not a valid boolean, using default {default}"
            )
            return default

        cls._metrics.record_env_load(key, True, value, default)
        return value

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        cls._init_metrics()
        env_key = ENV_PREFIX + key
        value = os.getenv(env_key, default)
        cls._metrics.record_env_load(key, env_key in os.environ, value, default)
        return value

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load all configuration from environment variables with validation.

        Called automatically on module import; call again to pick up
        environment changes.
        """
        cls._init_metrics()

        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", "development")
        ).value
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO").upper()
        if cls.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            cls._record_error("LOG_LEVEL", f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
            cls.LOG_LEVEL = "INFO"
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_COLORS = bool(cls._safe_bool("LOG_COLORS", True))
        cls.LOG_TO_FILE = bool(cls._safe_bool("LOG_TO_FILE", False))
        cls.LOGS_DIR = Path(cls._safe_str("LOGS_DIR", str(Path.cwd() / "logs")))

        cls.MAX_LISTENERS = cls._safe_int("MAX_LISTENERS", 10, min_val=0)
        cls.METRICS_ENABLED = bool(cls._safe_bool("METRICS_ENABLED", True))

        cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def load_yaml(cls, path: Union[str, Path]) -> None:
        """
        Overlay settings from a YAML file.

        Keys are the lower-case setting names (e.g. ``max_listeners``).
        The whole document is validated before any setting is applied.

        Raises
        ------
        ConfigValidationError:
            If the document is not a mapping, names an unknown setting, or
            holds a value of the wrong type.
        FileNotFoundError:
            If the file does not exist.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"{path}: expected a mapping at the top level, got {type(data).__name__}"
            )

        validated: Dict[str, Any] = {}
        for key, value in data.items():
            expected = cls._YAML_SETTINGS.get(key)
            if expected is None:
                raise ConfigValidationError(f"{path}: unknown setting '{key}'")
            # bool is a subclass of int; reject it where an int is expected
            if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
                raise ConfigValidationError(
                    f"{path}: '{key}' must be {expected.__name__}, got {type(value).__name__}"
                )
            validated[key] = value

        if validated.get("max_listeners", 0) < 0:
            raise ConfigValidationError(f"{path}: 'max_listeners' must be >= 0")

        for key, value in validated.items():
            if key == "logs_dir":
                value = Path(value)
            elif key == "log_level":
                value = value.upper()
            elif key == "environment":
                value = Environment.from_string(value).value
            setattr(cls, key.upper(), value)

        logging.getLogger(__name__).info(
            "Configuration overlay applied",
            extra={"path": str(path), "keys": sorted(validated)},
        )

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "testing"

    # =========================================================================
    # Metrics & Summary
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Optional[_ConfigLoadMetrics]:
        """Get configuration loading metrics."""
        return cls._metrics

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """
        Get configuration summary for debugging.

        Example
        -------
        >>> Config.get_config_summary()["environment"]
        'development'
        """
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "log_json": cls.LOG_JSON,
            "log_to_file": cls.LOG_TO_FILE,
            "logs_dir": str(cls.LOGS_DIR),
            "max_listeners": cls.MAX_LISTENERS,
            "metrics_enabled": cls.METRICS_ENABLED,
        }


# Auto-load on import
Config.load()
