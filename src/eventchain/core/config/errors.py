"""
Configuration error hierarchy for eventchain.

Exception Hierarchy
-------------------
ConfigError (base)
└── ConfigValidationError (bad file contents, unknown keys, wrong types)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     Config.load_yaml("eventchain.yaml")
    ... except ConfigError as e:
    ...     logger.error(f"Config load failed: {e}")
    """
    pass


class ConfigValidationError(ConfigError):
    """
    Raised when configuration validation fails.

    This exception is raised when:
    - A YAML document is not a mapping
    - A key is not a known setting
    - A value has the wrong type or is out of range
    """
    pass


__all__ = [
    "ConfigError",
    "ConfigValidationError",
]
