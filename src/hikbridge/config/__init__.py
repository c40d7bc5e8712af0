"""Configuration loading."""

from hikbridge.config.loader import (
    ConfigError,
    ConfigErrorCode,
    format_validation_error,
    load_config,
    load_config_from_dict,
    resolve_env_var,
    resolve_password,
)

__all__ = [
    "ConfigError",
    "ConfigErrorCode",
    "format_validation_error",
    "load_config",
    "load_config_from_dict",
    "resolve_env_var",
    "resolve_password",
]
