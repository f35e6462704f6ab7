"""
Slashwatch Unified Configuration

Loads config.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    MonitorConfig,
    NetworkConfig,
    ContractsConfig,
    PollingConfig,
    CacheConfig,
    HistoryConfig,
    NotificationsConfig,
    ApiConfig,
    apply_env,
    load_config,
    protocol_defaults_from_dict,
    validate_protocol_parameters,
)

__all__ = [
    "MonitorConfig",
    "NetworkConfig",
    "ContractsConfig",
    "PollingConfig",
    "CacheConfig",
    "HistoryConfig",
    "NotificationsConfig",
    "ApiConfig",
    "apply_env",
    "load_config",
    "protocol_defaults_from_dict",
    "validate_protocol_parameters",
]
