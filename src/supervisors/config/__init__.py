from supervisors.config.settings import (
    ConfigError,
    LoggingConfig,
    PowerConfig,
    ReporterConfig,
    Settings,
    SystemConfig,
    get_settings,
    load_settings,
)

__all__ = [
    "ConfigError",
    "LoggingConfig",
    "PowerConfig",
    "ReporterConfig",
    "Settings",
    "SystemConfig",
    "get_settings",
    "load_settings",
]
