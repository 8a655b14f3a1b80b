from .config_loader import (
    DatabaseSettings,
    FlowLoomConfig,
    FlowSettings,
    LoggingSettings,
    get_config,
    get_config_value,
    load_config,
    reload_config,
)

__all__ = [
    "DatabaseSettings",
    "FlowLoomConfig",
    "FlowSettings",
    "LoggingSettings",
    "get_config",
    "get_config_value",
    "load_config",
    "reload_config",
]
