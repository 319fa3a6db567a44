"""Bot configuration loading and validation."""

from ghostpixel.configs.loader import (
    BotConfig,
    ConfigError,
    EnergyConfig,
    LoggingConfig,
    PlacementConfig,
    ServerConfig,
    SessionConfig,
    SyncConfig,
    load_config,
)

__all__ = [
    "BotConfig",
    "ConfigError",
    "EnergyConfig",
    "LoggingConfig",
    "PlacementConfig",
    "ServerConfig",
    "SessionConfig",
    "SyncConfig",
    "load_config",
]
