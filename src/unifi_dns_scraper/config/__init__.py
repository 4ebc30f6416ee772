"""Configuration loading and validation."""
from .settings import (
    ScraperConfig,
    ControllerSettings,
    HostsfileSettings,
    DatabaseSettings,
    ProcessingSettings,
    StaticHost,
    BlockRule,
    AliasRule,
    ConfigurationInvalid,
    find_config,
)

__all__ = [
    "ScraperConfig",
    "ControllerSettings",
    "HostsfileSettings",
    "DatabaseSettings",
    "ProcessingSettings",
    "StaticHost",
    "BlockRule",
    "AliasRule",
    "ConfigurationInvalid",
    "find_config",
]
