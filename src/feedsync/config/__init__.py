"""
Configuration management: settings file parsing, environment overlay, validation.
"""

from feedsync.config.loader import (
    CatalogSettings,
    DispatchSettings,
    LoggingSettings,
    ScheduleSettings,
    Settings,
    TransferSettings,
    build_settings,
    load_settings,
)
from feedsync.config.resolver import resolve_config

__all__ = [
    "CatalogSettings",
    "DispatchSettings",
    "LoggingSettings",
    "ScheduleSettings",
    "Settings",
    "TransferSettings",
    "build_settings",
    "load_settings",
    "resolve_config",
]
