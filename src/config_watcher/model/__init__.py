"""Data models for the configuration watcher."""

from config_watcher.model.config import DEFAULT_LOCKFILE, AppConfig
from config_watcher.model.service import (
    CustomServiceType,
    Permissions,
    ServiceConfig,
    ServiceKind,
)
from config_watcher.model.settings import GlobalSettings

__all__ = [
    "AppConfig",
    "CustomServiceType",
    "DEFAULT_LOCKFILE",
    "GlobalSettings",
    "Permissions",
    "ServiceConfig",
    "ServiceKind",
]
