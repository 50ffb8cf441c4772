"""
cfgsync - process-startup configuration loader

Loads configuration from a local file or a remote etcd key, overlays
environment variables and command-line flags, and keeps the in-memory
snapshot in sync with the source.

Usage:
    service = await init_config("APP", "config")
    port = service.get("server.port")
    ...
    await service.stop()
"""

from .config import ConfigService, ConfigStore, Snapshot, init_config, resolve
from .common.exceptions import (
    CfgSyncError,
    StartupError,
    InvalidLocator,
    UnsupportedProvider,
    MissingEncoding,
    SourceUnreadable,
    ConfigFileNotFound,
    InvalidSetting,
    DecodeError,
    RefreshFailed,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigService",
    "ConfigStore",
    "Snapshot",
    "init_config",
    "resolve",
    "CfgSyncError",
    "StartupError",
    "InvalidLocator",
    "UnsupportedProvider",
    "MissingEncoding",
    "SourceUnreadable",
    "ConfigFileNotFound",
    "InvalidSetting",
    "DecodeError",
    "RefreshFailed",
]
