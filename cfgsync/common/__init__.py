"""
Common Utilities

Shared modules used across the loader:
- state.py - Atomic snapshot reference
- config.py - Source descriptors and loader settings
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
"""

from .state import SnapshotCell
from .config import (
    LocalSource,
    RemoteDescriptor,
    LoaderSettings,
    SourceKind,
    SUPPORTED_PROVIDERS,
    SUPPORTED_EXTENSIONS,
    DEFAULT_SEARCH_PATHS,
)
from .exceptions import (
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
from .logging_setup import (
    setup_logging,
    get_service_logger,
    configure_all,
)

__all__ = [
    # State
    "SnapshotCell",
    # Config
    "LocalSource",
    "RemoteDescriptor",
    "LoaderSettings",
    "SourceKind",
    "SUPPORTED_PROVIDERS",
    "SUPPORTED_EXTENSIONS",
    "DEFAULT_SEARCH_PATHS",
    # Exceptions
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
    # Logging
    "setup_logging",
    "get_service_logger",
    "configure_all",
]
