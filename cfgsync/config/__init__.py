"""
Config Service - Configuration Loading

Responsibilities:
- Resolve the config source (local file or remote etcd key)
- Merge defaults, source content, environment and flags into a snapshot
- Watch the source and swap in a new snapshot on change
"""

from .resolver import resolve, find_config_file
from .store import ConfigStore, Snapshot
from .watcher import FileWatcher, RemoteWatcher, WatcherState
from .service import ConfigService, init_config

__all__ = [
    "resolve",
    "find_config_file",
    "ConfigStore",
    "Snapshot",
    "FileWatcher",
    "RemoteWatcher",
    "WatcherState",
    "ConfigService",
    "init_config",
]
