"""
Configuration Dataclasses

Type-safe structures describing where configuration comes from
and how the loader behaves.
"""

import os
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import InvalidSetting


class SourceKind(str, Enum):
    """Kinds of configuration source"""
    LOCAL = "local"
    REMOTE = "remote"


# Remote backends we can fetch from
SUPPORTED_PROVIDERS = frozenset({"etcd"})

# Extensions probed when searching the default paths, in order
SUPPORTED_EXTENSIONS = ("yaml", "yml", "json", "toml", "ini", "env", "dotenv")

# Searched in order when --config is absent, first match wins
DEFAULT_SEARCH_PATHS = (
    "/opt/cfgsync/config",
    "$HOME/.cfgsync/",
    "./config",
    "../../config",
    "../../../config",
)

# Re-fetch interval for remote sources
REMOTE_WATCH_INTERVAL_S = 5.0
# Stat poll interval for local files
FILE_WATCH_INTERVAL_S = 1.0
# Timeout for a single remote fetch
HTTP_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class LocalSource:
    """A configuration file on the local filesystem"""
    path: str
    encoding_type: str = ""

    kind = SourceKind.LOCAL

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class RemoteDescriptor:
    """
    A key in a remote key-value store.

    e.g. etcd+http://127.0.0.1:2380/path/to/key.yaml gives
    provider=etcd, endpoint=http://127.0.0.1:2380, path=/path/to/key.yaml
    and encoding_type=yaml
    """
    provider: str
    endpoint: str
    path: str
    encoding_type: str

    kind = SourceKind.REMOTE

    def __str__(self) -> str:
        return f"{self.provider}:{self.endpoint}{self.path}"


@dataclass
class LoaderSettings:
    """Loader runtime tunables"""
    search_paths: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_PATHS))
    extensions: list[str] = field(default_factory=lambda: list(SUPPORTED_EXTENSIONS))
    remote_interval_s: float = REMOTE_WATCH_INTERVAL_S
    file_interval_s: float = FILE_WATCH_INTERVAL_S
    http_timeout_s: float = HTTP_TIMEOUT_S

    @classmethod
    def from_env(cls) -> "LoaderSettings":
        """Build settings, overriding intervals from CFGSYNC_* variables"""
        return cls(
            remote_interval_s=_env_seconds("CFGSYNC_REMOTE_INTERVAL_S", REMOTE_WATCH_INTERVAL_S),
            file_interval_s=_env_seconds("CFGSYNC_FILE_INTERVAL_S", FILE_WATCH_INTERVAL_S),
            http_timeout_s=_env_seconds("CFGSYNC_HTTP_TIMEOUT_S", HTTP_TIMEOUT_S),
        )


def _env_seconds(name: str, default: float) -> float:
    """Positive number of seconds from the environment"""
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise InvalidSetting(name, raw, "expected a number of seconds") from None
    if value <= 0:
        raise InvalidSetting(name, raw, "must be greater than zero")
    return value
