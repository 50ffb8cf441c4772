"""
Config Store

Holds the current configuration snapshot and builds new ones.

A snapshot is the merge of four layers, lowest precedence first:
1. defaults set in code
2. decoded file / remote content
3. environment variables ({PREFIX}_{KEY}, dots become underscores)
4. explicit command-line overrides

Snapshots are immutable and replaced wholesale on every reload.
"""

import asyncio
import hashlib
import json
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Iterator

from cfgsync.common.config import HTTP_TIMEOUT_S, LocalSource, RemoteDescriptor
from cfgsync.common.exceptions import SourceUnreadable
from cfgsync.common.logging_setup import get_service_logger
from cfgsync.common.state import SnapshotCell

from .codec import decode
from .resolver import encoding_from_path
from .sync import RemoteSync

logger = get_service_logger("config.store")

Source = LocalSource | RemoteDescriptor
ChangeCallback = Callable[["Snapshot"], None]

_TRUE_STRINGS = frozenset({"1", "t", "true", "y", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "f", "false", "n", "no", "off", ""})
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|us|ns|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 1e-3, "us": 1e-6, "ns": 1e-9}


def flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """
    Flatten nested mappings into lower-cased dotted keys.

    Lists and scalars are leaves. Empty mappings are kept as leaves so
    an explicitly empty section still exists.
    """
    flat: dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{str(key).lower()}"
        if isinstance(value, Mapping) and value:
            flat.update(flatten(value, f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


def unflatten(flat: Mapping[str, Any]) -> dict[str, Any]:
    """Rebuild a nested dict from dotted keys"""
    nested: dict[str, Any] = {}
    for key in sorted(flat):
        node = nested
        parts = key.split(".")
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = flat[key]
    return nested


def overlay(base: dict[str, Any], layer: Mapping[str, Any]) -> None:
    """
    Overlay flattened layer onto base in place.

    A key from the layer shadows the same key in base, any base keys nested
    under it, and any base leaf that is an ancestor of it.
    """
    for key, value in layer.items():
        nested_prefix = f"{key}."
        for existing in [k for k in base if k.startswith(nested_prefix)]:
            del base[existing]

        parts = key.split(".")
        for i in range(1, len(parts)):
            base.pop(".".join(parts[:i]), None)

        base[key] = value


def env_key(key: str, env_prefix: str = "") -> str:
    """Environment variable name for a config key: server.port -> APP_SERVER_PORT"""
    name = key.replace(".", "_").upper()
    if env_prefix:
        return f"{env_prefix.upper()}_{name}"
    return name


def capture_environ(env_prefix: str, environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """
    Snapshot the environment variables visible to the loader.

    Names are upper-cased for case-insensitive matching. Empty values are
    treated as unset.
    """
    environ = os.environ if environ is None else environ
    wanted = f"{env_prefix.upper()}_" if env_prefix else ""
    return {
        name.upper(): value
        for name, value in environ.items()
        if value != "" and name.upper().startswith(wanted)
    }


class Snapshot(Mapping):
    """
    Immutable merged configuration view.

    Iterates over the merged dotted keys. Keys that exist only in the
    environment are not enumerable but are still reachable through get().
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
        env_prefix: str = "",
        source: str = "",
    ):
        self._values: dict[str, Any] = dict(values or {})
        self._environ: dict[str, str] = dict(environ or {})
        self._env_prefix = env_prefix
        self.source = source

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    def __getitem__(self, key: str) -> Any:
        return self._values[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Snapshot(source={self.source!r}, keys={len(self._values)})"

    def lookup(self, key: str) -> tuple[bool, Any]:
        """
        Find a key.

        Returns:
            (found, value); value is a nested dict for interior keys
        """
        key = key.lower()
        if key in self._values:
            return True, self._values[key]

        name = env_key(key, self._env_prefix)
        if name in self._environ:
            return True, self._environ[name]

        nested_prefix = f"{key}."
        children = {
            k[len(nested_prefix):]: v
            for k, v in self._values.items()
            if k.startswith(nested_prefix)
        }
        if children:
            return True, unflatten(children)

        return False, None

    def to_dict(self) -> dict[str, Any]:
        """Merged configuration as a nested dict"""
        return unflatten(self._values)

    def digest(self) -> str:
        """Hash of the merged content, stable across key order"""
        content_str = json.dumps(self._values, sort_keys=True, default=str)
        return hashlib.md5(content_str.encode()).hexdigest()


class ConfigStore:
    """
    Owns the current Snapshot.

    The watcher is the only writer after startup; readers call get() from
    any task or thread.
    """

    def __init__(
        self,
        env_prefix: str = "",
        defaults: Mapping[str, Any] | None = None,
        overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
        http_timeout: float = HTTP_TIMEOUT_S,
        transport: Any = None,
    ):
        self.env_prefix = env_prefix
        self._defaults: dict[str, Any] = flatten(defaults or {})
        self._overrides: dict[str, Any] = flatten(overrides or {})
        self._environ = environ
        self._http_timeout = http_timeout
        self._transport = transport

        self._cell: SnapshotCell[Snapshot] = SnapshotCell(Snapshot.empty())
        self._callbacks: list[ChangeCallback] = []
        self._source: Source | None = None
        self._remote: RemoteSync | None = None
        # Serializes fetch+install so an older read never replaces a newer one
        self.refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Layers

    def set_default(self, key: str, value: Any) -> None:
        """Set a default value; takes effect on the next load"""
        if isinstance(value, Mapping) and value:
            self._defaults.update(flatten(value, f"{key.lower()}."))
        else:
            self._defaults[key.lower()] = value

    def bind_flags(self, flags: Mapping[str, Any]) -> None:
        """Bind explicit command-line overrides; takes effect on the next load"""
        self._overrides.update(flatten(flags))

    def on_change(self, callback: ChangeCallback) -> None:
        """Register a callback run with the new Snapshot after a changed reload"""
        self._callbacks.append(callback)

    @property
    def source(self) -> Source | None:
        return self._source

    @property
    def snapshot(self) -> Snapshot:
        return self._cell.get()

    @property
    def version(self) -> int:
        """Number of snapshots installed so far"""
        return self._cell.version

    @property
    def installed_at(self) -> float | None:
        """Unix time the current snapshot was installed"""
        return self._cell.swapped_at

    # ------------------------------------------------------------------
    # Loading

    async def load(self, source: Source | None = None) -> Snapshot:
        """
        Read, decode and merge the source, then install the result.

        Args:
            source: Source to load; defaults to the last loaded source

        Returns:
            The newly installed Snapshot

        Raises:
            SourceUnreadable: Source cannot be fetched
            DecodeError: Content does not parse
        """
        async with self.refresh_lock:
            snapshot = await self.read_snapshot(source)
            self._cell.swap(snapshot)

        logger.debug(
            f"Loaded {len(snapshot)} keys from {snapshot.source}",
            extra={"source": snapshot.source, "key_count": len(snapshot)},
        )
        return snapshot

    async def reload(self) -> tuple[Snapshot, bool]:
        """
        Reload the current source and notify callbacks if content changed.

        Waits for any reload already in progress, so snapshots are installed
        in the order they were read.

        Returns:
            (snapshot, changed)
        """
        async with self.refresh_lock:
            snapshot = await self.read_snapshot()
            changed = self.install(snapshot)
        return snapshot, changed

    async def read_snapshot(self, source: Source | None = None) -> Snapshot:
        """
        Build a Snapshot from the source without installing it.

        Raises:
            SourceUnreadable: Source cannot be fetched
            DecodeError: Content does not parse
        """
        if source is not None and source != self._source:
            await self._set_source(source)
        if self._source is None:
            raise SourceUnreadable("<none>", "no config source set")

        source = self._source
        raw = await self._read(source)
        encoding_type = source.encoding_type or encoding_from_path(str(source))
        content = decode(raw, encoding_type, str(source))

        return self.build_snapshot(content, source=str(source))

    def install(self, snapshot: Snapshot) -> bool:
        """
        Swap in a new Snapshot and run change callbacks if content differs.

        Callers that pair this with read_snapshot() hold refresh_lock.

        Returns:
            True if the content changed
        """
        old_snapshot = self._cell.swap(snapshot)
        changed = old_snapshot.digest() != snapshot.digest()

        if changed:
            self._notify(snapshot)

        return changed

    def build_snapshot(self, content: Mapping[str, Any], source: str = "") -> Snapshot:
        """Merge defaults, content, environment and overrides into a Snapshot"""
        environ = capture_environ(self.env_prefix, self._environ)

        merged = dict(self._defaults)
        overlay(merged, flatten(content))

        env_layer = {}
        for key in set(merged) | set(self._overrides):
            name = env_key(key, self.env_prefix)
            if name in environ:
                env_layer[key] = environ[name]
        overlay(merged, env_layer)

        overlay(merged, self._overrides)

        return Snapshot(merged, environ=environ, env_prefix=self.env_prefix, source=source)

    async def close(self) -> None:
        """Release the remote client, if any"""
        if self._remote:
            await self._remote.close()
            self._remote = None

    async def _set_source(self, source: Source) -> None:
        await self.close()
        self._source = source

    async def _read(self, source: Source) -> bytes:
        if isinstance(source, RemoteDescriptor):
            if self._remote is None:
                self._remote = RemoteSync(
                    source,
                    timeout=self._http_timeout,
                    transport=self._transport,
                )
            return await self._remote.fetch()

        try:
            return Path(source.path).read_bytes()
        except OSError as e:
            raise SourceUnreadable(source.path, e.strerror or str(e)) from e

    def _notify(self, snapshot: Snapshot) -> None:
        for callback in self._callbacks:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(
                    f"Config change callback failed: {e}",
                    exc_info=True,
                    extra={"callback": getattr(callback, "__name__", repr(callback))},
                )

    # ------------------------------------------------------------------
    # Reading

    def get(self, key: str, default: Any = None) -> Any:
        """Value for key from the current snapshot, or default when absent"""
        found, value = self.snapshot.lookup(key)
        return value if found else default

    def is_set(self, key: str) -> bool:
        found, _ = self.snapshot.lookup(key)
        return found

    def all_keys(self) -> list[str]:
        return sorted(self.snapshot)

    def all_settings(self) -> dict[str, Any]:
        return self.snapshot.to_dict()

    def get_str(self, key: str, default: str = "") -> str:
        value = self.get(key)
        if value is None:
            return default
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None or isinstance(value, bool):
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            try:
                return int(float(value))
            except (TypeError, ValueError):
                return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get(key)
        if value is None or isinstance(value, bool):
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        return default

    def get_list(self, key: str, default: list | None = None) -> list:
        """List value; strings from the environment split on commas or spaces"""
        value = self.get(key)
        if value is None:
            return list(default or [])
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, str):
            separator = "," if "," in value else None
            return [item.strip() for item in value.split(separator) if item.strip()]
        return [value]

    def get_duration(self, key: str, default: float = 0.0) -> float:
        """Duration in seconds: accepts numbers and strings like 5s, 1m30s, 250ms"""
        value = self.get(key)
        if value is None or isinstance(value, bool):
            return default
        if isinstance(value, (int, float)):
            return float(value)
        return parse_duration(str(value), default)


def parse_duration(text: str, default: float = 0.0) -> float:
    """Parse 1h2m3s style durations into seconds"""
    text = text.strip()
    try:
        return float(text)
    except ValueError:
        pass

    matches = list(_DURATION_RE.finditer(text))
    if not matches or "".join(m.group(0) for m in matches) != text:
        return default
    return sum(float(m.group(1)) * _DURATION_UNITS[m.group(2)] for m in matches)
