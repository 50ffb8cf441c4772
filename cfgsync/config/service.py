"""
Config Service - Startup and Lifecycle

Responsible for:
- Resolving the config source from --config or the default search paths
- Performing the initial synchronous load
- Running the file or remote watcher for the lifetime of the service
- Optional health endpoint (/health, /config, /reload)
"""

import asyncio
import json
import signal
from datetime import datetime, timezone
from collections.abc import Mapping
from typing import Any

from aiohttp import web

from cfgsync.common.config import LoaderSettings, LocalSource, RemoteDescriptor
from cfgsync.common.exceptions import InvalidLocator
from cfgsync.common.logging_setup import get_service_logger

from .flags import LoaderFlags, parse_loader_flags
from .resolver import find_config_file, resolve
from .store import ConfigStore, Snapshot
from .watcher import FileWatcher, RemoteWatcher, Watcher

logger = get_service_logger("config")


def _json_dumps(data: Any) -> str:
    # toml and yaml can yield dates and times
    return json.dumps(data, default=str)


class ConfigService:
    """
    Config Service

    Owns a ConfigStore and the watcher keeping it fresh.
    Startup errors propagate as StartupError subclasses; the caller decides
    whether to exit.
    """

    def __init__(
        self,
        env_prefix: str,
        cfg_name: str,
        locator: str = "",
        force_remote: bool = False,
        defaults: Mapping[str, Any] | None = None,
        overrides: Mapping[str, Any] | None = None,
        settings: LoaderSettings | None = None,
        environ: Mapping[str, str] | None = None,
        transport: Any = None,
        health_port: int | None = None,
    ):
        self.env_prefix = env_prefix
        self.cfg_name = cfg_name
        self.locator = locator
        self.force_remote = force_remote
        self.settings = settings or LoaderSettings.from_env()
        self.health_port = health_port

        self.store = ConfigStore(
            env_prefix=env_prefix,
            defaults=defaults,
            overrides=overrides,
            environ=environ,
            http_timeout=self.settings.http_timeout_s,
            transport=transport,
        )
        self.watcher: Watcher | None = None

        self._start_time = datetime.now(timezone.utc)
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Health server
        self._health_runner: web.AppRunner | None = None

    @property
    def running(self) -> bool:
        return self._running

    def resolve_source(self) -> LocalSource | RemoteDescriptor:
        """
        Work out where configuration comes from.

        --config wins; without it the default search paths are scanned for
        <cfg_name>.<ext>. --isRemoteConfig requires a remote locator.
        """
        if self.locator:
            return resolve(self.locator, force_remote=self.force_remote)

        if self.force_remote:
            raise InvalidLocator("", "remote config requested but --config not set")

        return find_config_file(
            self.cfg_name,
            self.settings.search_paths,
            self.settings.extensions,
        )

    async def start(self, watch: bool = True) -> Snapshot:
        """
        Resolve, load and start watching.

        Args:
            watch: Start the change watcher after the initial load

        Returns:
            The initial Snapshot

        Raises:
            StartupError: Source cannot be resolved, read or decoded
        """
        source = self.resolve_source()

        try:
            snapshot = await self.store.load(source)
        except Exception:
            await self.store.close()
            raise

        if isinstance(source, RemoteDescriptor):
            logger.info(f"Using remote config: '{self.locator}'", extra={"source": str(source)})
            if watch:
                self.watcher = RemoteWatcher(self.store, self.settings.remote_interval_s)
        else:
            logger.info(f"Using configuration file '{source.path}'", extra={"source": source.path})
            if watch:
                self.watcher = FileWatcher(self.store, source.path, self.settings.file_interval_s)

        self._running = True
        self._shutdown_event.clear()

        try:
            if self.health_port:
                await self._start_health_server()
        except Exception:
            await self.stop()
            raise

        if self.watcher:
            self.watcher.start()

        return snapshot

    async def stop(self) -> None:
        """Stop the watcher and release resources"""
        if self.watcher:
            await self.watcher.stop()

        await self._stop_health_server()
        await self.store.close()

        if self._running:
            logger.info("Config Service stopped")
        self._running = False

    async def run_forever(self) -> None:
        """Wait for SIGTERM/SIGINT, then stop"""
        self._setup_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    def request_shutdown(self) -> None:
        """Ask run_forever() to return"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(self.request_shutdown))

    # ------------------------------------------------------------------
    # Read access

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(key, default)

    # ------------------------------------------------------------------
    # Health server

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/config", self._config_handler)
        app.router.add_post("/reload", self._reload_handler)

        self._health_runner = web.AppRunner(app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, "127.0.0.1", self.health_port)
        await site.start()

        logger.info(f"Health server started on port {self.health_port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    def health(self) -> dict[str, Any]:
        """Service status for the health endpoint"""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        snapshot = self.store.snapshot
        watcher = self.watcher
        installed_at = self.store.installed_at

        return {
            "status": "healthy" if self._running else "unhealthy",
            "service": "config",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": snapshot.source,
            "key_count": len(snapshot),
            "config_hash": snapshot.digest()[:8],
            "snapshot_version": self.store.version,
            "snapshot_installed_at": (
                datetime.fromtimestamp(installed_at, timezone.utc).isoformat()
                if installed_at else None
            ),
            "watcher": {
                "name": watcher.name,
                "state": watcher.state.value,
                "reload_count": watcher.reload_count,
                "change_count": watcher.change_count,
                "failure_count": watcher.failure_count,
                "last_error": watcher.last_error,
                "last_reload_at": (
                    watcher.last_reload_at.isoformat() if watcher.last_reload_at else None
                ),
            } if watcher else None,
        }

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        return web.json_response(self.health())

    async def _config_handler(self, request: web.Request) -> web.Response:
        """Return the merged configuration"""
        return web.json_response(self.store.all_settings(), dumps=_json_dumps)

    async def _reload_handler(self, request: web.Request) -> web.Response:
        """Handle forced reload requests"""
        try:
            snapshot, changed = await self.store.reload()
        except Exception as e:
            logger.error(f"Forced reload failed: {e}")
            return web.json_response({"success": False, "error": str(e)}, status=502)

        return web.json_response({
            "success": True,
            "changed": changed,
            "config_hash": snapshot.digest()[:8],
        })


async def init_config(
    env_prefix: str,
    cfg_name: str,
    argv: list[str] | None = None,
    defaults: Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> ConfigService:
    """
    Load configuration and start watching it.

    Parses --config, --isRemoteConfig and --set from argv (unknown flags are
    left for the host program), loads the initial snapshot and starts the
    watcher. Call `await service.stop()` at shutdown.

    Args:
        env_prefix: Prefix for environment overrides (APP -> APP_SERVER_PORT)
        cfg_name: Config file name without extension, for the default search
        argv: Command-line arguments; defaults to sys.argv[1:]
        defaults: Built-in defaults, lowest precedence
        **kwargs: Passed to ConfigService (settings, environ, health_port, ...)

    Returns:
        Running ConfigService

    Raises:
        StartupError: Configuration cannot be resolved or loaded
    """
    flags = parse_loader_flags(argv)
    service = service_from_flags(env_prefix, cfg_name, flags, defaults=defaults, **kwargs)
    await service.start()
    return service


def service_from_flags(
    env_prefix: str,
    cfg_name: str,
    flags: LoaderFlags,
    defaults: Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> ConfigService:
    """Build a ConfigService with flag values bound into the store layers"""
    merged_defaults = dict(flags.defaults)
    merged_defaults.update(defaults or {})

    return ConfigService(
        env_prefix=env_prefix,
        cfg_name=cfg_name,
        locator=flags.config,
        force_remote=flags.is_remote_config,
        defaults=merged_defaults,
        overrides=flags.overrides,
        **kwargs,
    )
