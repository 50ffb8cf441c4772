"""
Change Watchers

Background tasks that keep the ConfigStore in sync with its source.

- FileWatcher: polls the config file's stat and reloads when it changes
- RemoteWatcher: re-fetches the remote key on a fixed interval

Reload failures are logged and the previous snapshot stays in effect.
Both watchers stop promptly when stop() is called.
"""

import asyncio
import os
from datetime import datetime, timezone
from enum import Enum

from cfgsync.common.config import FILE_WATCH_INTERVAL_S, REMOTE_WATCH_INTERVAL_S
from cfgsync.common.exceptions import RefreshFailed
from cfgsync.common.logging_setup import get_service_logger

from .store import ConfigStore

logger = get_service_logger("config.watcher")


class WatcherState(str, Enum):
    """Watcher loop states"""
    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class Watcher:
    """
    Base watcher: runs _tick() every interval until stopped.

    Subclasses implement _tick(); any exception it raises is logged as a
    RefreshFailed and the loop continues.
    """

    name = "watcher"

    def __init__(self, store: ConfigStore, interval_s: float):
        self.store = store
        self.interval_s = interval_s
        self.state = WatcherState.IDLE

        # Stats
        self.reload_count = 0
        self.change_count = 0
        self.failure_count = 0
        self.last_error: str | None = None
        self.last_reload_at: datetime | None = None

        self._task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the watch loop as a background task"""
        if self.running:
            return self._task

        self._shutdown_event.clear()
        self.state = WatcherState.IDLE
        self._task = asyncio.create_task(self._run(), name=f"cfgsync-{self.name}")
        logger.info(
            f"Started {self.name} for {self.store.source} (interval: {self.interval_s}s)",
            extra={"watcher": self.name, "interval_s": self.interval_s},
        )
        return self._task

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it"""
        self._shutdown_event.set()

        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self.state = WatcherState.STOPPED
        logger.info(f"Stopped {self.name}", extra={"watcher": self.name})

    async def _wait(self) -> bool:
        """
        Sleep one interval or until stopped.

        Returns:
            True if stop() was called
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval_s)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run(self) -> None:
        while not await self._wait():
            try:
                await self._tick()
            except Exception as e:
                error = RefreshFailed(str(self.store.source), e)
                self.failure_count += 1
                self.last_error = str(e)
                self._on_failure()
                logger.error(
                    f"Unable to refresh config: {error}",
                    extra={
                        "watcher": self.name,
                        "failure_count": self.failure_count,
                    },
                )

        self.state = WatcherState.STOPPED

    def _on_failure(self) -> None:
        self.state = WatcherState.IDLE

    def _record_reload(self, changed: bool) -> None:
        self.reload_count += 1
        if changed:
            self.change_count += 1
        self.last_reload_at = datetime.now(timezone.utc)
        self.last_error = None

    async def _tick(self) -> None:
        raise NotImplementedError


class FileWatcher(Watcher):
    """
    Watches a local config file.

    Reloads when the file's mtime or size changes. A file that disappears
    keeps the previous snapshot and is picked up again when it returns.
    """

    name = "file-watcher"

    def __init__(self, store: ConfigStore, path: str, interval_s: float = FILE_WATCH_INTERVAL_S):
        super().__init__(store, interval_s)
        self.path = path
        self._last_stat = self._stat()

    def _stat(self) -> tuple[int, int] | None:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return None
        return st.st_mtime_ns, st.st_size

    async def _tick(self) -> None:
        current = self._stat()
        if current == self._last_stat:
            return

        if current is None:
            logger.warning(
                f"Config file removed: {self.path}",
                extra={"path": self.path},
            )
            self._last_stat = None
            return

        logger.info(f"Config file changed: {self.path}", extra={"path": self.path})

        self.state = WatcherState.APPLYING
        # Remember the stat before reading so a failed reload is not retried
        # until the file changes again
        self._last_stat = current
        snapshot, changed = await self.store.reload()
        self.state = WatcherState.IDLE

        self._record_reload(changed)
        logger.info(
            f"Config reloaded from {self.path} ({len(snapshot)} keys, "
            f"{'changed' if changed else 'unchanged'})",
            extra={"path": self.path, "changed": changed, "key_count": len(snapshot)},
        )


class RemoteWatcher(Watcher):
    """
    Re-fetches a remote config on a fixed interval.

    States: IDLE -> FETCHING -> APPLYING -> IDLE on success,
    FETCHING -> BACKOFF -> FETCHING on error.
    """

    name = "remote-watcher"

    def __init__(self, store: ConfigStore, interval_s: float = REMOTE_WATCH_INTERVAL_S):
        super().__init__(store, interval_s)

    async def _tick(self) -> None:
        async with self.store.refresh_lock:
            self.state = WatcherState.FETCHING
            snapshot = await self.store.read_snapshot()

            self.state = WatcherState.APPLYING
            changed = self.store.install(snapshot)
            self.state = WatcherState.IDLE

        self._record_reload(changed)
        if changed:
            logger.info(
                f"Remote config updated ({len(snapshot)} keys)",
                extra={"source": snapshot.source, "key_count": len(snapshot)},
            )
        else:
            logger.debug("Watching remote config", extra={"source": snapshot.source})

    def _on_failure(self) -> None:
        self.state = WatcherState.BACKOFF
