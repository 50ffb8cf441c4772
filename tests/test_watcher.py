"""Tests for cfgsync.config.watcher."""

import asyncio
import os

from cfgsync.common.config import LocalSource
from cfgsync.config.resolver import resolve
from cfgsync.config.store import ConfigStore
from cfgsync.config.watcher import FileWatcher, RemoteWatcher, WatcherState

LOCATOR = "etcd+http://127.0.0.1:2379/app/config.yaml"


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def replace_file(path, text):
    """Swap in new content atomically with a distinct mtime."""
    mtime_ns = os.stat(path).st_mtime_ns if path.exists() else 0
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text)
    next_ns = max(mtime_ns + 1_000_000_000, os.stat(tmp).st_mtime_ns)
    os.utime(tmp, ns=(next_ns, next_ns))
    os.replace(tmp, path)


def test_file_watcher_reloads_on_change(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("a: 1\n")
    store = ConfigStore(environ={})
    changes = []
    store.on_change(lambda snapshot: changes.append(snapshot["a"]))

    async def go():
        await store.load(LocalSource(path=str(path)))
        watcher = FileWatcher(store, str(path), interval_s=0.02)
        watcher.start()
        try:
            replace_file(path, "a: 22\n")
            await wait_until(lambda: store.get("a") == 22)
            assert watcher.state is WatcherState.IDLE
            return watcher
        finally:
            await watcher.stop()

    watcher = asyncio.run(go())

    assert changes == [22]
    assert watcher.reload_count >= 1
    assert watcher.change_count == 1
    assert watcher.state is WatcherState.STOPPED


def test_file_watcher_survives_bad_content(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("a: 1\n")
    store = ConfigStore(environ={})

    async def go():
        before = await store.load(LocalSource(path=str(path)))
        watcher = FileWatcher(store, str(path), interval_s=0.02)
        watcher.start()
        try:
            replace_file(path, "a: [broken\n")
            await wait_until(lambda: watcher.failure_count == 1)
            assert store.snapshot is before
            assert watcher.running

            replace_file(path, "a: 3\n")
            await wait_until(lambda: store.get("a") == 3)
            assert watcher.last_error is None
        finally:
            await watcher.stop()

    asyncio.run(go())


def test_file_watcher_keeps_snapshot_when_file_removed(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("a: 1\n")
    store = ConfigStore(environ={})

    async def go():
        await store.load(LocalSource(path=str(path)))
        watcher = FileWatcher(store, str(path), interval_s=0.02)
        watcher.start()
        try:
            path.unlink()
            await asyncio.sleep(0.1)
            assert store.get("a") == 1
            assert watcher.failure_count == 0

            replace_file(path, "a: 5\n")
            await wait_until(lambda: store.get("a") == 5)
        finally:
            await watcher.stop()

    asyncio.run(go())


def test_remote_watcher_applies_updates(fake_etcd):
    fake_etcd.set("/app/config.yaml", "a: 1\n")
    store = ConfigStore(environ={}, transport=fake_etcd.transport)

    async def go():
        await store.load(resolve(LOCATOR))
        watcher = RemoteWatcher(store, interval_s=0.02)
        watcher.start()
        try:
            fake_etcd.set("/app/config.yaml", "a: 2\n")
            await wait_until(lambda: store.get("a") == 2)
        finally:
            await watcher.stop()
            await store.close()

    asyncio.run(go())


def test_remote_fetch_failure_keeps_snapshot_and_continues(fake_etcd):
    fake_etcd.set("/app/config.yaml", "a: 1\n")
    store = ConfigStore(environ={}, transport=fake_etcd.transport)

    async def go():
        before = await store.load(resolve(LOCATOR))
        watcher = RemoteWatcher(store, interval_s=0.02)
        fake_etcd.fail = True
        watcher.start()
        try:
            await wait_until(lambda: watcher.failure_count >= 2)
            assert store.snapshot is before
            assert watcher.state in (WatcherState.BACKOFF, WatcherState.FETCHING)
            assert watcher.running

            # outage clears
            fake_etcd.fail = False
            fake_etcd.set("/app/config.yaml", "a: 9\n")
            await wait_until(lambda: store.get("a") == 9)
            assert watcher.state in (WatcherState.IDLE, WatcherState.FETCHING)
        finally:
            await watcher.stop()
            await store.close()

    asyncio.run(go())


def test_forced_reload_waits_for_slow_remote_fetch(fake_etcd):
    fake_etcd.set("/app/config.yaml", "a: old\n")
    store = ConfigStore(environ={}, transport=fake_etcd.transport)
    seen = []

    async def go():
        await store.load(resolve(LOCATOR))
        store.on_change(lambda snapshot: seen.append(snapshot["a"]))

        read = store._read
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_first_read(src):
            raw = await read(src)
            if not entered.is_set():
                entered.set()
                await release.wait()
            return raw

        store._read = slow_first_read

        fake_etcd.set("/app/config.yaml", "a: mid\n")
        watcher = RemoteWatcher(store, interval_s=0.01)
        watcher.start()
        try:
            await entered.wait()
            fake_etcd.set("/app/config.yaml", "a: new\n")
            forced = asyncio.create_task(store.reload())
            await asyncio.sleep(0.05)
            release.set()
            await forced
        finally:
            await watcher.stop()
            await store.close()

    asyncio.run(go())

    assert seen == ["mid", "new"]
    assert store.get("a") == "new"


def test_stop_is_prompt(fake_etcd):
    fake_etcd.set("/app/config.yaml", "a: 1\n")
    store = ConfigStore(environ={}, transport=fake_etcd.transport)

    async def go():
        await store.load(resolve(LOCATOR))
        watcher = RemoteWatcher(store, interval_s=60)
        watcher.start()
        await asyncio.sleep(0)
        await asyncio.wait_for(watcher.stop(), timeout=1.0)
        await store.close()
        return watcher

    watcher = asyncio.run(go())

    assert not watcher.running
    assert watcher.state is WatcherState.STOPPED
    assert fake_etcd.requests == 1
