"""Tests for cfgsync.config.sync and remote loading through the store."""

import asyncio

import httpx
import pytest

from cfgsync.common.exceptions import SourceUnreadable, UnsupportedProvider
from cfgsync.common.config import RemoteDescriptor
from cfgsync.config.resolver import resolve
from cfgsync.config.store import ConfigStore
from cfgsync.config.sync import RemoteSync

LOCATOR = "etcd+http://127.0.0.1:2379/app/config.yaml"


def test_fetch_returns_value_bytes(fake_etcd):
    fake_etcd.set("/app/config.yaml", "a: 1\n")
    sync = RemoteSync(resolve(LOCATOR), transport=fake_etcd.transport)

    async def go():
        try:
            return await sync.fetch()
        finally:
            await sync.close()

    assert asyncio.run(go()) == b"a: 1\n"
    assert sync.last_index == 1


def test_fetch_missing_key(fake_etcd):
    sync = RemoteSync(resolve(LOCATOR), transport=fake_etcd.transport)

    with pytest.raises(SourceUnreadable, match="HTTP 404"):
        asyncio.run(sync.fetch())


def test_fetch_connection_error(fake_etcd):
    fake_etcd.fail = True
    sync = RemoteSync(resolve(LOCATOR), transport=fake_etcd.transport)

    with pytest.raises(SourceUnreadable, match="connection refused"):
        asyncio.run(sync.fetch())


def test_fetch_directory_node():
    def handler(request):
        return httpx.Response(200, json={"action": "get", "node": {"key": "/app", "dir": True}})

    sync = RemoteSync(resolve(LOCATOR), transport=httpx.MockTransport(handler))

    with pytest.raises(SourceUnreadable, match="no value"):
        asyncio.run(sync.fetch())


@pytest.mark.parametrize("body", [
    {"action": "get", "node": "/app/config.yaml"},
    {"action": "get", "node": {"key": "/app/config.yaml", "value": 5}},
    ["not", "an", "object"],
])
def test_fetch_malformed_node(body):
    def handler(request):
        return httpx.Response(200, json=body)

    sync = RemoteSync(resolve(LOCATOR), transport=httpx.MockTransport(handler))

    with pytest.raises(SourceUnreadable, match="no value"):
        asyncio.run(sync.fetch())


def test_fetch_invalid_json():
    def handler(request):
        return httpx.Response(200, content=b"<html>")

    sync = RemoteSync(resolve(LOCATOR), transport=httpx.MockTransport(handler))

    with pytest.raises(SourceUnreadable, match="invalid etcd response"):
        asyncio.run(sync.fetch())


def test_request_path(fake_etcd):
    fake_etcd.set("/app/config.yaml", "a: 1\n")
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return fake_etcd.handler(request)

    sync = RemoteSync(resolve(LOCATOR), transport=httpx.MockTransport(handler))
    asyncio.run(sync.fetch())

    assert seen == ["http://127.0.0.1:2379/v2/keys/app/config.yaml"]


def test_unsupported_provider():
    descriptor = RemoteDescriptor("consul", "http://host", "/a.yaml", "yaml")
    with pytest.raises(UnsupportedProvider):
        RemoteSync(descriptor)


def test_store_loads_remote_source(fake_etcd):
    fake_etcd.set("/app/config.json", '{"server": {"port": 8080}}')
    source = resolve("etcd+http://127.0.0.1:2379/app/config.json")
    store = ConfigStore(env_prefix="APP", environ={"APP_SERVER_HOST": "h"}, transport=fake_etcd.transport)

    async def go():
        try:
            await store.load(source)
        finally:
            await store.close()

    asyncio.run(go())

    assert store.get("server.port") == 8080
    assert store.get("server.host") == "h"
    assert store.snapshot.source == "etcd:http://127.0.0.1:2379/app/config.json"
