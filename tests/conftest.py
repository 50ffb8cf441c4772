"""Pytest fixtures shared by the cfgsync tests. Run from project root with: pytest tests/ -v"""

import json
import os

import httpx
import pytest

from cfgsync.common.config import LoaderSettings


@pytest.fixture
def fast_settings(tmp_path):
    """Loader settings with short intervals and search paths inside tmp_path."""
    return LoaderSettings(
        search_paths=[str(tmp_path / "missing"), str(tmp_path / "config")],
        remote_interval_s=0.05,
        file_interval_s=0.05,
        http_timeout_s=1.0,
    )


@pytest.fixture(autouse=True)
def _clean_cfgsync_env(monkeypatch):
    """Keep CFGSYNC_* variables from the host environment out of the tests."""
    for name in list(os.environ):
        if name.upper().startswith(("CFGSYNC_", "APP_", "PREFIX_")):
            monkeypatch.delenv(name, raising=False)


class FakeEtcd:
    """In-memory etcd v2 keys API served through httpx.MockTransport."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.fail = False
        self.requests = 0
        self._index = 0

    def set(self, key: str, value: str) -> None:
        self._index += 1
        self.values[key] = value

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)

        key = request.url.path[len("/v2/keys"):]
        if key not in self.values:
            body = {"errorCode": 100, "message": "Key not found", "cause": key}
            return httpx.Response(404, content=json.dumps(body))

        body = {
            "action": "get",
            "node": {"key": key, "value": self.values[key], "modifiedIndex": self._index},
        }
        return httpx.Response(200, content=json.dumps(body))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_etcd():
    return FakeEtcd()
