"""Shared fixtures: isolate settings so no test touches real proxies or tokens."""

from __future__ import annotations

import ipaddress
import socket

import pytest

from mediafetch import config, platforms

PUBLIC_TEST_ADDRESS = ipaddress.ip_address("93.184.216.34")


def fake_resolve_host(host, port):
    """Numeric hosts as the C resolver reads them; any name is public."""
    try:
        return [ipaddress.ip_address(host)]
    except ValueError:
        pass
    try:
        return [ipaddress.ip_address(socket.inet_aton(host))]
    except OSError:
        return [PUBLIC_TEST_ADDRESS]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(config, "PROXIES", [])
    monkeypatch.setattr(config, "PROXY_FILES", [])
    monkeypatch.setattr(config, "PROXY_RETRIES", 1)
    monkeypatch.setattr(config, "PROXY_RETRY_DELAY", 0)
    monkeypatch.setattr(config, "PROXY_SHUFFLE", False)
    monkeypatch.setattr(config, "COOKIES_PATH", str(tmp_path / "missing_cookies.txt"))
    monkeypatch.setattr(config, "DOWNLOAD_DIR", str(tmp_path / "downloads"))
    monkeypatch.setattr(config, "DOWNLOAD_MODE", "pipe")
    monkeypatch.setattr(config, "GOOGLE_CLIENT_ID", "")
    monkeypatch.setattr(config, "GOOGLE_CLIENT_SECRET", "")
    monkeypatch.setattr(config, "GOOGLE_TOKEN_FILE", str(tmp_path / "google_token.json"))
    monkeypatch.setattr(config, "FRONTEND_URL", "")
    monkeypatch.setattr(platforms, "resolve_host", fake_resolve_host)


@pytest.fixture
def client():
    from mediafetch.app import app

    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code=200, headers=None, json_data=None, text="", chunks=(), url=""):
        self.status_code = status_code
        self.headers = headers or {}
        self._json = json_data
        self.text = text
        self._chunks = list(chunks)
        self.url = url
        self.reason = "OK" if status_code < 400 else "Error"
        self.closed = False

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    def iter_content(self, chunk_size=None):
        yield from self._chunks

    def close(self):
        self.closed = True


@pytest.fixture
def fake_response():
    return FakeResponse
