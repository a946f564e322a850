"""Tests for remote stream opening and the temp-file body iterator."""

from __future__ import annotations

import os

import pytest
import requests

from mediafetch import streaming
from mediafetch.errors import InvalidRequestError, MediaFetchError


def test_open_remote_forwards_range(monkeypatch: pytest.MonkeyPatch, fake_response) -> None:
    seen = {}

    def _get(url, **kwargs):
        seen.update(kwargs)
        return fake_response(206, {'Content-Type': 'video/mp4', 'Content-Range': 'bytes 0-1/2', 'X-Other': '1'})

    monkeypatch.setattr(streaming.requests, 'get', _get)

    response = streaming.open_remote('https://cdn.example/v.mp4', range_header='bytes=0-1')

    assert seen['headers']['Range'] == 'bytes=0-1'
    assert seen['stream'] is True
    assert streaming.passthrough_headers(response) == {
        'Content-Type': 'video/mp4', 'Content-Range': 'bytes 0-1/2'}


def test_open_remote_errors(monkeypatch: pytest.MonkeyPatch, fake_response) -> None:
    upstream = fake_response(403)
    monkeypatch.setattr(streaming.requests, 'get', lambda url, **kwargs: upstream)
    with pytest.raises(MediaFetchError, match='Failed to open remote stream') as excinfo:
        streaming.open_remote('https://cdn.example/v.mp4')
    assert 'HTTP 403' in excinfo.value.details
    assert upstream.closed is True

    def _boom(url, **kwargs):
        raise requests.ConnectionError('reset')

    monkeypatch.setattr(streaming.requests, 'get', _boom)
    with pytest.raises(MediaFetchError):
        streaming.open_remote('https://cdn.example/v.mp4')


def test_iter_remote_closes_response(fake_response) -> None:
    upstream = fake_response(200, chunks=[b'a', b'', b'b'])
    assert list(streaming.iter_remote(upstream)) == [b'a', b'b']
    assert upstream.closed is True


def test_iter_file_and_cleanup_removes_workdir(tmp_path) -> None:
    workdir = tmp_path / 'job'
    workdir.mkdir()
    path = workdir / 'clip.mp4'
    path.write_bytes(b'x' * 10)

    chunks = list(streaming.iter_file_and_cleanup(str(path), str(workdir), chunk_size=4))

    assert chunks == [b'xxxx', b'xxxx', b'xx']
    assert not os.path.exists(workdir)
    assert streaming.file_size(str(path)) is None


def test_open_remote_follows_public_redirects(monkeypatch: pytest.MonkeyPatch, fake_response) -> None:
    hops = {
        'https://short.example/v': fake_response(302, {'Location': 'https://cdn.example/v.mp4'}),
        'https://cdn.example/v.mp4': fake_response(200, {'Content-Type': 'video/mp4'}),
    }
    requested = []

    def _get(url, **kwargs):
        assert kwargs['allow_redirects'] is False
        requested.append(url)
        return hops[url]

    monkeypatch.setattr(streaming.requests, 'get', _get)

    response = streaming.open_remote('https://short.example/v')

    assert response is hops['https://cdn.example/v.mp4']
    assert requested == ['https://short.example/v', 'https://cdn.example/v.mp4']
    assert hops['https://short.example/v'].closed is True


@pytest.mark.parametrize(
    "location",
    ['http://169.254.169.254/latest/meta-data/', 'http://2130706433:8080/admin', 'http://localhost/'],
)
def test_open_remote_refuses_redirect_into_private_network(
        monkeypatch: pytest.MonkeyPatch, fake_response, location) -> None:
    first = fake_response(301, {'Location': location})
    requested = []

    def _get(url, **kwargs):
        requested.append(url)
        return first

    monkeypatch.setattr(streaming.requests, 'get', _get)

    with pytest.raises(InvalidRequestError):
        streaming.open_remote('https://cdn.example/v.mp4')
    assert requested == ['https://cdn.example/v.mp4']
    assert first.closed is True


def test_open_remote_redirect_limit(monkeypatch: pytest.MonkeyPatch, fake_response) -> None:
    monkeypatch.setattr(
        streaming.requests, 'get',
        lambda url, **kwargs: fake_response(302, {'Location': url + 'x'}),
    )
    with pytest.raises(MediaFetchError, match='Failed to open remote stream') as excinfo:
        streaming.open_remote('https://loop.example/', max_redirects=2)
    assert 'More than 2 redirects' in excinfo.value.details
