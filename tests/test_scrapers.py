"""Tests for the helper-site scraping providers, using canned responses."""

from __future__ import annotations

import pytest
import requests

from mediafetch import scrapers
from mediafetch.errors import ScrapeError
from mediafetch.scrapers import (
    FDownProvider,
    IGDownloaderProvider,
    ScrapingProvider,
    TikWMProvider,
    providers_for,
    scrape,
)


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def test_tikwm_builds_hd_sd_and_audio_entries(fake_response) -> None:
    payload = {
        'code': 0,
        'data': {
            'title': 'dance',
            'origin_cover': 'https://p16.example/cover.jpg',
            'duration': 15,
            'hdplay': 'https://v.example/hd.mp4',
            'hd_size': 3 * 1024 * 1024,
            'play': 'https://v.example/sd.mp4',
            'music': 'https://v.example/a.mp3',
        },
    }
    session = FakeSession(fake_response(200, json_data=payload))

    envelope = TikWMProvider(session).fetch('https://www.tiktok.com/@a/video/1', proxy='1.2.3.4:80')

    assert envelope['title'] == 'dance'
    assert envelope['duration'] == '00:00:15'
    assert envelope['previewUrl'] == 'https://v.example/hd.mp4'
    assert [(f['quality'], f['type'], f['size']) for f in envelope['formats']] == [
        ('HD', 'video', '3.00MB'),
        ('SD', 'video', 'Unknown Size'),
        ('Audio', 'audio', 'Unknown Size'),
    ]
    url, kwargs = session.calls[0]
    assert url == TikWMProvider.endpoint
    assert kwargs['data'] == {'url': 'https://www.tiktok.com/@a/video/1', 'hd': 1}
    assert kwargs['proxies'] == {'http': 'http://1.2.3.4:80', 'https': 'http://1.2.3.4:80'}


def test_tikwm_error_code(fake_response) -> None:
    session = FakeSession(fake_response(200, json_data={'code': -1, 'msg': 'Url parsing is failed!'}))
    with pytest.raises(ScrapeError) as excinfo:
        TikWMProvider(session).fetch('https://www.tiktok.com/@a/video/1')
    assert excinfo.value.details == 'Url parsing is failed!'


def test_fdown_parses_download_anchors(fake_response) -> None:
    html = """
    <html><head><meta property="og:image" content="https://img.example/og.jpg"></head>
    <body>
      <div class="lib-row lib-header">Family trip</div>
      <a id="sdlink" href="https://video.example/sd.mp4?a=1&amp;b=2">SD</a>
      <a id="hdlink" href="https://video.example/hd.mp4">HD</a>
    </body></html>
    """
    session = FakeSession(fake_response(200, text=html))

    envelope = FDownProvider(session).fetch('https://www.facebook.com/watch/?v=1')

    assert envelope['title'] == 'Family trip'
    assert envelope['thumbnail'] == 'https://img.example/og.jpg'
    assert [f['quality'] for f in envelope['formats']] == ['HD', 'SD']
    assert envelope['formats'][1]['url'] == 'https://video.example/sd.mp4?a=1&b=2'
    assert session.calls[0][1]['data'] == {'URLz': 'https://www.facebook.com/watch/?v=1'}


def test_fdown_without_links_fails(fake_response) -> None:
    session = FakeSession(fake_response(200, text='<html><body>Private video</body></html>'))
    with pytest.raises(ScrapeError, match='no download links'):
        FDownProvider(session).fetch('https://www.facebook.com/watch/?v=1')


def test_igdownloader_parses_fragment(fake_response) -> None:
    fragment = (
        '<ul><li><img src="https://cdn.example/thumb.jpg">'
        '<a href="https://cdn.example/v1.mp4" title="Download Video">Download Video</a>'
        '<a href="https://cdn.example/p1.jpg" title="Download Photo">Download Photo</a>'
        '<a href="https://cdn.example/v2.mp4">Download Video</a></li></ul>'
    )
    session = FakeSession(fake_response(200, json_data={'status': 'ok', 'data': fragment}))

    envelope = IGDownloaderProvider(session).fetch('https://www.instagram.com/reel/xyz/')

    assert envelope['thumbnail'] == 'https://cdn.example/thumb.jpg'
    assert [(f['quality'], f['url']) for f in envelope['formats']] == [
        ('HD', 'https://cdn.example/v1.mp4'),
        ('Video 2', 'https://cdn.example/v2.mp4'),
    ]


def test_post_errors_become_scrape_errors(fake_response) -> None:
    with pytest.raises(ScrapeError, match='HTTP 503'):
        TikWMProvider(FakeSession(fake_response(503))).fetch('u')
    with pytest.raises(ScrapeError, match='request failed'):
        TikWMProvider(FakeSession(error=requests.ConnectionError('down'))).fetch('u')
    with pytest.raises(ScrapeError, match='invalid JSON'):
        TikWMProvider(FakeSession(fake_response(200, text='<html>'))).fetch('u')


def test_providers_for_platform() -> None:
    assert [p.name for p in providers_for('tiktok')] == ['tikwm']
    assert [p.name for p in providers_for('facebook')] == ['fdown']
    assert providers_for('youtube') == []


def test_scrape_without_provider() -> None:
    with pytest.raises(ScrapeError, match='No scraping provider'):
        scrape('https://vimeo.com/1', 'generic', proxies=[])


class _Broken(ScrapingProvider):
    name = 'broken'
    platforms = ('tiktok',)

    def fetch(self, url, proxy=None):
        raise ScrapeError('broken returned no data', details='layout changed')


class _Working(ScrapingProvider):
    name = 'working'
    platforms = ('tiktok',)

    def fetch(self, url, proxy=None):
        return self.envelope(url, title='ok', formats=[scrapers._entry('HD', 'https://v.example/x.mp4')])


def test_scrape_falls_through_providers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(scrapers, 'PROVIDERS', (_Broken, _Working))

    envelope = scrape('https://www.tiktok.com/@a/video/1', 'tiktok', proxies=[])

    assert envelope['source'] == 'working'
    assert envelope['title'] == 'ok'


def test_scrape_reports_every_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(scrapers, 'PROVIDERS', (_Broken,))

    with pytest.raises(ScrapeError) as excinfo:
        scrape('https://www.tiktok.com/@a/video/1', 'tiktok', proxies=[])

    assert excinfo.value.message == 'All scraping providers failed'
    assert excinfo.value.details == 'broken: layout changed'
