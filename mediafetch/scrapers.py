"""Fallback metadata from third-party "download helper" sites.

Each provider POSTs the media URL to a helper site and parses the HTML or
JSON it answers with into the same envelope the extractor path produces.
These sites change without notice, so every parse step raises ScrapeError
rather than guessing.
"""
import logging

import requests
from bs4 import BeautifulSoup

from . import config
from .errors import MediaFetchError, ScrapeError
from .formats import UNKNOWN_SIZE, UNKNOWN_TITLE
from .proxies import requests_proxies, run_with_proxies
from .utils import format_duration

logger = logging.getLogger(__name__)


def _clean_url(url):
    if not url:
        return None
    return (url
            .replace('&amp;', '&')
            .replace('\\u002F', '/')
            .replace('\\/', '/')
            .replace('\\u003D', '=')
            .replace('\\u0026', '&'))


def _entry(quality, url, media_type='video', fmt=None, size=None):
    return {
        'quality': quality,
        'format': fmt or ('MP3' if media_type == 'audio' else 'MP4'),
        'size': size or UNKNOWN_SIZE,
        'url': url,
        'type': media_type,
    }


def extract_meta_content(soup, property_name):
    """First of og/twitter/itemprop meta content for ``property_name``."""
    meta = soup.find('meta', property=property_name)
    if meta and meta.get('content'):
        return meta['content']
    meta = soup.find('meta', attrs={'name': property_name})
    if meta and meta.get('content'):
        return meta['content']
    meta = soup.find('meta', itemprop=property_name)
    if meta and meta.get('content'):
        return meta['content']
    return None


class ScrapingProvider:
    name = 'provider'
    platforms = ()
    endpoint = None
    referer = None

    def __init__(self, session=None):
        self.session = session or requests.Session()

    def headers(self):
        headers = {
            'User-Agent': config.USER_AGENT,
            'Accept': 'text/html,application/json,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
        }
        if self.referer:
            headers['Referer'] = self.referer
            headers['Origin'] = self.referer.rstrip('/')
        return headers

    def post(self, data, proxy=None):
        try:
            response = self.session.post(
                self.endpoint,
                data=data,
                headers=self.headers(),
                proxies=requests_proxies(proxy),
                timeout=config.REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise ScrapeError(f"{self.name} request failed", details=str(e))
        if response.status_code != 200:
            raise ScrapeError(f"{self.name} returned HTTP {response.status_code}")
        return response

    def post_json(self, data, proxy=None):
        response = self.post(data, proxy=proxy)
        try:
            return response.json()
        except ValueError:
            raise ScrapeError(f"{self.name} returned invalid JSON")

    def fetch(self, url, proxy=None):
        raise NotImplementedError

    def envelope(self, url, title=None, thumbnail=None, duration=None, formats=()):
        formats = list(formats)
        if not formats:
            raise ScrapeError(f"{self.name} returned no download links")
        preview = next((f['url'] for f in formats if f['type'] == 'video'), url)
        return {
            'title': title or UNKNOWN_TITLE,
            'thumbnail': thumbnail or '',
            'duration': format_duration(duration),
            'formats': formats,
            'previewUrl': preview,
        }


class TikWMProvider(ScrapingProvider):
    """TikWM's public JSON API (TikTok, no watermark)."""

    name = 'tikwm'
    platforms = ('tiktok',)
    endpoint = 'https://www.tikwm.com/api/'
    referer = 'https://www.tikwm.com/'

    def fetch(self, url, proxy=None):
        result = self.post_json({'url': url, 'hd': 1}, proxy=proxy)
        if result.get('code') != 0 or not isinstance(result.get('data'), dict):
            raise ScrapeError(f"{self.name} returned no data", details=result.get('msg'))
        data = result['data']

        formats = []
        if data.get('hdplay'):
            formats.append(_entry('HD', data['hdplay'], size=_mb(data.get('hd_size'))))
        if data.get('play'):
            formats.append(_entry('SD', data['play'], size=_mb(data.get('size'))))
        if data.get('music'):
            formats.append(_entry('Audio', data['music'], media_type='audio'))

        return self.envelope(
            url,
            title=data.get('title'),
            thumbnail=data.get('origin_cover') or data.get('cover'),
            duration=data.get('duration'),
            formats=formats,
        )


class FDownProvider(ScrapingProvider):
    """fdown.net HTML form (Facebook)."""

    name = 'fdown'
    platforms = ('facebook',)
    endpoint = 'https://fdown.net/download.php'
    referer = 'https://fdown.net/'

    def fetch(self, url, proxy=None):
        response = self.post({'URLz': url}, proxy=proxy)
        soup = BeautifulSoup(response.text, 'html.parser')

        formats = []
        for anchor_id, quality in (('hdlink', 'HD'), ('sdlink', 'SD')):
            link = soup.find('a', id=anchor_id)
            if link and link.get('href'):
                formats.append(_entry(quality, _clean_url(link['href'])))

        title = None
        title_tag = soup.select_one('.lib-row.lib-header') or soup.find('h5')
        if title_tag:
            title = title_tag.get_text(strip=True)
        thumbnail = None
        img = soup.select_one('.lib-img-show') or soup.find('img', class_='img-responsive')
        if img and img.get('src'):
            thumbnail = _clean_url(img['src'])
        thumbnail = thumbnail or extract_meta_content(soup, 'og:image')

        return self.envelope(url, title=title, thumbnail=thumbnail, formats=formats)


class IGDownloaderProvider(ScrapingProvider):
    """igdownloader ajax search; answers JSON wrapping an HTML fragment."""

    name = 'igdownloader'
    platforms = ('instagram',)
    endpoint = 'https://v3.igdownloader.app/api/ajaxSearch'
    referer = 'https://igdownloader.app/'

    def fetch(self, url, proxy=None):
        result = self.post_json({'q': url, 't': 'media', 'lang': 'en'}, proxy=proxy)
        if result.get('status') != 'ok' or not result.get('data'):
            raise ScrapeError(f"{self.name} returned no data", details=result.get('mess'))
        soup = BeautifulSoup(result['data'], 'html.parser')

        formats = []
        for anchor in soup.find_all('a', href=True):
            label = (anchor.get('title') or anchor.get_text(' ', strip=True) or '').lower()
            if 'download' not in label:
                continue
            href = _clean_url(anchor['href'])
            if 'photo' in label or 'image' in label:
                continue
            quality = 'HD' if not formats else f"Video {len(formats) + 1}"
            formats.append(_entry(quality, href))

        thumbnail = None
        img = soup.find('img', src=True)
        if img:
            thumbnail = _clean_url(img['src'])

        return self.envelope(url, title='Instagram Video', thumbnail=thumbnail, formats=formats)


def _mb(num_bytes):
    if not num_bytes:
        return None
    return f"{int(num_bytes) / (1024 * 1024):.2f}MB"


PROVIDERS = (TikWMProvider, FDownProvider, IGDownloaderProvider)


def providers_for(platform):
    return [provider() for provider in PROVIDERS if platform in provider.platforms]


def scrape(url, platform, proxies=None):
    """Try every provider for ``platform`` in turn; first envelope wins."""
    providers = providers_for(platform)
    if not providers:
        raise ScrapeError(f"No scraping provider for platform '{platform}'")

    failures = []
    for provider in providers:
        try:
            envelope = run_with_proxies(
                lambda proxy: provider.fetch(url, proxy=proxy), proxies=proxies)
        except MediaFetchError as e:
            reason = e.details or e.message
            logger.warning(f"Scraping provider {provider.name} failed: {reason}")
            failures.append(f"{provider.name}: {reason}")
            continue
        envelope['source'] = provider.name
        logger.info(f"Scraped {url} via {provider.name}")
        return envelope

    raise ScrapeError('All scraping providers failed', details='; '.join(failures))
