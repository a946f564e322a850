"""Platform detection and input URL normalization."""
import ipaddress
import logging
import re
import socket
from urllib.parse import parse_qs, urljoin, urlparse, urlunparse

import requests

from . import config

logger = logging.getLogger(__name__)

PLATFORMS = {
    'tiktok': {
        'domains': ['tiktok.com', 'vm.tiktok.com', 'vt.tiktok.com'],
        'name': 'TikTok',
    },
    'facebook': {
        'domains': ['facebook.com', 'fb.watch', 'fb.com'],
        'name': 'Facebook',
    },
    'instagram': {
        'domains': ['instagram.com', 'instagr.am'],
        'name': 'Instagram',
    },
    'youtube': {
        'domains': ['youtube.com', 'youtu.be', 'youtube-nocookie.com'],
        'name': 'YouTube',
    },
}

GENERIC_PLATFORM = {'domains': [], 'name': 'Generic'}

# Query strings on these hosts only carry share/tracking parameters
_STRIP_QUERY_PLATFORMS = ('tiktok', 'instagram')

_YOUTUBE_ID_PATTERNS = (
    re.compile(r'youtube(?:-nocookie)?\.com/(?:shorts|embed|live|v)/([0-9A-Za-z_-]{11})'),
    re.compile(r'youtu\.be/([0-9A-Za-z_-]{11})'),
)


def _host(url):
    return (urlparse(url).hostname or '').lower()


def detect_platform(url):
    """Detect which platform the URL belongs to."""
    host = _host(url)
    for platform_id, platform_config in PLATFORMS.items():
        for domain in platform_config['domains']:
            if host == domain or host.endswith('.' + domain):
                return platform_id, platform_config
    return 'generic', GENERIC_PLATFORM


def youtube_video_id(url):
    """Return the 11 character video id of a YouTube URL, or None."""
    if not url:
        return None
    parsed = urlparse(url)
    host = (parsed.hostname or '').lower()
    if host.endswith('youtube.com') and parsed.path == '/watch':
        ids = parse_qs(parsed.query).get('v')
        if ids and re.fullmatch(r'[0-9A-Za-z_-]{11}', ids[0]):
            return ids[0]
    for pattern in _YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def normalize_url(url):
    """Canonicalize the handful of URL shapes users paste in."""
    url = (url or '').strip()
    if not url:
        return url
    if not re.match(r'^[a-zA-Z][a-zA-Z0-9+.-]*://', url):
        url = 'https://' + url

    platform_id, _ = detect_platform(url)
    if platform_id == 'youtube':
        video_id = youtube_video_id(url)
        if video_id:
            return f'https://www.youtube.com/watch?v={video_id}'

    parsed = urlparse(url)
    host = parsed.netloc
    for prefix in ('m.', 'mobile.'):
        if host.lower().startswith(prefix) and platform_id != 'generic':
            host = 'www.' + host[len(prefix):]
    query = parsed.query
    if platform_id in _STRIP_QUERY_PLATFORMS:
        query = ''
    return urlunparse((parsed.scheme, host, parsed.path, parsed.params, query, ''))


def resolve_redirect(url, max_redirects=None):
    """Follow HEAD redirects by hand so short links resolve to the real page.

    Any network failure returns the last URL reached. A repeated location
    ends the walk.
    """
    if max_redirects is None:
        max_redirects = config.MAX_REDIRECTS
    seen = {url}
    current = url
    for _ in range(max_redirects):
        try:
            response = requests.head(
                current,
                allow_redirects=False,
                headers={'User-Agent': config.USER_AGENT},
                timeout=config.REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.warning(f"Redirect resolution stopped at {current}: {e}")
            return current
        location = response.headers.get('Location')
        if not (300 <= response.status_code < 400 and location):
            return current
        nxt = urljoin(current, location)
        if nxt in seen:
            logger.warning(f"Redirect loop detected at {nxt}")
            return nxt
        logger.info(f"Resolved redirect {current} -> {nxt}")
        seen.add(nxt)
        current = nxt
    return current


def resolve_host(host, port):
    """Every address ``host`` resolves to; empty when it does not resolve."""
    try:
        infos = socket.getaddrinfo(host, port, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        logger.warning(f"Could not resolve {host}: {e}")
        return []
    # IPv6 link-local results carry a %scope suffix
    return [ipaddress.ip_address(info[4][0].split('%')[0]) for info in infos]


def is_public_http_url(url):
    """http(s) URL whose host resolves only to global addresses."""
    parsed = urlparse(url or '')
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        return False
    host = parsed.hostname.lower()
    if host == 'localhost' or host.endswith('.localhost'):
        return False
    try:
        port = parsed.port or (443 if parsed.scheme == 'https' else 80)
    except ValueError:
        return False
    addresses = resolve_host(host, port)
    return bool(addresses) and all(address.is_global for address in addresses)
