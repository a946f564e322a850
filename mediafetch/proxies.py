"""Static proxy list and the fixed-count retry loop that walks it."""
import logging
import os
import random
import time

from . import config
from .errors import MediaFetchError, ProxyExhaustedError

logger = logging.getLogger(__name__)


def _load_proxies_from_file(file_name):
    """Load proxy strings from a text file, relative to the project root."""
    path = file_name if os.path.isabs(file_name) else os.path.join(config.BASE_DIR, file_name)
    if not os.path.exists(path):
        return []
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    except OSError as e:
        logger.error(f"Error loading {file_name}: {e}")
        return []


def load_proxies():
    """Inline PROXIES first, then every proxy file, without duplicates."""
    proxies = list(config.PROXIES)
    for file_name in config.PROXY_FILES:
        proxies.extend(_load_proxies_from_file(file_name))
    return list(dict.fromkeys(proxies))


def proxy_url(proxy):
    if not proxy:
        return None
    if '://' in proxy:
        return proxy
    return f'http://{proxy}'


def requests_proxies(proxy):
    """Proxy mapping for ``requests`` calls; None means a direct connection."""
    url = proxy_url(proxy)
    if not url:
        return None
    return {'http': url, 'https': url}


def run_with_proxies(func, proxies=None, retries=None, delay=None, shuffle=None):
    """Call ``func(proxy)`` over the proxy list until one call succeeds.

    Each attempt walks the whole list (or a single direct ``None`` proxy when
    the list is empty). Attempts are separated by a fixed delay. Only
    MediaFetchError is treated as a failed try; anything else propagates.
    """
    if proxies is None:
        proxies = load_proxies()
    if retries is None:
        retries = config.PROXY_RETRIES
    if delay is None:
        delay = config.PROXY_RETRY_DELAY
    if shuffle is None:
        shuffle = config.PROXY_SHUFFLE

    candidates = list(proxies) or [None]
    retries = max(int(retries), 1)
    last_error = None

    for attempt in range(1, retries + 1):
        if shuffle and len(candidates) > 1:
            random.shuffle(candidates)
        for proxy in candidates:
            try:
                return func(proxy)
            except MediaFetchError as e:
                last_error = e
                first_line = str(e).splitlines()[0] if str(e) else 'Unknown error'
                logger.warning(
                    f"Attempt {attempt}/{retries} via {proxy or 'direct connection'} failed: {first_line}")
        if attempt < retries and delay > 0:
            time.sleep(delay)

    raise ProxyExhaustedError(
        f"All {len(candidates) * retries} attempts failed",
        details=last_error.details or last_error.message,
        stderr=last_error.stderr,
    ) from last_error
