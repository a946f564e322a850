"""Request-level flows behind the HTTP routes."""
import logging
import os
import shutil
import tempfile

from . import config, extractor, oauth
from .errors import ExtractorError, MediaFetchError, ScrapeError
from .formats import UNKNOWN_TITLE, build_envelope, validate_thumbnail
from .platforms import PLATFORMS, detect_platform, normalize_url, resolve_redirect, youtube_video_id
from .proxies import load_proxies, run_with_proxies
from .scrapers import providers_for, scrape
from .streaming import file_size, iter_file_and_cleanup, iter_process
from .utils import audio_mime_from_ext, format_duration, video_mime_from_ext

logger = logging.getLogger(__name__)

MEDIA_TYPES = ('audio', 'video')


class DownloadStream:
    """Body iterator plus the headers the route needs to send it."""

    def __init__(self, iterator, mimetype, extension, content_length=None):
        self.iterator = iterator
        self.mimetype = mimetype
        self.extension = extension
        self.content_length = content_length


def _platform_for(url, platform):
    if platform in PLATFORMS:
        return platform
    detected, _ = detect_platform(url)
    return detected


def _youtube_api_metadata(url):
    if not oauth.is_configured():
        return None
    return oauth.fetch_video_metadata(youtube_video_id(url))


def _enrich_from_youtube_api(envelope, url):
    meta = _youtube_api_metadata(url)
    if not meta:
        return
    if envelope['title'] == UNKNOWN_TITLE and meta.get('title'):
        envelope['title'] = meta['title']
    if not envelope['thumbnail'] and meta.get('thumbnail'):
        envelope['thumbnail'] = validate_thumbnail(meta['thumbnail'])
    if envelope['duration'] == '00:00:00' and meta.get('duration_seconds'):
        envelope['duration'] = format_duration(meta['duration_seconds'])


def _fallback_info(url, platform, proxies, extractor_error):
    """Scraping providers first, then the YouTube Data API, else give up."""
    if providers_for(platform):
        try:
            envelope = scrape(url, platform, proxies=proxies)
            envelope['platform'] = platform
            return envelope
        except ScrapeError as e:
            logger.warning(f"Scraping fallback failed for {url}: {e.details or e.message}")

    if platform == 'youtube':
        meta = _youtube_api_metadata(url)
        if meta:
            logger.info(f"Using YouTube Data API metadata for {url}")
            return {
                'title': meta.get('title') or UNKNOWN_TITLE,
                'thumbnail': validate_thumbnail(meta.get('thumbnail')),
                'duration': format_duration(meta.get('duration_seconds')),
                'formats': [],
                'previewUrl': url,
                'platform': platform,
                'source': 'youtube-api',
            }

    raise extractor_error


def get_video_info(url, platform=None):
    """Metadata and format envelope for a media page URL."""
    url = normalize_url(resolve_redirect(normalize_url(url)))
    platform = _platform_for(url, platform)
    proxies = load_proxies()

    try:
        info = run_with_proxies(lambda proxy: extractor.dump_json(url, proxy=proxy), proxies=proxies)
    except MediaFetchError as e:
        logger.warning(f"Extractor lookup failed for {url}, trying fallbacks: {e.details or e.message}")
        return _fallback_info(url, platform, proxies, e)

    envelope = build_envelope(info, url)
    envelope['thumbnail'] = validate_thumbnail(envelope['thumbnail'])
    if platform == 'youtube' and (envelope['title'] == UNKNOWN_TITLE or not envelope['thumbnail']):
        _enrich_from_youtube_api(envelope, url)
    envelope['platform'] = platform
    envelope['source'] = 'extractor'
    return envelope


# ── Downloads ─────────────────────────────────────────────────────────────

def _ensure_download_dir():
    os.makedirs(config.DOWNLOAD_DIR, exist_ok=True)
    return config.DOWNLOAD_DIR


def _pipe_download(url, media_type, quality, proxies):
    def _open(proxy):
        process = extractor.spawn_download(url, media_type, quality, proxy=proxy)
        first_chunk = process.read(config.STREAM_CHUNK_SIZE)
        if not first_chunk:
            code = process.wait()
            stderr = process.stderr
            process.kill()
            raise ExtractorError(
                'Download failed',
                details=f"{config.YTDLP_PATH} exited with code {code} before sending any data",
                stderr=stderr,
            )
        return process, first_chunk

    process, first_chunk = run_with_proxies(_open, proxies=proxies)
    return DownloadStream(iter_process(process, first_chunk), 'video/mp4', 'mp4')


def _file_download(url, media_type, quality, proxies):
    def _download(proxy):
        workdir = tempfile.mkdtemp(dir=_ensure_download_dir())
        try:
            return workdir, extractor.download_to_file(url, media_type, quality, workdir, proxy=proxy)
        except MediaFetchError:
            shutil.rmtree(workdir, ignore_errors=True)
            raise

    workdir, path = run_with_proxies(_download, proxies=proxies)
    default_ext = 'mp3' if media_type == 'audio' else 'mp4'
    ext = os.path.splitext(path)[1].lstrip('.').lower() or default_ext
    if media_type == 'audio':
        mimetype = audio_mime_from_ext(ext)
    else:
        mimetype = video_mime_from_ext(ext)
    return DownloadStream(
        iter_file_and_cleanup(path, workdir),
        mimetype,
        ext,
        content_length=file_size(path),
    )


def start_download(url, media_type, quality, platform=None):
    """Start fetching the media and return a stream ready to send.

    Audio always goes through a temp file because conversion to mp3 cannot
    happen on stdout. Video is piped unless DOWNLOAD_MODE=file.
    """
    url = normalize_url(url)
    platform = _platform_for(url, platform)
    proxies = load_proxies()
    logger.info(f"Starting {media_type} download ({quality}) from {platform}: {url}")

    if media_type == 'audio' or config.DOWNLOAD_MODE == 'file':
        return _file_download(url, media_type, quality, proxies)
    return _pipe_download(url, media_type, quality, proxies)
