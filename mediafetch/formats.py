"""Shape extractor output into the format envelope returned to clients."""
import logging

import requests

from . import config
from .utils import estimate_file_size, format_duration, format_size

logger = logging.getLogger(__name__)

UNKNOWN_SIZE = 'Unknown Size'
UNKNOWN_TITLE = 'Unknown Title'


def _has_video(fmt):
    return fmt.get('vcodec') != 'none'


def _has_audio(fmt):
    return fmt.get('acodec') != 'none'


def is_http_mp4_video(fmt):
    """True for progressive mp4 video a browser can play straight away."""
    return (
        _has_video(fmt)
        and bool(fmt.get('url'))
        and fmt.get('ext') == 'mp4'
        and fmt.get('protocol') in ('http', 'https')
    )


def select_preview_format(formats):
    candidates = [f for f in formats if is_http_mp4_video(f)]
    if not candidates:
        return None
    return max(candidates, key=lambda f: f.get('height') or 0)


def dedupe_video_formats(formats):
    """One format per height, tallest first; the first seen height wins."""
    video_fmts = sorted(
        (f for f in formats if _has_video(f) and f.get('height')),
        key=lambda f: f['height'],
        reverse=True,
    )
    seen = set()
    unique = []
    for fmt in video_fmts:
        if fmt['height'] in seen:
            continue
        seen.add(fmt['height'])
        unique.append(fmt)
    return unique


def select_best_audio(formats):
    """Highest audio bitrate, ties broken by file size."""
    audio_fmts = [f for f in formats if _has_audio(f)]
    if not audio_fmts:
        return None
    return max(audio_fmts, key=lambda f: (f.get('abr') or 0, f.get('filesize') or 0))


def format_entry_size(fmt, bitrate_key, duration):
    if fmt.get('filesize'):
        return format_size(fmt['filesize'])
    if fmt.get(bitrate_key) and duration:
        return estimate_file_size(fmt[bitrate_key], duration)
    return UNKNOWN_SIZE


def quality_labels(formats):
    """Return best/worst quality labels like 2160p and 144p."""
    heights = [f['height'] for f in formats if _has_video(f) and f.get('height')]
    if not heights:
        return 'HD', 'SD'
    return f"{max(heights)}p", f"{min(heights)}p"


def build_envelope(info, input_url):
    formats = info.get('formats') or []
    duration = info.get('duration') or 0
    page_url = info.get('webpage_url') or input_url

    entries = []
    for fmt in dedupe_video_formats(formats):
        entries.append({
            'quality': f"{fmt['height']}p",
            'format': 'MP4',
            'size': format_entry_size(fmt, 'tbr', duration),
            'url': page_url,
            'type': 'video',
        })

    best_audio = select_best_audio(formats)
    if best_audio:
        entries.append({
            'quality': 'Best Audio',
            'format': 'MP3',
            'size': format_entry_size(best_audio, 'abr', duration),
            'url': page_url,
            'type': 'audio',
        })

    preview = select_preview_format(formats)
    best_label, worst_label = quality_labels(formats)
    return {
        'title': info.get('title') or UNKNOWN_TITLE,
        'thumbnail': info.get('thumbnail') or '',
        'duration': format_duration(duration),
        'formats': entries,
        'previewUrl': preview['url'] if preview else page_url,
        'bestQuality': best_label,
        'worstQuality': worst_label,
    }


def validate_thumbnail(thumbnail_url):
    """Keep the thumbnail only if it answers a HEAD with an image."""
    if not thumbnail_url:
        return ''
    try:
        response = requests.head(
            thumbnail_url,
            headers={'User-Agent': config.USER_AGENT},
            timeout=5,
            allow_redirects=True,
        )
    except requests.RequestException as e:
        logger.warning(f"Thumbnail validation failed: {e}")
        return ''
    if response.status_code == 200 and 'image' in response.headers.get('Content-Type', ''):
        return thumbnail_url
    logger.warning(f"Thumbnail invalid or inaccessible: {thumbnail_url}")
    return ''
