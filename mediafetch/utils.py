"""Filename and presentation helpers shared by the routes."""
import re
from urllib.parse import quote

_RESERVED_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')
_EMOJI_RANGES = re.compile(
    '['
    '\U0001F600-\U0001F64F'
    '\U0001F300-\U0001F5FF'
    '\U0001F680-\U0001F6FF'
    '\u2600-\u26FF'
    '\u2700-\u27BF'
    '\U0001F900-\U0001F9FF'
    ']'
)
_MEDIA_SUFFIX = re.compile(r'\.(mp3|mp4)$', re.IGNORECASE)

MAX_FILENAME_LENGTH = 150


def sanitize_filename(filename):
    """Make a user supplied title safe for a Content-Disposition header."""
    name = _RESERVED_CHARS.sub('_', filename or '')
    name = _EMOJI_RANGES.sub('', name)
    name = re.sub(r'\s+', '_', name)
    name = _MEDIA_SUFFIX.sub('', name)
    name = name[:MAX_FILENAME_LENGTH]
    return name or 'download'


def content_disposition(filename, ext, attachment=True):
    disposition = 'attachment' if attachment else 'inline'
    return f'{disposition}; filename="{quote(filename, safe="")}.{ext}"'


def format_duration(seconds):
    """Seconds as HH:MM:SS; hours wrap at 24."""
    try:
        total = int(float(seconds or 0))
    except (TypeError, ValueError):
        total = 0
    if total <= 0:
        return '00:00:00'
    total %= 86400
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f'{hours:02d}:{minutes:02d}:{secs:02d}'


def format_size(num_bytes):
    return f'{num_bytes / (1024 * 1024):.2f}MB'


def estimate_file_size(bitrate_kbps, duration_seconds):
    """Approximate size from an average bitrate in kbps."""
    size_in_bytes = bitrate_kbps * 1000 * duration_seconds / 8
    return format_size(size_in_bytes)


def parse_quality(quality):
    """Leading height of ``"720p"`` style labels, or None."""
    match = re.match(r'\s*(\d+)', str(quality or ''))
    return int(match.group(1)) if match else None


def video_mime_from_ext(ext):
    ext = (ext or '').lower()
    if ext == 'webm':
        return 'video/webm'
    if ext == 'mkv':
        return 'video/x-matroska'
    if ext == 'm4v':
        return 'video/x-m4v'
    if ext == 'mov':
        return 'video/quicktime'
    return 'video/mp4'


AUDIO_MIME_TYPES = {
    'mp3': 'audio/mpeg',
    'wav': 'audio/wav',
    'm4a': 'audio/mp4',
    'opus': 'audio/opus',
    'webm': 'audio/webm',
    'ogg': 'audio/ogg',
}


def audio_mime_from_ext(ext):
    ext = (ext or 'mp3').lower()
    return AUDIO_MIME_TYPES.get(ext, f'audio/{ext}')
