"""Wrappers around the yt-dlp extractor.

Metadata lookups and piped downloads shell out to the ``yt-dlp`` binary;
file-mode downloads drive the ``yt_dlp`` package in-process so progress and
postprocessing stay inside one temp directory.
"""
import collections
import json
import logging
import os
import shlex
import shutil
import subprocess
import threading

import yt_dlp
from yt_dlp.utils import YoutubeDLError

from . import config
from .errors import ExtractorError
from .proxies import proxy_url
from .utils import parse_quality

logger = logging.getLogger(__name__)

# Check if ffmpeg is available for merging separate audio+video streams
HAS_FFMPEG = shutil.which('ffmpeg') is not None

STDERR_TAIL_LINES = 50


def _decode(raw):
    if raw is None:
        return ''
    if isinstance(raw, bytes):
        return raw.decode('utf-8', 'replace')
    return raw


def _printable(command):
    """Shell-quoted command for logs, with proxy credentials hidden."""
    shown = list(command)
    for i, arg in enumerate(shown[:-1]):
        if arg == '--proxy':
            shown[i + 1] = '<proxy>'
    return shlex.join(shown)


def cookies_available():
    return bool(config.COOKIES_PATH) and os.path.exists(config.COOKIES_PATH)


def build_base_args(proxy=None):
    args = [config.YTDLP_PATH]
    if cookies_available():
        args += ['--cookies', config.COOKIES_PATH]
    url = proxy_url(proxy)
    if url:
        args += ['--proxy', url]
    return args


def _read_limited(process, limit):
    """Collect stdout, killing the process as soon as it passes ``limit``."""
    chunks = []
    size = 0
    while True:
        chunk = process.read(config.STREAM_CHUNK_SIZE)
        if not chunk:
            return b''.join(chunks)
        size += len(chunk)
        if size > limit:
            process.kill()
            raise ExtractorError(
                'Extractor output too large',
                details=f"Output passed the {limit} byte limit",
                stderr=process.stderr,
            )
        chunks.append(chunk)


def dump_json(url, proxy=None):
    """Run ``yt-dlp --dump-json`` and return the parsed info dict.

    Output is read as it arrives and capped at MAX_BUFFER; the process is
    killed after EXTRACTOR_TIMEOUT seconds.
    """
    command = build_base_args(proxy) + ['--dump-json', '--no-warnings', '--no-playlist', url]
    process = ExtractorProcess(command)
    timed_out = threading.Event()

    def _expire():
        timed_out.set()
        process.proc.kill()

    timer = threading.Timer(config.EXTRACTOR_TIMEOUT, _expire)
    timer.daemon = True
    timer.start()
    try:
        output = _read_limited(process, config.MAX_BUFFER)
        returncode = process.wait()
    finally:
        timer.cancel()
        process.kill()
    stderr = process.stderr

    if timed_out.is_set():
        raise ExtractorError(
            'Extractor timed out',
            details=f"{config.YTDLP_PATH} did not finish within {config.EXTRACTOR_TIMEOUT}s",
            stderr=stderr,
        )
    if returncode != 0:
        raise ExtractorError(
            'Failed to fetch video info',
            details=f"{config.YTDLP_PATH} exited with code {returncode}",
            stderr=stderr,
        )

    # One JSON document per line; with --no-playlist only the first matters
    lines = [line for line in _decode(output).splitlines() if line.strip()]
    if not lines:
        raise ExtractorError('Extractor returned no data', stderr=stderr)
    try:
        data = json.loads(lines[0])
    except ValueError as e:
        raise ExtractorError('Could not parse extractor output', details=str(e), stderr=stderr)
    if not isinstance(data, dict):
        raise ExtractorError('Unexpected extractor output', stderr=stderr)

    logger.info(f"Successfully retrieved info: {data.get('title')}")
    return data


def video_format_selector(quality):
    height = parse_quality(quality)
    if height:
        return f'best[height<={height}][ext=mp4]/best[ext=mp4]/best'
    return 'best[ext=mp4]/best'


def download_args(url, media_type, quality, proxy=None):
    """Arguments that make yt-dlp write the media to stdout."""
    args = build_base_args(proxy) + ['--no-playlist', '--no-progress']
    if media_type == 'audio':
        args += ['--extract-audio', '--audio-format', 'mp3']
    else:
        args += ['-f', video_format_selector(quality), '--merge-output-format', 'mp4']
    return args + ['-o', '-', url]


class ExtractorProcess:
    """A running yt-dlp download whose stderr is drained on a side thread."""

    def __init__(self, command):
        self.command = command
        logger.info(f"Executing command: {_printable(command)}")
        try:
            self.proc = subprocess.Popen(
                command, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except FileNotFoundError as e:
            raise ExtractorError('Extractor binary not found', details=str(e))
        self._stderr = collections.deque(maxlen=STDERR_TAIL_LINES)
        self._reader = threading.Thread(target=self._drain_stderr, daemon=True)
        self._reader.start()

    def _drain_stderr(self):
        for raw in iter(self.proc.stderr.readline, b''):
            line = _decode(raw).rstrip()
            if line:
                self._stderr.append(line)
                logger.warning(f"yt-dlp stderr: {line}")
        self.proc.stderr.close()

    @property
    def stdout(self):
        return self.proc.stdout

    @property
    def stderr(self):
        self._reader.join(timeout=1)
        return '\n'.join(self._stderr)

    def read(self, size):
        return self.proc.stdout.read(size)

    def wait(self, timeout=None):
        code = self.proc.wait(timeout=timeout)
        self._reader.join(timeout=1)
        return code

    def kill(self):
        if self.proc.poll() is None:
            self.proc.kill()
            self.proc.wait()
        self.proc.stdout.close()


def spawn_download(url, media_type, quality, proxy=None):
    return ExtractorProcess(download_args(url, media_type, quality, proxy=proxy))


# ── In-process downloads to a temp directory ──────────────────────────────

class _YtdlpLogger:
    """Route yt_dlp library messages into our logging tree."""

    def debug(self, message):
        pass

    def info(self, message):
        logger.debug(message)

    def warning(self, message):
        logger.warning(f"yt-dlp: {message}")

    def error(self, message):
        # the failure itself is reported once the proxy loop gives up
        logger.warning(f"yt-dlp: {message}")


def file_video_format(quality):
    height = parse_quality(quality)
    limit = f'[height<={height}]' if height else ''
    if HAS_FFMPEG:
        return (f'bestvideo{limit}[ext=mp4][vcodec^=avc]+bestaudio[ext=m4a]'
                f'/bestvideo{limit}[ext=mp4]+bestaudio[ext=m4a]'
                f'/bestvideo{limit}+bestaudio'
                f'/best{limit}[ext=mp4]/best[ext=mp4]/best')
    return f'best{limit}[ext=mp4][vcodec^=avc]/best{limit}[ext=mp4]/best[ext=mp4]/best'


def download_to_file(url, media_type, quality, workdir, proxy=None):
    """Download into ``workdir`` and return the path of the finished file."""
    ydl_opts = {
        'quiet': True,
        'no_warnings': True,
        'logger': _YtdlpLogger(),
        'outtmpl': os.path.join(workdir, '%(id)s.%(ext)s'),
        'restrictfilenames': True,
        'noplaylist': True,
        'socket_timeout': 30,
        'concurrent_fragment_downloads': 8,
    }
    if proxy:
        ydl_opts['proxy'] = proxy_url(proxy)
    if cookies_available():
        ydl_opts['cookiefile'] = config.COOKIES_PATH

    if media_type == 'audio':
        ydl_opts['format'] = 'bestaudio/best'
        if HAS_FFMPEG:
            ydl_opts['postprocessors'] = [{
                'key': 'FFmpegExtractAudio',
                'preferredcodec': 'mp3',
                'preferredquality': '192',
            }]
    else:
        ydl_opts['format'] = file_video_format(quality)
        if HAS_FFMPEG:
            ydl_opts['merge_output_format'] = 'mp4'

    logger.info(f"Downloading {media_type} for {url} into {workdir}")
    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            ydl.extract_info(url, download=True)
    except YoutubeDLError as e:
        raise ExtractorError('Download failed', details=str(e))

    downloaded_files = sorted(
        f for f in os.listdir(workdir)
        if not f.endswith('.part') and not f.endswith('.ytdl')
    )
    if not downloaded_files:
        raise ExtractorError('Download failed', details='Extractor produced no output file')
    return os.path.join(workdir, downloaded_files[0])
