"""Generators that pipe remote media, extractor output or temp files."""
import logging
import os
import shutil
from urllib.parse import urljoin

import requests

from . import config
from .errors import InvalidRequestError, MediaFetchError
from .platforms import is_public_http_url

logger = logging.getLogger(__name__)

PASSTHROUGH_HEADERS = ('Content-Type', 'Content-Length', 'Content-Range', 'Accept-Ranges')


def open_remote(url, range_header=None, max_redirects=None):
    """Start a streaming GET for ``url``, forwarding the client's Range.

    Redirects are followed one hop at a time and every hop must pass
    ``is_public_http_url``.
    """
    if max_redirects is None:
        max_redirects = config.MAX_REDIRECTS
    headers = {'User-Agent': config.USER_AGENT, 'Accept': '*/*'}
    if range_header:
        headers['Range'] = range_header

    current = url
    for _ in range(max_redirects + 1):
        if not is_public_http_url(current):
            raise InvalidRequestError('Only public http(s) URLs can be streamed', details=current)
        try:
            response = requests.get(
                current,
                headers=headers,
                stream=True,
                timeout=(10, 30),
                allow_redirects=False,
            )
        except requests.RequestException as e:
            raise MediaFetchError('Failed to open remote stream', details=str(e))
        location = response.headers.get('Location')
        if not (300 <= response.status_code < 400 and location):
            break
        response.close()
        current = urljoin(current, location)
        logger.info(f"Stream redirected to {current}")
    else:
        raise MediaFetchError('Failed to open remote stream',
                              details=f"More than {max_redirects} redirects")

    if response.status_code >= 400:
        response.close()
        raise MediaFetchError(
            'Failed to open remote stream',
            details=f"HTTP {response.status_code}: {response.reason}",
        )
    logger.info(f"Stream connected ({response.status_code}) - Size: "
                f"{response.headers.get('Content-Length', 'unknown')} bytes")
    return response


def passthrough_headers(response):
    return {name: response.headers[name] for name in PASSTHROUGH_HEADERS if name in response.headers}


def iter_remote(response, chunk_size=None):
    try:
        for chunk in response.iter_content(chunk_size=chunk_size or config.STREAM_CHUNK_SIZE):
            if chunk:
                yield chunk
    except requests.RequestException as e:
        logger.error(f"Streaming error: {e}")
    finally:
        response.close()


def iter_process(process, first_chunk=b'', chunk_size=None):
    """Yield extractor stdout; the process is killed if the client goes away."""
    chunk_size = chunk_size or config.STREAM_CHUNK_SIZE
    finished = False
    try:
        if first_chunk:
            yield first_chunk
        while True:
            chunk = process.read(chunk_size)
            if not chunk:
                break
            yield chunk
        code = process.wait()
        finished = True
        process.stdout.close()
        if code != 0:
            logger.error(f"yt-dlp process exited with code {code}")
        else:
            logger.info("Download stream completed")
    finally:
        if not finished:
            logger.warning("Client disconnected, stopping yt-dlp")
            process.kill()


def iter_file_and_cleanup(path, workdir, chunk_size=None):
    """Yield a finished download, then remove its temp directory."""
    chunk_size = chunk_size or config.STREAM_CHUNK_SIZE
    try:
        with open(path, 'rb') as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                yield chunk
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
        logger.info(f"Removed temp directory {workdir}")


def file_size(path):
    try:
        return os.path.getsize(path)
    except OSError:
        return None
