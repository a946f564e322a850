"""Environment-driven settings.

Values come from the process environment, optionally seeded from a ``.env``
file in the working directory.
"""
import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_int(name, default):
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name, default=''):
    raw = os.environ.get(name, default) or ''
    return [item.strip() for item in raw.split(',') if item.strip()]


# ── Server ────────────────────────────────────────────────────────────────
HOST = os.environ.get('HOST', '0.0.0.0')
PORT = _env_int('PORT', 8080)
SECRET_KEY = os.environ.get('FLASK_SECRET_KEY', 'dev-only-change-me')
CORS_ORIGINS = _env_list('CORS_ORIGINS', '*')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

# ── Extractor binary ──────────────────────────────────────────────────────
YTDLP_PATH = os.environ.get('YTDLP_PATH', 'yt-dlp')
COOKIES_PATH = os.environ.get(
    'COOKIES_PATH', os.path.join(BASE_DIR, 'youtube.com_cookies.txt'))
EXTRACTOR_TIMEOUT = _env_int('EXTRACTOR_TIMEOUT', 120)
MAX_BUFFER = _env_int('MAX_BUFFER', 1024 * 1024 * 20)

# ── Downloads ─────────────────────────────────────────────────────────────
DOWNLOAD_DIR = os.environ.get(
    'DOWNLOAD_DIR', os.path.join(tempfile.gettempdir(), 'mediafetch_downloads'))
DOWNLOAD_MODE = os.environ.get('DOWNLOAD_MODE', 'pipe').lower()  # pipe | file
STREAM_CHUNK_SIZE = _env_int('STREAM_CHUNK_SIZE', 64 * 1024)

# ── Outbound HTTP ─────────────────────────────────────────────────────────
REQUEST_TIMEOUT = _env_int('REQUEST_TIMEOUT', 15)
MAX_REDIRECTS = _env_int('MAX_REDIRECTS', 5)
USER_AGENT = os.environ.get(
    'USER_AGENT',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36')

# ── Proxy rotation ────────────────────────────────────────────────────────
PROXY_FILES = _env_list('PROXY_FILES', '.txt1,.txt2,.txt3,.txt4')
PROXIES = _env_list('PROXIES')
PROXY_RETRIES = _env_int('PROXY_RETRIES', 2)
PROXY_RETRY_DELAY = _env_float('PROXY_RETRY_DELAY', 1.0)
PROXY_SHUFFLE = _env_bool('PROXY_SHUFFLE', True)

# ── YouTube Data API (OAuth) ──────────────────────────────────────────────
GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID', '')
GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET', '')
GOOGLE_REDIRECT_URI = os.environ.get(
    'GOOGLE_REDIRECT_URI', f'http://localhost:{PORT}/oauth2callback')
GOOGLE_TOKEN_FILE = os.environ.get(
    'GOOGLE_TOKEN_FILE', os.path.join(BASE_DIR, 'google_token.json'))
GOOGLE_SCOPES = ['https://www.googleapis.com/auth/youtube.readonly']
FRONTEND_URL = os.environ.get('FRONTEND_URL', '')
