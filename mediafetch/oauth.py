"""YouTube Data API access through a Google OAuth web flow.

Used only to fill in YouTube metadata when the extractor comes back short,
or when it fails outright.
"""
import logging
import os
import re
from urllib.parse import urlparse

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from . import config
from .errors import AuthError

logger = logging.getLogger(__name__)

_ISO_DURATION = re.compile(
    r'^P(?:(?P<days>\d+)D)?'
    r'(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$'
)


def is_configured():
    return bool(config.GOOGLE_CLIENT_ID and config.GOOGLE_CLIENT_SECRET)


def _client_config():
    return {
        'web': {
            'client_id': config.GOOGLE_CLIENT_ID,
            'client_secret': config.GOOGLE_CLIENT_SECRET,
            'auth_uri': 'https://accounts.google.com/o/oauth2/auth',
            'token_uri': 'https://oauth2.googleapis.com/token',
            'redirect_uris': [config.GOOGLE_REDIRECT_URI],
        }
    }


def _configure_transport():
    # oauthlib refuses plain http callbacks unless told otherwise
    parsed = urlparse(config.GOOGLE_REDIRECT_URI)
    if parsed.scheme == 'http' and (parsed.hostname or '') in ('localhost', '127.0.0.1'):
        os.environ['OAUTHLIB_INSECURE_TRANSPORT'] = '1'


def _make_flow(state=None):
    if not is_configured():
        raise AuthError('OAuth is not configured',
                        details='Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.')
    _configure_transport()
    flow = Flow.from_client_config(_client_config(), scopes=config.GOOGLE_SCOPES, state=state)
    flow.redirect_uri = config.GOOGLE_REDIRECT_URI
    return flow


def authorization_url():
    """Return ``(url, state, code_verifier)`` for the consent screen.

    The caller keeps state and verifier until the callback arrives.
    """
    flow = _make_flow()
    url, state = flow.authorization_url(
        access_type='offline',
        include_granted_scopes='true',
        prompt='consent',
    )
    return url, state, flow.code_verifier


def save_credentials(creds):
    with open(config.GOOGLE_TOKEN_FILE, 'w', encoding='utf-8') as f:
        f.write(creds.to_json())


def exchange_code(authorization_response, state=None, code_verifier=None):
    """Trade the callback URL's code for tokens and persist them."""
    flow = _make_flow(state=state)
    if code_verifier:
        flow.code_verifier = code_verifier
    try:
        flow.fetch_token(authorization_response=authorization_response)
    except (OAuth2Error, GoogleAuthError, ValueError, Warning) as e:
        # oauthlib raises a bare Warning when the granted scopes differ
        raise AuthError('OAuth token exchange failed', details=str(e))
    save_credentials(flow.credentials)
    logger.info("Stored YouTube API credentials")
    return flow.credentials


def _read_credentials():
    if not os.path.exists(config.GOOGLE_TOKEN_FILE):
        return None
    try:
        return Credentials.from_authorized_user_file(config.GOOGLE_TOKEN_FILE, config.GOOGLE_SCOPES)
    except (ValueError, OSError) as e:
        logger.warning(f"Could not read {config.GOOGLE_TOKEN_FILE}: {e}")
        return None


def load_credentials():
    """Stored credentials, refreshed over the network when expired."""
    creds = _read_credentials()
    if creds is None:
        return None
    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(GoogleRequest())
            save_credentials(creds)
        except GoogleAuthError as e:
            logger.warning(f"Refreshing YouTube API credentials failed: {e}")
            return None
    return creds if creds.valid else None


def has_stored_credentials():
    """A readable token that is valid now or can be refreshed. No network."""
    creds = _read_credentials()
    return creds is not None and (creds.valid or bool(creds.refresh_token))


def parse_iso8601_duration(value):
    """``PT1H2M3S`` -> 3723. Unparseable values give 0."""
    match = _ISO_DURATION.match(value or '')
    if not match:
        return 0
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    return (parts.get('days', 0) * 86400 + parts.get('hours', 0) * 3600
            + parts.get('minutes', 0) * 60 + parts.get('seconds', 0))


def _best_thumbnail(thumbnails):
    for key in ('maxres', 'standard', 'high', 'medium', 'default'):
        if thumbnails.get(key, {}).get('url'):
            return thumbnails[key]['url']
    return None


def fetch_video_metadata(video_id, creds=None):
    """Title, thumbnail and duration of one video, or None."""
    creds = creds or load_credentials()
    if not creds or not video_id:
        return None
    try:
        youtube = build('youtube', 'v3', credentials=creds, cache_discovery=False)
        response = youtube.videos().list(part='snippet,contentDetails', id=video_id).execute()
    except (HttpError, GoogleAuthError) as e:
        logger.warning(f"YouTube Data API lookup failed for {video_id}: {e}")
        return None

    items = response.get('items') or []
    if not items:
        return None
    snippet = items[0].get('snippet', {})
    details = items[0].get('contentDetails', {})
    return {
        'title': snippet.get('title'),
        'thumbnail': _best_thumbnail(snippet.get('thumbnails') or {}),
        'duration_seconds': parse_iso8601_duration(details.get('duration')),
        'uploader': snippet.get('channelTitle'),
    }
