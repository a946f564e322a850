import logging

from flask import Flask, Response, jsonify, redirect, request, session, stream_with_context
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from . import config, extractor, oauth, service
from .errors import AuthError, MediaFetchError
from .log import setup_logger
from .platforms import is_public_http_url
from .proxies import load_proxies
from .streaming import iter_remote, open_remote, passthrough_headers
from .utils import content_disposition, sanitize_filename

setup_logger()
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = config.SECRET_KEY
CORS(app, origins=config.CORS_ORIGINS, methods=['GET', 'POST'], allow_headers=['Content-Type'])

REQUIRED_DOWNLOAD_FIELDS = ('url', 'filename', 'type', 'quality')


def _request_data():
    """JSON body, falling back to form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _failure(message, error):
    body = {'error': message, 'details': error.details or error.message}
    if error.stderr is not None:
        body['stderr'] = error.stderr or 'No stderr'
    return jsonify(body), error.status_code


@app.errorhandler(MediaFetchError)
def handle_media_fetch_error(error):
    logger.error(f"{error.message}: {error.details or ''}")
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return jsonify({'error': error.description}), error.code
    logger.exception("Unhandled error")
    return jsonify({'error': 'Internal server error', 'details': str(error)}), 500


# ── Metadata ──────────────────────────────────────────────────────────────

@app.route('/api/video-info', methods=['POST'])
def api_video_info():
    data = _request_data()
    url = (data.get('url') or '').strip()
    if not url:
        return jsonify({'error': 'URL is required'}), 400

    try:
        envelope = service.get_video_info(url, platform=data.get('platform'))
    except MediaFetchError as e:
        logger.error(f"Failed to fetch video info: {e.details or e.message}")
        return _failure('Failed to fetch video info', e)
    return jsonify(envelope)


# ── Downloads ─────────────────────────────────────────────────────────────

@app.route('/api/download', methods=['POST'])
def api_download():
    data = _request_data()
    if any(not str(data.get(field) or '').strip() for field in REQUIRED_DOWNLOAD_FIELDS):
        return jsonify({'error': 'Parameters url, filename, type, and quality are required'}), 400

    media_type = str(data['type']).strip().lower()
    if media_type not in service.MEDIA_TYPES:
        return jsonify({'error': "Parameter type must be 'audio' or 'video'"}), 400

    sanitized_filename = sanitize_filename(str(data['filename']))
    try:
        download = service.start_download(
            str(data['url']).strip(),
            media_type,
            str(data['quality']),
            platform=data.get('platform'),
        )
    except MediaFetchError as e:
        logger.error(f"Download failed: {e.details or e.message}")
        return _failure('Download failed', e)

    response = Response(stream_with_context(download.iterator), mimetype=download.mimetype)
    response.headers['Content-Disposition'] = content_disposition(sanitized_filename, download.extension)
    if download.content_length:
        response.headers['Content-Length'] = str(download.content_length)
    return response


# ── Remote media proxy ────────────────────────────────────────────────────

def _proxy_remote_media(as_attachment):
    url = (request.args.get('url') or '').strip()
    if not url:
        return jsonify({'error': 'URL is required'}), 400
    if not is_public_http_url(url):
        return jsonify({'error': 'Only public http(s) URLs can be streamed'}), 400

    try:
        upstream = open_remote(url, range_header=request.headers.get('Range'))
    except MediaFetchError as e:
        return _failure('Failed to stream media', e)

    headers = passthrough_headers(upstream)
    headers.setdefault('Content-Type', 'application/octet-stream')
    headers['Cache-Control'] = 'no-cache'
    filename = request.args.get('filename')
    if as_attachment and filename:
        ext = 'mp3' if headers['Content-Type'].startswith('audio/') else 'mp4'
        headers['Content-Disposition'] = content_disposition(sanitize_filename(filename), ext)

    return Response(
        stream_with_context(iter_remote(upstream)),
        status=upstream.status_code,
        headers=headers,
    )


@app.route('/api/stream-preview')
def api_stream_preview():
    """Inline playback of a remote media URL, Range requests included."""
    return _proxy_remote_media(as_attachment=False)


@app.route('/api/proxy-stream')
def api_proxy_stream():
    """Same as the preview, but offered as a download when a filename is given."""
    return _proxy_remote_media(as_attachment=True)


# ── YouTube Data API authorization ────────────────────────────────────────

@app.route('/api/auth-url')
def api_auth_url():
    auth_url, state, code_verifier = oauth.authorization_url()
    session['oauth_state'] = state
    session['oauth_code_verifier'] = code_verifier
    return jsonify({'authUrl': auth_url})


@app.route('/oauth2callback')
def oauth2callback():
    if request.args.get('error'):
        raise AuthError('Authorization denied', details=request.args['error'])
    if not request.args.get('code'):
        raise AuthError('Missing authorization code')

    oauth.exchange_code(
        request.url,
        state=session.pop('oauth_state', None),
        code_verifier=session.pop('oauth_code_verifier', None),
    )
    if config.FRONTEND_URL:
        return redirect(config.FRONTEND_URL)
    return jsonify({'message': 'Authorization successful'})


@app.route('/api/health')
def api_health():
    return jsonify({
        'status': 'ok',
        'ffmpeg': extractor.HAS_FFMPEG,
        'cookies': extractor.cookies_available(),
        'proxies': len(load_proxies()),
        'youtubeAuthorized': oauth.is_configured() and oauth.has_stored_credentials(),
    })


def main():
    logger.info(f"Server running at http://localhost:{config.PORT}")
    app.run(host=config.HOST, port=config.PORT)


if __name__ == '__main__':
    main()
