import logging

from . import config

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

_configured = False


def setup_logger(level=None):
    """Configure root logging once for the service."""
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL), logging.INFO),
        format=LOG_FORMAT,
    )
    # werkzeug logs every request line at INFO
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    _configured = True
