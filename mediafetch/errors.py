"""Exceptions raised while looking up or streaming media."""


class MediaFetchError(Exception):
    """Base error; rendered by the app as a JSON body with ``status_code``."""

    status_code = 500

    def __init__(self, message, details=None, stderr=None, status_code=None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.stderr = stderr
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        if self.stderr is not None:
            body['stderr'] = self.stderr or 'No stderr'
        return body


class InvalidRequestError(MediaFetchError):
    status_code = 400


class ExtractorError(MediaFetchError):
    """The extractor process failed, timed out or printed unusable output."""

    def __init__(self, message, details=None, stderr='', status_code=None):
        super().__init__(message, details=details, stderr=stderr or '',
                         status_code=status_code)


class ScrapeError(MediaFetchError):
    pass


class ProxyExhaustedError(MediaFetchError):
    pass


class AuthError(MediaFetchError):
    status_code = 400
