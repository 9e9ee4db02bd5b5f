"""
Error taxonomy for the backlink pipeline.

ValidationError and PersistenceError abort a request; ParseError only ever
rejects a single CSV row and is swallowed by the ingest loop.
"""


class BacklinkAnalyzerError(Exception):
    """Base class for every error raised by this package"""
    status_code = 500

    def __init__(self, message, error=None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(BacklinkAnalyzerError):
    """A required request field is missing or malformed"""
    status_code = 400


class ParseError(BacklinkAnalyzerError):
    """A CSV row cannot be turned into a backlink record"""
    status_code = 422


class NotFoundError(BacklinkAnalyzerError):
    """A project or group id does not exist"""
    status_code = 404


class PersistenceError(BacklinkAnalyzerError):
    """The store rejected a statement or could not be reached"""
    status_code = 500
