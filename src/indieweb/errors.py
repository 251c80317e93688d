"""
Webmention error taxonomy.

Every protocol-facing failure in the receiving pipeline is raised as a
WebmentionError subclass and converted into an HTTP status plus a JSON body
at the receiver boundary. The ``message`` attribute is safe to show to the
client; ``detail`` is for logs only.
"""
from typing import Optional


class WebmentionError(Exception):
    """Base class for errors that map to a client-facing HTTP status."""

    status_code = 400
    message = "Bad Request"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None,
                 detail: Optional[str] = None):
        self.message = message or self.message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail
        super().__init__(detail or self.message)


class ValidationError(WebmentionError):
    """Malformed or missing input (400), disallowed source (403) or method (405)."""


class RateLimitedError(WebmentionError):
    status_code = 429
    message = "Too Many Requests"


class FetchError(WebmentionError):
    """The source could not be fetched.

    Always surfaces to clients as a generic 400; the underlying reason is kept
    in ``detail``.
    """
    status_code = 400
    message = "Failed to fetch source"

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class StorageError(WebmentionError):
    status_code = 500
    message = "Failed to store webmention"
