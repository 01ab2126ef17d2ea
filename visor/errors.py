from __future__ import annotations


class VisorError(Exception):
    """Base for every failure the client surfaces to its caller.

    ``message`` is safe to show to the user as-is.
    """

    default_message = "Unexpected error"

    def __init__(self, message: str | None = None, status: int | None = None):
        self.message = message or self.default_message
        self.status = status
        super().__init__(self.message)


class ValidationError(VisorError):
    """Input rejected locally, before any request was made."""

    default_message = "Invalid input"


class Unauthenticated(VisorError):
    """No stored credential; the request was never sent."""

    default_message = "Not authenticated"


class SessionExpired(VisorError):
    """Backend answered 401 to an authenticated request."""

    default_message = "Session expired, please log in again"


class RemoteError(VisorError):
    """Backend rejected the request (non-2xx or ``success: false``)."""

    default_message = "Request failed"


class NetworkError(VisorError):
    """The request never completed."""

    default_message = "Network error, try again"
