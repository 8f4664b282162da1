"""Error taxonomy shared by the request pipeline.

Every error carries the HTTP-equivalent status code reported to the query
engine alongside the message.
"""

from __future__ import annotations


class InfinityError(Exception):
    """Base class for request pipeline errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(InfinityError):
    """Raised before any network activity when settings are unusable."""


class UnauthorizedURLError(InfinityError):
    """Raised when the resolved URL is outside the allowed hosts."""

    status_code = 401


class TransportError(InfinityError):
    """Raised when no response was received from the server."""


class ServerError(InfinityError):
    """Raised for responses with status >= 400. The message is the status line."""


class BodyEncodingError(InfinityError):
    """Raised when a request body cannot be encoded."""


class BlobError(InfinityError):
    """Raised when a blob storage download cannot be performed."""
