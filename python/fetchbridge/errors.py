# -*- encoding: utf-8 -*-
"""
Exceptions raised by the fetch transport and its response readers.

Errors are grouped by where they surface:
- the round trip itself (FetchFailedError, ContentLengthError subclasses)
- a response body reader (BodyReadError, ReaderClosedError)
- the upload stream handed to the host (UploadStreamError)

Context cancellation errors live in fetchbridge.context.
"""

from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """Base exception for fetch transport operations."""

    def __init__(self, message: str, *, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class TransportUnavailableError(FetchError):
    """Fetch cannot be used and no legacy transport is configured."""

    pass


class ContentLengthError(FetchError, ValueError):
    """Response carried an unusable Content-Length header."""

    pass


class MalformedContentLengthError(ContentLengthError):
    """Content-Length is not a base-10 integer."""

    pass


class InvalidContentLengthError(ContentLengthError):
    """Content-Length parsed but is negative."""

    pass


class FetchFailedError(FetchError):
    """The host rejected the fetch call."""

    pass


class BodyReadError(FetchError, OSError):
    """Reading a response body from the host failed."""

    pass


class UploadStreamError(FetchError, OSError):
    """Reading the request body failed while streaming it to the host."""

    pass


class ReaderClosedError(FetchError, ValueError):
    """Read attempted on a response body after close()."""

    def __init__(self, message: str = "reader is closed", **kwa):
        super().__init__(message, **kwa)
