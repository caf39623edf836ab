# -*- encoding: utf-8 -*-
"""
Request, Response and the per-call fetch options.

Headers are case-insensitive multimaps (multidict.CIMultiDict): every value of
a repeated header is kept in arrival order.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Iterable, Optional, Tuple

from multidict import CIMultiDict

from .context import Context, background


# Request header keys that configure fetch() instead of going on the wire.
FETCH_CREDENTIALS = "js.fetch:credentials"  # omit / same-origin / include
FETCH_MODE = "js.fetch:mode"  # cors / no-cors / same-origin / navigate
FETCH_REDIRECT = "js.fetch:redirect"  # follow / error / manual

DEFAULT_CREDENTIALS = "same-origin"
DEFAULT_MODE = "same-origin"
DEFAULT_REDIRECT = "follow"


def canonical_header_key(name: str) -> str:
    """
    Canonical MIME form of a header name: "content-type" -> "Content-Type".

    Names containing characters outside the HTTP token set are returned
    unchanged.
    """
    if not name or any(ch in name for ch in " \t\r\n:") or not name.isascii():
        return name
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


def header_multimap(pairs: Iterable[Tuple[str, str]]) -> CIMultiDict:
    """Build a header multimap with canonical keys, keeping duplicates in order."""
    headers = CIMultiDict()
    for name, value in pairs:
        headers.add(canonical_header_key(str(name)), str(value))
    return headers


def status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


@dataclass
class Request:
    """
    Outgoing HTTP request.

    body is any object with read(size) and close(); bytes are wrapped in a
    BytesIO. The transport strips reserved keys from headers in place.
    """

    method: str
    url: str
    headers: Any = None
    body: Any = None
    context: Context = field(default_factory=background)

    def __post_init__(self):
        if not isinstance(self.headers, CIMultiDict):
            headers = CIMultiDict()
            if self.headers:
                items = self.headers.items() if hasattr(self.headers, "items") else self.headers
                for name, value in items:
                    if isinstance(value, (list, tuple)):
                        for v in value:
                            headers.add(name, v)
                    else:
                        headers.add(name, value)
            self.headers = headers
        if isinstance(self.body, (bytes, bytearray, memoryview)):
            self.body = io.BytesIO(bytes(self.body))


@dataclass
class UploadStream:
    """Pull-driven host stream carrying a request body, plus its pull proxy."""

    body: Any
    callback: Any = None


@dataclass
class FetchOptions:
    """
    Options for one fetch() call, built fresh per round trip.

    body is None (no body), bytes (buffered upload) or an UploadStream.
    """

    method: str
    credentials: str = DEFAULT_CREDENTIALS
    mode: str = DEFAULT_MODE
    redirect: str = DEFAULT_REDIRECT
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: Any = None
    duplex: Optional[str] = None
    signal: Any = None


@dataclass
class Response:
    """HTTP response produced from a settled fetch() call."""

    status_code: int
    status: str
    headers: CIMultiDict
    content_length: int
    body: Any
    request: Optional[Request] = None

    def read(self) -> bytes:
        """Read and close the whole body."""
        with self.body:
            return self.body.read()
