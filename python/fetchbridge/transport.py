# -*- encoding: utf-8 -*-
"""
Blocking HTTP round trips over the host fetch() primitive.

Usage:
    transport = Transport(legacy=socket_transport)
    resp = transport.round_trip(Request("GET", "https://example.org/"))
    data = resp.read()

The caller blocks until fetch() settles or the request context is done,
whichever comes first. Success and failure arrive through host callbacks;
both run the same cleanup (destroy proxies, close the request body) even when
the caller has already given up and their outcome is discarded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from . import log
from .body import BufferBody, StreamBody
from .bridge import Callbacks, Slot
from .cancel import CancellationBridge
from .context import Canceled, background
from .errors import (
    FetchFailedError,
    InvalidContentLengthError,
    MalformedContentLengthError,
    TransportUnavailableError,
)
from .host import Host, HostResponse, PyodideHost
from .models import (
    DEFAULT_CREDENTIALS,
    DEFAULT_MODE,
    DEFAULT_REDIRECT,
    FETCH_CREDENTIALS,
    FETCH_MODE,
    FETCH_REDIRECT,
    FetchOptions,
    Request,
    Response,
    header_multimap,
    status_text,
)
from .probe import Capabilities
from .pump import BodyPump, RequestBody

DEFAULT_WRITE_BUFFER_SIZE = 4 << 10

_CONTENT_LENGTH_RE = re.compile(r"[+-]?[0-9]+")

_CANCELLED = object()  # slot value for a done context


def _take_reserved(headers, key: str) -> Optional[str]:
    """Remove every value of a reserved key; return the first if non-empty."""
    values = headers.popall(key, [])
    return values[0] if values and values[0] else None


def build_options(request: Request, signal: Any = None) -> FetchOptions:
    """
    Fetch options for request, consuming its reserved headers.

    Reserved keys are deleted from request.headers in place; all remaining
    headers are copied with duplicates and order preserved.
    """
    headers = request.headers
    options = FetchOptions(method=request.method)
    options.credentials = _take_reserved(headers, FETCH_CREDENTIALS) or DEFAULT_CREDENTIALS
    options.mode = _take_reserved(headers, FETCH_MODE) or DEFAULT_MODE
    options.redirect = _take_reserved(headers, FETCH_REDIRECT) or DEFAULT_REDIRECT
    options.signal = signal
    options.headers = headers.copy()
    return options


def parse_content_length(value: Optional[str]) -> int:
    """Declared length, or -1 when the header is absent or empty."""
    text = value.strip() if value is not None else ""
    if not text:
        return -1
    if not _CONTENT_LENGTH_RE.fullmatch(text):
        raise MalformedContentLengthError(
            f"ill-formed Content-Length header: {value!r}")
    length = int(text)
    if length < 0:
        raise InvalidContentLengthError(f"invalid Content-Length header: {value!r}")
    return length


def describe_failure(error: Any) -> str:
    """
    Text for a fetch() rejection: the error itself plus one level of cause.

    The cause is stringified, never walked, so cyclic or deep host error
    chains cannot recurse.
    """
    message = str(error)
    cause = getattr(error, "cause", None)
    if cause is not None:
        message = f"{message}: {cause}"
    return message


@dataclass
class Transport:
    """
    Round tripper that prefers the host fetch() primitive.

    Parameters:
        host: host boundary; defaults to PyodideHost()
        capabilities: host capability flags; detected once on first use
        legacy: round tripper used when fetch is bypassed, either a callable
                taking a Request or an object with round_trip(request)
        dial, dial_context, dial_tls, dial_tls_context: low-level dial hooks;
                setting any of them routes every request to legacy
        write_buffer_size: upload chunk size for streamed request bodies
    """

    host: Optional[Host] = None
    capabilities: Optional[Capabilities] = None
    legacy: Any = None
    dial: Optional[Callable] = None
    dial_context: Optional[Callable] = None
    dial_tls: Optional[Callable] = None
    dial_tls_context: Optional[Callable] = None
    write_buffer_size: int = 0

    def __post_init__(self):
        if self.host is None:
            self.host = PyodideHost()

    def host_capabilities(self) -> Capabilities:
        if self.capabilities is None:
            self.capabilities = Capabilities.detect(self.host)
        return self.capabilities

    def chunk_size(self) -> int:
        if self.write_buffer_size > 0:
            return self.write_buffer_size
        return DEFAULT_WRITE_BUFFER_SIZE

    def bypassed(self) -> bool:
        """True when requests must go through the legacy transport."""
        if (self.dial is not None or self.dial_context is not None or
                self.dial_tls is not None or self.dial_tls_context is not None):
            return True
        return not self.host_capabilities().usable

    def round_trip(self, request: Request) -> Response:
        if self.bypassed():
            return self._legacy_round_trip(request)
        return self._fetch_round_trip(request)

    def _legacy_round_trip(self, request: Request) -> Response:
        if self.legacy is None:
            raise TransportUnavailableError(
                "fetch() is unavailable and no legacy transport is configured")
        log.emit("bypassing fetch()", "debug", url=request.url)
        if hasattr(self.legacy, "round_trip"):
            return self.legacy.round_trip(request)
        return self.legacy(request)

    def _fetch_round_trip(self, request: Request) -> Response:
        host = self.host
        context = request.context if request.context is not None else background()
        body = RequestBody(request.body) if request.body is not None else None

        bridge = CancellationBridge(host.abort_controller())
        options = build_options(request, bridge.signal)
        callbacks = Callbacks()
        slot = Slot()

        def cleanup():
            callbacks.release()
            if body is not None:
                body.close()

        def on_fulfilled(result):
            cleanup()
            try:
                response = self._build_response(request, result)
            except Exception as ex:
                if not slot.fail(ex):
                    log.emit("discarded late fetch() error", "debug", url=request.url, error=str(ex))
                return
            if not slot.offer(response):
                log.emit("discarded late fetch() response", "debug", url=request.url,
                         status=response.status_code)
                response.body.close()

        def on_rejected(error):
            cleanup()
            failure = FetchFailedError(f"fetch() failed: {describe_failure(error)}",
                                       name=getattr(error, "name", None))
            if isinstance(error, BaseException):
                failure.__cause__ = error
            log.emit("fetch() rejected", "debug", url=request.url, error=str(failure))
            if not slot.fail(failure):
                log.emit("discarded late fetch() failure", "debug", url=request.url, error=str(failure))

        try:
            if body is not None:
                if not self.host_capabilities().streaming_upload:
                    data = body.read_all()
                    if data:
                        options.body = data
                else:
                    pump = BodyPump(body, self.chunk_size())
                    upload = host.readable_stream(pump.pull, self.chunk_size())
                    callbacks.add(upload.callback)
                    options.body = upload
                    # a stream body must be sent half duplex
                    options.duplex = "half"

            log.emit("fetch()", "debug", method=options.method, url=request.url)
            future = host.fetch(request.url, options)
            callbacks.add(*future.then(on_fulfilled, on_rejected))
        except Exception:
            cleanup()
            raise

        bridge.watch(context, lambda: slot.offer(_CANCELLED))
        try:
            while not slot.done():
                if context.err() is not None:
                    slot.offer(_CANCELLED)
                    break
                host.block_on(slot.future, context.remaining())
        finally:
            bridge.release()

        outcome = slot.take()
        if outcome is _CANCELLED:
            err = context.err() or Canceled()
            if bridge.abort():
                log.emit("aborted fetch()", "debug", url=request.url, reason=str(err))
            if body is not None:
                body.close()
            raise err
        return outcome

    def _build_response(self, request: Request, result: HostResponse) -> Response:
        headers = header_multimap(result.headers)
        try:
            content_length = parse_content_length(headers.get("Content-Length"))
        except ValueError:
            if result.body is not None:
                result.body.cancel()
            raise

        if result.body is not None:
            body = StreamBody(self.host, result.body)
        else:
            body = BufferBody(self.host, result.array_buffer())

        code = int(result.status)
        return Response(
            status_code=code,
            status=f"{code} {status_text(code)}",
            headers=headers,
            content_length=content_length,
            body=body,
            request=request,
        )
