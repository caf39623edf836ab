# -*- encoding: utf-8 -*-
"""
Host boundary: the asynchronous fetch primitive the transport drives.

The transport never touches JavaScript objects directly. It talks to a Host,
which hands back Python views of the host's futures, responses and streams:

- HostFuture.then(on_fulfilled, on_rejected) registers both continuations
  once and returns the proxies it created, so the caller can destroy them
- HostResponse exposes status, header pairs, an optional body stream reader
  and array_buffer() for the whole payload
- HostStream.read() returns a HostFuture resolving to (done, chunk)

PyodideHost implements this on top of the browser globals. Tests substitute a
thread-driven Host.

Memory Safety:
- Every create_proxy() result must be destroyed exactly once by its owner
- Views created here destroy their own short-lived proxies
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from typing import Any, Callable, Iterable, Optional, Protocol, Tuple

from .models import FetchOptions, UploadStream

# Pyodide/PyScript browser environment imports
try:
    import js
    from pyodide.ffi import create_proxy, to_js
except ImportError:
    js = None
    create_proxy = None
    to_js = None

try:
    from pyodide.ffi import run_sync
except ImportError:
    run_sync = None


class HostFailure(Exception):
    """
    Rejection value of a host future.

    Parameters:
        message: the host error's string form
        name: host error type name (e.g. "TypeError", "AbortError")
        cause: optional nested cause as reported by the host
    """

    def __init__(self, message: str, *, name: Optional[str] = None, cause: Any = None):
        super().__init__(message)
        self.name = name
        self.cause = cause


class HostFuture(Protocol):
    def then(self, on_fulfilled: Callable[[Any], Any],
             on_rejected: Callable[[HostFailure], Any]) -> Tuple[Any, ...]: ...


class HostStream(Protocol):
    def read(self) -> HostFuture: ...

    def cancel(self) -> None: ...


class HostResponse(Protocol):
    status: int
    headers: Iterable[Tuple[str, str]]
    body: Optional[HostStream]

    def array_buffer(self) -> HostFuture: ...


class AbortController(Protocol):
    signal: Any

    def abort(self) -> None: ...


class StreamController(Protocol):
    def enqueue(self, chunk: bytes) -> None: ...

    def close(self) -> None: ...

    def error(self, error: BaseException) -> None: ...


class Proxy:
    """Python-side stand-in for a host callback handle."""

    def __init__(self, func: Callable):
        self.func = func
        self.destroyed = False

    def __call__(self, *args):
        if self.destroyed:
            raise RuntimeError("Proxy has been destroyed")
        return self.func(*args)

    def destroy(self) -> None:
        if self.destroyed:
            raise RuntimeError("Proxy has already been destroyed")
        self.destroyed = True


class Host:
    """
    Base host. Blocking is a plain thread wait on the future.

    Subclasses provide fetch(), readable_stream() and normalize_request().
    """

    fetch_present = False
    fetch_enabled = False

    def create_proxy(self, func: Callable) -> Any:
        return Proxy(func)

    def block_on(self, future: concurrent.futures.Future, timeout: Optional[float]) -> None:
        """Block until future is done or timeout seconds elapse."""
        concurrent.futures.wait([future], timeout=timeout)

    def abort_controller(self) -> Optional[AbortController]:
        return None

    def fetch(self, url: str, options: FetchOptions) -> HostFuture:
        raise NotImplementedError

    def readable_stream(self, pull: Callable[[StreamController], None],
                        chunk_size: int) -> UploadStream:
        raise NotImplementedError

    def normalize_request(self, url: str, method: str, duplex_getter: Any) -> list[str]:
        """
        Construct (without sending) a request whose body is an empty pull
        stream and whose duplex option is read through duplex_getter.

        Returns the header names the host attached.
        """
        raise NotImplementedError


# =============================================================================
# PYODIDE
# =============================================================================


def _is_js_null(value: Any) -> bool:
    """Return True if value represents JS null/undefined in Pyodide."""
    if value is None:
        return True
    tname = type(value).__name__
    if tname in ("JsNull", "JsUndefined"):
        return True
    try:
        return str(value) == "null"
    except Exception:
        return False


def _failure_from_js(error: Any) -> HostFailure:
    """Convert a JS rejection value, keeping one level of cause."""
    if _is_js_null(error):
        return HostFailure("undefined")
    if hasattr(error, "toString"):
        message = str(error.toString())
    else:
        message = str(error)
    name = getattr(error, "name", None)
    cause = getattr(error, "cause", None)
    if _is_js_null(cause):
        cause = None
    elif isinstance(cause, str):
        pass
    elif hasattr(cause, "toString"):
        cause = str(cause.toString())
    else:
        cause = None
    return HostFailure(message, name=str(name) if name is not None else None, cause=cause)


def _from_js_bytes(value: Any) -> bytes:
    """Copy a JS ArrayBuffer or Uint8Array into Python bytes."""
    return bytes(js.Uint8Array.new(value).to_py())


class _JsFuture:
    """HostFuture over a JS promise."""

    def __init__(self, promise: Any, convert: Callable[[Any], Any]):
        self.promise = promise
        self.convert = convert

    def then(self, on_fulfilled, on_rejected):
        def fulfilled(value):
            on_fulfilled(self.convert(value))

        def rejected(error):
            on_rejected(_failure_from_js(error))

        success_proxy = create_proxy(fulfilled)
        failure_proxy = create_proxy(rejected)
        self.promise.then(success_proxy, failure_proxy)
        return success_proxy, failure_proxy


class _JsStream:
    """HostStream over a ReadableStreamDefaultReader."""

    def __init__(self, reader: Any):
        self.reader = reader

    @staticmethod
    def _result(result):
        if result.done:
            return True, b""
        return False, _from_js_bytes(result.value)

    def read(self) -> _JsFuture:
        return _JsFuture(self.reader.read(), self._result)

    def cancel(self) -> None:
        # the returned promise is dropped; cancellation is best effort
        self.reader.cancel()


class _JsResponse:
    """HostResponse over a fetch() Response."""

    def __init__(self, response: Any):
        self.response = response
        self.status = int(response.status)
        self.headers = [(str(entry[0]), str(entry[1])) for entry in response.headers.entries()]
        # undefined without streaming support, null for opaque or error responses
        body = getattr(response, "body", None)
        self.body = None if _is_js_null(body) else _JsStream(body.getReader())

    def array_buffer(self) -> _JsFuture:
        return _JsFuture(self.response.arrayBuffer(), _from_js_bytes)


class _JsAbortController:
    def __init__(self, controller: Any):
        self.controller = controller
        self.signal = controller.signal

    def abort(self) -> None:
        self.controller.abort()


class _JsStreamController:
    """StreamController over a ReadableByteStreamController."""

    def __init__(self, controller: Any):
        self.controller = controller

    def enqueue(self, chunk: bytes) -> None:
        self.controller.enqueue(to_js(chunk))

    def close(self) -> None:
        self.controller.close()

    def error(self, error: BaseException) -> None:
        options = js.Object.new()
        options.cause = str(error.__cause__ if error.__cause__ is not None else error)
        self.controller.error(js.Error.new(str(error), options))


class PyodideHost(Host):
    """
    Host backed by the browser (or worker) globals under Pyodide.

    Blocking relies on pyodide.ffi.run_sync (JSPI stack switching). Without it,
    or under Node.js, fetch is reported as disabled so the transport bypasses
    to its legacy round tripper.
    """

    @property
    def fetch_present(self) -> bool:
        return js is not None and not _is_js_null(getattr(js, "fetch", None))

    @property
    def fetch_enabled(self) -> bool:
        if run_sync is None:
            return False
        process = getattr(js, "process", None)
        if _is_js_null(process):
            return True
        argv0 = getattr(process, "argv0", None)
        return not (isinstance(argv0, str) and argv0.startswith("node"))

    def create_proxy(self, func: Callable) -> Any:
        return create_proxy(func)

    def block_on(self, future, timeout):
        if future.done():
            return

        async def waiter():
            # asyncio.wait does not cancel the wrapped future on timeout
            await asyncio.wait({asyncio.wrap_future(future)}, timeout=timeout)

        run_sync(waiter())

    def abort_controller(self):
        ctor = getattr(js, "AbortController", None)
        if _is_js_null(ctor):
            # some wasm-capable browsers lack AbortController
            return None
        return _JsAbortController(ctor.new())

    def fetch(self, url, options):
        opt = js.Object.new()
        opt.method = options.method
        opt.credentials = options.credentials
        if options.mode:
            opt.mode = options.mode
        if options.redirect:
            opt.redirect = options.redirect
        if options.signal is not None:
            opt.signal = options.signal
        headers = js.Headers.new()
        for name, value in options.headers.items():
            headers.append(name, value)
        opt.headers = headers
        if isinstance(options.body, bytes):
            opt.body = to_js(options.body)
        elif options.body is not None:
            opt.body = options.body.body
            opt.duplex = options.duplex
        return _JsFuture(js.fetch(url, opt), _JsResponse)

    def readable_stream(self, pull, chunk_size):
        def js_pull(controller):
            pull(_JsStreamController(controller))

        pull_proxy = create_proxy(js_pull)
        init = js.Object.new()
        init.type = "bytes"
        init.autoAllocateChunkSize = chunk_size
        init.pull = pull_proxy
        return UploadStream(body=js.ReadableStream.new(init), callback=pull_proxy)

    def normalize_request(self, url, method, duplex_getter):
        opt = js.Object.new()
        opt.method = method
        opt.body = js.ReadableStream.new()
        descriptor = js.Object.new()
        descriptor.get = duplex_getter
        js.Object.defineProperty(opt, "duplex", descriptor)
        request = js.Request.new(url, opt)
        return [str(name) for name in request.headers.keys()]
