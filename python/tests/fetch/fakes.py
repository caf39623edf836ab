# -*- encoding: utf-8 -*-
"""
Thread-driven fake host for transport tests.

Futures settle either immediately or from threading.Timer threads, which is
how a real host would call back from outside the blocked caller.
"""

from __future__ import annotations

import io
import threading
import time


from fetchbridge.host import Host, HostFailure, Proxy
from fetchbridge.models import UploadStream
from fetchbridge.probe import Capabilities


class FakeProxy(Proxy):
    """Proxy that counts destroy() calls instead of raising on repeats."""

    def __init__(self, func):
        super().__init__(func)
        self.destroy_count = 0

    def destroy(self):
        self.destroy_count += 1
        self.destroyed = True


class Deferred:
    """HostFuture settled by test code or a timer."""

    def __init__(self, host):
        self.host = host
        self._lock = threading.Lock()
        self._outcome = None
        self._handlers = None
        self.then_calls = 0

    def then(self, on_fulfilled, on_rejected):
        self.then_calls += 1
        ok = self.host.create_proxy(on_fulfilled)
        err = self.host.create_proxy(on_rejected)
        with self._lock:
            self._handlers = (ok, err)
            outcome = self._outcome
        if outcome is not None:
            self._dispatch(outcome, ok, err)
        return ok, err

    @property
    def settled(self):
        return self._outcome is not None

    def resolve(self, value):
        return self._settle(("ok", value))

    def reject(self, failure):
        return self._settle(("err", failure))

    def _settle(self, outcome):
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = outcome
            handlers = self._handlers
        if handlers is not None:
            self._dispatch(outcome, *handlers)
        return True

    @staticmethod
    def _dispatch(outcome, ok, err):
        kind, value = outcome
        (ok if kind == "ok" else err)(value)


class FakeStream:
    """Host body stream yielding preset chunks, optionally failing at the end."""

    def __init__(self, host, chunks, failure=None, hang=False):
        self.host = host
        self.chunks = [bytes(chunk) for chunk in chunks]
        self.failure = failure
        self.hang = hang
        self.reads = 0
        self.cancel_count = 0

    @property
    def cancelled(self):
        return self.cancel_count > 0

    def read(self):
        self.reads += 1
        deferred = Deferred(self.host)
        if self.hang:
            return deferred
        if self.chunks:
            deferred.resolve((False, self.chunks.pop(0)))
        elif self.failure is not None:
            deferred.reject(self.failure)
        else:
            deferred.resolve((True, b""))
        return deferred

    def cancel(self):
        self.cancel_count += 1


class FakeResponse:
    """HostResponse with either a body stream or a whole-buffer payload."""

    def __init__(self, host, status=200, headers=(), chunks=None, payload=b"",
                 payload_failure=None, stream_failure=None):
        self.host = host
        self.status = status
        self.headers = list(headers)
        self.body = None
        if chunks is not None:
            self.body = FakeStream(host, chunks, failure=stream_failure)
        self.payload = payload
        self.payload_failure = payload_failure
        self.buffers = []

    def array_buffer(self):
        deferred = Deferred(self.host)
        if self.payload_failure is not None:
            deferred.reject(self.payload_failure)
        else:
            deferred.resolve(self.payload)
        self.buffers.append(deferred)
        return deferred


class FakeAbortController:
    def __init__(self, host):
        self.host = host
        self.signal = object()
        self.abort_count = 0

    def abort(self):
        self.abort_count += 1
        self.host.on_abort()


class FakeStreamController:
    def __init__(self):
        self.chunks = []
        self.state = "open"
        self.error_value = None

    def enqueue(self, chunk):
        self.chunks.append(bytes(chunk))

    def close(self):
        self.state = "closed"

    def error(self, error):
        self.state = "errored"
        self.error_value = error


class FakeUploadBody:
    def __init__(self, pull, chunk_size):
        self.pull = pull
        self.chunk_size = chunk_size


class FakeHost(Host):
    """
    Host double.

    Parameters:
        responder: callable(url, options) -> FakeResponse or HostFailure;
                   None leaves the fetch pending
        delay: seconds before the outcome is delivered from a timer thread
        abortable: whether an abort controller is offered
        duplex_consulted / implicit_content_type: probe behaviour
    """

    def __init__(self, responder=None, delay=0.0, abortable=True,
                 duplex_consulted=True, implicit_content_type=False):
        self.fetch_present = True
        self.fetch_enabled = True
        self.responder = responder
        self.delay = delay
        self.abortable = abortable
        self.duplex_consulted = duplex_consulted
        self.implicit_content_type = implicit_content_type
        self.proxies = []
        self.calls = []
        self.uploads = []
        self.controllers = []
        self.timers = []
        self.pending = None
        self.probes = 0

    # Host interface

    def create_proxy(self, func):
        proxy = FakeProxy(func)
        self.proxies.append(proxy)
        return proxy

    def abort_controller(self):
        if not self.abortable:
            return None
        controller = FakeAbortController(self)
        self.controllers.append(controller)
        return controller

    def fetch(self, url, options):
        self.calls.append((url, options))
        deferred = Deferred(self)
        self.pending = deferred

        upload_error = None
        if isinstance(options.body, UploadStream):
            controller = self._drain(options.body.body)
            self.uploads.append(b"".join(controller.chunks))
            if controller.state == "errored":
                upload_error = controller.error_value

        if upload_error is not None:
            outcome = HostFailure("TypeError: Failed to fetch", name="TypeError",
                                  cause=str(upload_error))
        elif self.responder is None:
            return deferred
        else:
            outcome = self.responder(url, options)

        self._deliver(deferred, outcome)
        return deferred

    def readable_stream(self, pull, chunk_size):
        proxy = self.create_proxy(pull)
        return UploadStream(body=FakeUploadBody(proxy, chunk_size), callback=proxy)

    def normalize_request(self, url, method, duplex_getter):
        self.probes += 1
        if self.duplex_consulted:
            assert duplex_getter() == "half"
        return ["content-type"] if self.implicit_content_type else []

    # test helpers

    def on_abort(self):
        if self.pending is not None:
            self.pending.reject(HostFailure("AbortError: The user aborted a request.",
                                            name="AbortError"))

    def _deliver(self, deferred, outcome):
        def settle():
            if isinstance(outcome, HostFailure):
                deferred.reject(outcome)
            else:
                deferred.resolve(outcome)

        if self.delay > 0:
            timer = threading.Timer(self.delay, settle)
            timer.daemon = True
            self.timers.append(timer)
            timer.start()
        else:
            settle()

    @staticmethod
    def _drain(upload):
        controller = FakeStreamController()
        for _ in range(10000):
            if controller.state != "open":
                break
            upload.pull(controller)
        return controller

    def live_proxies(self):
        return [proxy for proxy in self.proxies if not proxy.destroyed]

    def stop(self):
        for timer in self.timers:
            timer.cancel()


class CountingBody(io.BytesIO):
    """Request body that counts close() calls."""

    def __init__(self, data=b""):
        super().__init__(data)
        self.close_count = 0

    def close(self):
        self.close_count += 1
        super().close()


class FailingBody:
    """Request body whose reads fail after `good` bytes."""

    def __init__(self, good=b"", error=None):
        self.good = io.BytesIO(good)
        self.error = error if error is not None else OSError("disk on fire")
        self.close_count = 0

    def read(self, size=-1):
        data = self.good.read(size)
        if data:
            return data
        raise self.error

    def close(self):
        self.close_count += 1


def wait_until(predicate, timeout=2.0):
    """Poll predicate until it is true or timeout passes."""
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def caps(streaming=False):
    return Capabilities(fetch_present=True, fetch_enabled=True, streaming_upload=streaming)


