# -*- encoding: utf-8 -*-
"""
test_pump.py - streaming upload pump and the close-once request body.
"""

from __future__ import annotations

import io
import threading
import time

from fetchbridge.errors import UploadStreamError
from fetchbridge.pump import BodyPump, RequestBody

from fakes import CountingBody, FailingBody, FakeStreamController


class TrickleBody(io.RawIOBase):
    """Returns at most one byte per read."""

    def __init__(self, data):
        super().__init__()
        self.data = io.BytesIO(data)

    def readable(self):
        return True

    def read(self, size=-1):
        return self.data.read(1)


def drain(pump):
    controller = FakeStreamController()
    pulls = 0
    while controller.state == "open":
        pump.pull(controller)
        pulls += 1
    return controller, pulls


def test_pump_chunks_bounded():
    pump = BodyPump(RequestBody(io.BytesIO(b"hello world")), 4)
    controller, pulls = drain(pump)
    assert controller.chunks == [b"hell", b"o wo", b"rld"]
    assert controller.state == "closed"
    assert pulls == 3


def test_pump_fills_chunks_from_short_reads():
    pump = BodyPump(RequestBody(TrickleBody(b"abcdefg")), 3)
    controller, _ = drain(pump)
    assert controller.chunks == [b"abc", b"def", b"g"]


def test_pump_exact_multiple_ends_with_empty_pull():
    pump = BodyPump(RequestBody(io.BytesIO(b"abcd")), 2)
    controller, pulls = drain(pump)
    assert controller.chunks == [b"ab", b"cd"]
    assert pulls == 3


def test_pump_empty_body_closes():
    controller, _ = drain(BodyPump(RequestBody(io.BytesIO(b"")), 8))
    assert controller.chunks == []
    assert controller.state == "closed"


def test_pump_read_error_surfaces_as_stream_error():
    failure = OSError("connection reset")
    pump = BodyPump(RequestBody(FailingBody(good=b"xy", error=failure)), 8)
    controller, _ = drain(pump)
    assert controller.chunks == [b"xy"]
    assert controller.state == "errored"
    assert isinstance(controller.error_value, UploadStreamError)
    assert controller.error_value.__cause__ is failure


def test_pump_ignores_pulls_after_finish():
    pump = BodyPump(RequestBody(io.BytesIO(b"a")), 8)
    controller, _ = drain(pump)
    pump.pull(controller)
    assert controller.chunks == [b"a"]


def test_request_body_closes_once():
    reader = CountingBody(b"data")
    body = RequestBody(reader)
    assert body.close() is True
    assert body.close() is False
    assert reader.close_count == 1


class SlowCloseBody(CountingBody):
    """Holds close() open long enough for racing closers to overlap."""

    def close(self):
        time.sleep(0.01)
        super().close()


def test_request_body_concurrent_close_runs_once():
    reader = SlowCloseBody(b"data")
    body = RequestBody(reader)
    start = threading.Barrier(8)
    results = []

    def closer():
        start.wait()
        results.append(body.close())

    threads = [threading.Thread(target=closer) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == [False] * 7 + [True]
    assert reader.close_count == 1
    assert body.closed


def test_request_body_read_all():
    assert RequestBody(io.BytesIO(b"all of it")).read_all() == b"all of it"
    assert RequestBody(io.BytesIO(b"")).read_all() == b""
