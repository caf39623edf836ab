# -*- encoding: utf-8 -*-
"""
Request body plumbing: the close-once wrapper and the streaming upload pump.
"""

from __future__ import annotations

import threading
from typing import Any

from .errors import UploadStreamError
from .host import StreamController


class RequestBody:
    """Wraps a request body reader so it is closed at most once."""

    def __init__(self, reader: Any):
        self.reader = reader
        self._closing = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closing.locked()

    def read(self, size: int = -1) -> bytes:
        return self.reader.read(size)

    def read_all(self) -> bytes:
        data = self.reader.read()
        return bytes(data) if data else b""

    def close(self) -> bool:
        """Close the reader. Returns False if it was already closed."""
        # the lock is a test-and-set flag; it is never released
        if not self._closing.acquire(blocking=False):
            return False
        self.reader.close()
        return True


class BodyPump:
    """
    Pull source feeding a request body to the host in bounded chunks.

    Each pull fills at most chunk_size bytes from the body, reading until the
    chunk is full or the body ends. Whatever was read is enqueued; then the
    stream is closed on end of input, or errored if the read failed.
    """

    def __init__(self, body: RequestBody, chunk_size: int):
        self.body = body
        self.chunk_size = chunk_size
        self.finished = False

    def pull(self, controller: StreamController) -> None:
        if self.finished:
            return
        chunk = bytearray()
        ended = False
        error = None
        try:
            while len(chunk) < self.chunk_size:
                data = self.body.read(self.chunk_size - len(chunk))
                if not data:
                    ended = True
                    break
                chunk += data
        except Exception as ex:
            error = ex

        if chunk:
            controller.enqueue(bytes(chunk))
        if error is not None:
            self.finished = True
            failure = UploadStreamError("reading request body failed while streaming upload")
            failure.__cause__ = error
            controller.error(failure)
        elif ended:
            self.finished = True
            controller.close()
