# -*- encoding: utf-8 -*-
"""
Blocking readers over a fetch() response body.

StreamBody pulls chunks from the host's body stream on demand. BufferBody waits
once for the whole payload; it backs responses where the host exposes no
stream (no streaming support, opaque or error responses).

Both are io.RawIOBase readers: read() returns b"" at end of stream and errors
are raised. Neither keeps a lock, so read() and close() must not race from
different threads.
"""

from __future__ import annotations

import io
from typing import Any, Optional

from .bridge import settle
from .errors import BodyReadError, ReaderClosedError
from .host import HostFailure

_EOF = object()  # sticky end-of-stream marker


class StreamBody(io.RawIOBase):
    """Reader over a host body stream with a sticky terminal state."""

    def __init__(self, host, stream):
        super().__init__()
        self.host = host
        self.stream = stream
        self._pending = memoryview(b"")
        self._err: Any = None

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._err is _EOF:
            return 0
        if self._err is not None:
            raise self._err
        if len(buffer) == 0:
            return 0
        # zero-length chunks are legal on the host side and are skipped here
        while not self._pending:
            try:
                done, chunk = settle(self.host, self.stream.read())
            except HostFailure as ex:
                self._err = BodyReadError(str(ex), name=ex.name)
                raise self._err from ex
            if done:
                self._err = _EOF
                return 0
            self._pending = memoryview(bytes(chunk))
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n

    def close(self) -> None:
        """Cancel the host stream. Never blocks; repeat calls do nothing."""
        if self.closed:
            return
        self.stream.cancel()
        if self._err is None:
            self._err = ReaderClosedError()
        super().close()


class BufferBody(io.RawIOBase):
    """
    Reader over a future resolving to the whole payload.

    A rejected payload future is a sticky error: every later read raises it
    again rather than reporting end of stream.
    """

    def __init__(self, host, payload):
        super().__init__()
        self.host = host
        self.payload = payload
        self.loaded = False
        self._pending = memoryview(b"")
        self._err: Optional[BaseException] = None

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._err is not None:
            raise self._err
        if not self.loaded:
            self.loaded = True
            try:
                self._pending = memoryview(bytes(settle(self.host, self.payload)))
            except HostFailure as ex:
                self._err = BodyReadError(str(ex), name=ex.name)
                raise self._err from ex
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n

    def close(self) -> None:
        if self.closed:
            return
        if self._err is None:
            self._err = ReaderClosedError()
        super().close()
