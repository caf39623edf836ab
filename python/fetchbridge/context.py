# -*- encoding: utf-8 -*-
"""
Cancellation and deadline context carried by a Request.

A Context is done once it is cancelled, its parent is done, or its deadline
has passed. Cancellation is pushed to registered callbacks; deadlines are
pulled, waiters compute remaining() and time out on their own. This keeps the
context free of timer threads, which the browser runtime does not have.

Usage:
    ctx, cancel = with_timeout(background(), 2.5)
    try:
        resp = transport.round_trip(Request("GET", url, context=ctx))
    finally:
        cancel()
"""

from __future__ import annotations

import time
from typing import Callable, Optional


class ContextError(Exception):
    """Base exception for a done context."""

    pass


class Canceled(ContextError):
    """Context was cancelled."""

    def __init__(self, message: str = "context canceled"):
        super().__init__(message)


class DeadlineExceeded(ContextError, TimeoutError):
    """Context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)


class Context:
    """
    Cancellation/deadline scope.

    Parameters:
        parent: enclosing context; its cancellation and deadline propagate
        deadline: absolute time.monotonic() value, or None for no deadline
    """

    def __init__(self, parent: Optional["Context"] = None,
                 deadline: Optional[float] = None):
        self.parent = parent
        if parent is not None and parent.deadline is not None:
            if deadline is None or parent.deadline < deadline:
                deadline = parent.deadline
        self.deadline = deadline
        self._err: Optional[ContextError] = None
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next = 0
        self._unlink = None
        if parent is not None:
            self._unlink = parent.on_done(self.cancel)

    def cancel(self) -> None:
        """Cancel this context and its children. Idempotent."""
        if self._err is not None:
            return
        self._err = Canceled()
        if self._unlink is not None:
            self._unlink()
            self._unlink = None
        while self._callbacks:
            _, callback = self._callbacks.popitem()
            callback()

    def err(self) -> Optional[ContextError]:
        """Return why the context is done, or None while it is live."""
        if self._err is not None:
            return self._err
        if self.parent is not None:
            err = self.parent.err()
            if err is not None:
                return err
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceeded()
        return None

    def done(self) -> bool:
        return self.err() is not None

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, None if there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def on_done(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run callback when the context is cancelled.

        Deadlines do not fire callbacks. If already cancelled the callback
        runs immediately. Returns a function that unregisters the callback.
        """
        if self._err is not None:
            callback()
            return _noop
        key = self._next
        self._next += 1
        self._callbacks[key] = callback
        # cancel() may have run between the check above and the insert
        if self._err is not None and self._callbacks.pop(key, None) is not None:
            callback()
            return _noop

        def remove():
            self._callbacks.pop(key, None)

        return remove


def _noop():
    pass


_BACKGROUND = Context()


def background() -> Context:
    """Root context that is never cancelled and has no deadline."""
    return _BACKGROUND


def with_cancel(parent: Context) -> tuple[Context, Callable[[], None]]:
    ctx = Context(parent)
    return ctx, ctx.cancel


def with_deadline(parent: Context, deadline: float) -> tuple[Context, Callable[[], None]]:
    """Child context that is done at monotonic time `deadline`."""
    ctx = Context(parent, deadline=deadline)
    return ctx, ctx.cancel


def with_timeout(parent: Context, timeout: float) -> tuple[Context, Callable[[], None]]:
    """Child context that is done `timeout` seconds from now."""
    return with_deadline(parent, time.monotonic() + timeout)
