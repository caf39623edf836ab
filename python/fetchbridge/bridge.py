# -*- encoding: utf-8 -*-
"""
Rendezvous helpers between host callbacks and a blocked Python caller.

A host future only reports its outcome through callbacks. The caller, on the
other hand, wants to block until that outcome exists. Slot is the single-value
handoff in between: the first offer wins, later offers are refused without
blocking so a late callback can still run its own cleanup.

Callbacks tracks the host proxies created for one call so they are destroyed
exactly once no matter which path finishes the call.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, InvalidStateError
from typing import Any


class Slot:
    """Single-slot rendezvous channel."""

    def __init__(self):
        self.future: Future = Future()

    def offer(self, value: Any) -> bool:
        """Deliver value. Returns False if the slot was already filled."""
        try:
            self.future.set_result(value)
        except InvalidStateError:
            return False
        return True

    def fail(self, error: BaseException) -> bool:
        """Deliver an error. Returns False if the slot was already filled."""
        try:
            self.future.set_exception(error)
        except InvalidStateError:
            return False
        return True

    def done(self) -> bool:
        return self.future.done()

    def take(self) -> Any:
        """Return the delivered value or raise the delivered error."""
        return self.future.result(timeout=0)


class Callbacks:
    """Host proxies owned by one call, destroyed together exactly once."""

    def __init__(self):
        self._proxies = []
        self._lock = threading.Lock()
        self.released = False

    def add(self, *proxies) -> None:
        for proxy in proxies:
            if proxy is None:
                continue
            with self._lock:
                if not self.released:
                    self._proxies.append(proxy)
                    continue
            # the call already finished; nothing will need this proxy
            proxy.destroy()

    def release(self) -> bool:
        """Destroy every tracked proxy. Returns False on repeat calls."""
        with self._lock:
            if self.released:
                return False
            self.released = True
            proxies, self._proxies = self._proxies, []
        for proxy in proxies:
            proxy.destroy()
        return True


def settle(host, future) -> Any:
    """
    Block until a host future settles and return its value.

    The rejection value (a HostFailure) is raised. Both continuation proxies
    are destroyed before returning.
    """
    slot = Slot()
    callbacks = Callbacks()
    try:
        callbacks.add(*future.then(slot.offer, slot.fail))
        while not slot.done():
            host.block_on(slot.future, None)
        return slot.take()
    finally:
        callbacks.release()
