# -*- encoding: utf-8 -*-
"""
Ties a request Context to the host abort controller of one fetch call.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from .context import Context
from .host import AbortController


class CancellationBridge:
    """
    Optional abort controller plus the context watch that wakes the caller.

    The context callback only wakes the waiting caller; abort() is issued
    from the caller's own thread once it observes the context is done.
    """

    def __init__(self, controller: Optional[AbortController] = None):
        self.controller = controller
        self.aborted = False
        self._unwatch: Optional[Callable[[], None]] = None

    @property
    def signal(self) -> Any:
        return self.controller.signal if self.controller is not None else None

    def watch(self, context: Context, wake: Callable[[], Any]) -> None:
        self.release()
        self._unwatch = context.on_done(wake)

    def abort(self) -> bool:
        """Abort the in-flight call once. Returns False if nothing was done."""
        if self.controller is None or self.aborted:
            return False
        self.aborted = True
        self.controller.abort()
        return True

    def release(self) -> None:
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
