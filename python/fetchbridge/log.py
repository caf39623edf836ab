"""
log.py - structured log sink for the fetch transport.

The transport emits structured entries through this module instead of picking
an output itself. An application (a test page, a worker harness) can register
an entry sink for state-driven rendering. Without one, entries go to the
browser console under Pyodide, otherwise to the "fetchbridge" logger.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Callable, Dict, Optional

# Optional browser console bridge.
try:
    from js import console
except ImportError:  # pragma: no cover - non-browser usage
    console = None


LogEntry = Dict[str, Any]
EntrySink = Callable[[LogEntry], None]

_LEVELS = {"debug", "info", "warn", "error"}
_entry_sink: Optional[EntrySink] = None

logger = logging.getLogger("fetchbridge")


def _now() -> str:
    return datetime.datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _normalize_level(level: str) -> str:
    return level if level in _LEVELS else "info"


def _normalize_entry(entry: LogEntry) -> LogEntry:
    normalized = dict(entry)
    normalized["time"] = str(entry.get("time") or _now())
    normalized["level"] = _normalize_level(str(entry.get("level") or "info"))
    normalized["msg"] = str(entry.get("msg") or "")
    return normalized


def set_sink(entry_sink: Optional[EntrySink] = None) -> None:
    """Register a sink for app-level rendering."""
    global _entry_sink
    _entry_sink = entry_sink


def clear_sink() -> None:
    """Remove the registered sink and fall back to default output."""
    global _entry_sink
    _entry_sink = None


def emit(msg: Any, level: str = "info", **fields: Any) -> None:
    entry = _normalize_entry({"msg": msg, "level": level, **fields})
    if _entry_sink is not None:
        _entry_sink(entry)
        return
    _default_emit(entry)


def _default_emit(entry: LogEntry) -> None:
    extras = " ".join(
        f"{key}={value}" for key, value in entry.items()
        if key not in ("time", "level", "msg") and value is not None
    )
    line = f"{entry['msg']} {extras}" if extras else entry["msg"]
    level = entry["level"]
    if console is not None:
        getattr(console, level)(f"[{entry['time']}] {line}")
        return
    logger.log(_PY_LEVELS[level], line)


_PY_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}
