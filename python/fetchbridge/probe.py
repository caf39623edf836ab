# -*- encoding: utf-8 -*-
"""
Host capability detection.

Streaming request bodies are detected the way browsers recommend: build a
POST request whose body is a ReadableStream and whose duplex option is a
getter. A host that supports streaming uploads reads duplex while normalizing
the request and does not treat the stream as text (no implicit Content-Type).
"""

from __future__ import annotations

from dataclasses import dataclass

from . import log

# Non-browser runtimes have no API base URL, so the probe needs an absolute one.
PROBE_URL = "https://www.example.org"


def detect_streaming_upload(host) -> bool:
    """Return True if the host streams request bodies. No network call is made."""
    consulted = False

    def duplex():
        nonlocal consulted
        consulted = True
        return "half"

    getter = host.create_proxy(duplex)
    try:
        names = host.normalize_request(PROBE_URL, "POST", getter)
    finally:
        getter.destroy()

    has_content_type = any(name.lower() == "content-type" for name in names)
    return consulted and not has_content_type


@dataclass(frozen=True)
class Capabilities:
    """Static host capabilities, computed once and injected into a Transport."""

    fetch_present: bool = False
    fetch_enabled: bool = False
    streaming_upload: bool = False

    @property
    def usable(self) -> bool:
        return self.fetch_present and self.fetch_enabled

    @classmethod
    def detect(cls, host) -> "Capabilities":
        present = bool(host.fetch_present)
        enabled = present and bool(host.fetch_enabled)
        streaming = False
        if enabled:
            try:
                streaming = detect_streaming_upload(host)
            except Exception as ex:
                log.emit("streaming upload probe failed", "warn", error=repr(ex))
                streaming = False
        caps = cls(fetch_present=present, fetch_enabled=enabled, streaming_upload=streaming)
        log.emit("detected host capabilities", "debug",
                 fetch_present=present, fetch_enabled=enabled, streaming_upload=streaming)
        return caps
