# -*- encoding: utf-8 -*-
"""
fetchbridge package - blocking HTTP transport over the host fetch() primitive
for Python running under Pyodide.
"""

__version__ = '0.1.0'

from .context import (Context, ContextError, Canceled, DeadlineExceeded,
                      background, with_cancel, with_deadline, with_timeout)
from .errors import (FetchError, TransportUnavailableError, ContentLengthError,
                     MalformedContentLengthError, InvalidContentLengthError,
                     FetchFailedError, BodyReadError, UploadStreamError,
                     ReaderClosedError)
from .models import Request, Response, FetchOptions, canonical_header_key
from .host import Host, HostFailure, PyodideHost
from .probe import Capabilities, detect_streaming_upload
from .body import StreamBody, BufferBody
from .transport import Transport
