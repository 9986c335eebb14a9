"""
Live job progress delivery (server-sent events).
"""

from .job_stream import (
    SSE_HEADERS,
    JobProgressStream,
    StreamingTransportError,
    encode_sse,
    error_event,
    job_update_event,
)

__all__ = [
    "SSE_HEADERS",
    "JobProgressStream",
    "StreamingTransportError",
    "encode_sse",
    "error_event",
    "job_update_event",
]
