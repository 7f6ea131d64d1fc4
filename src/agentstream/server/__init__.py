"""HTTP surface for the agent loop."""

from .app import STREAM_PATH, THREAD_HEADER, ServerContext, create_app
from .schemas import StreamRequestBody

__all__ = ["STREAM_PATH", "THREAD_HEADER", "ServerContext", "StreamRequestBody", "create_app"]
