"""HTTP and WebSocket surface of the streaming service."""

from .controller import StreamController
from .server import APIServer

__all__ = ["APIServer", "StreamController"]
