"""
API route modules.

- stream: start, stop and status of the segmented session
- signaling: WebSocket handshake for the peer transport
- static: segment output, viewer assets and data files
"""

from .signaling import setup_signaling_routes
from .static import setup_static_routes
from .stream import setup_stream_routes


def setup_all_routes(app, controller):
    """Register all API routes with the application."""
    setup_stream_routes(app, controller)
    setup_signaling_routes(app, controller)
    setup_static_routes(app, controller)


__all__ = ["setup_all_routes"]
