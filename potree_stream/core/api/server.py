"""
API Server - aiohttp-based HTTP/WebSocket server for the streaming service.

Serves the stream control endpoints, the signaling WebSocket and the
static segment, viewer and data directories.
"""

from typing import Optional

from aiohttp import web

from potree_stream.core.logging_utils import get_module_logger

from .controller import StreamController
from .middleware import (
    CORS_ORIGIN_KEY,
    cors_middleware,
    error_handling_middleware,
    request_logging_middleware,
    set_debug_mode,
)
from .routes import setup_all_routes


logger = get_module_logger("APIServer")


class APIServer:
    """
    HTTP server for the streaming service.

    Runs on the service's asyncio event loop; ``stop`` tears down any active
    session before the listener closes.
    """

    def __init__(
        self,
        controller: StreamController,
        host: str = "localhost",
        port: int = 8080,
        cors_origin: str = "*",
        debug: bool = False,
    ):
        """
        Initialize the API server.

        Args:
            controller: StreamController wrapping the SessionManager
            host: Host to bind to
            port: Port to bind to (default: 8080)
            cors_origin: Value of Access-Control-Allow-Origin
            debug: If True, include tracebacks in error responses
        """
        self.controller = controller
        self.host = host
        self.port = port
        self.cors_origin = cors_origin
        self.debug = debug

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._running = False

        set_debug_mode(debug)

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application."""
        # CORS -> request logging -> error handling
        app = web.Application(
            middlewares=[cors_middleware, request_logging_middleware, error_handling_middleware]
        )
        app["controller"] = self.controller
        app[CORS_ORIGIN_KEY] = self.cors_origin

        setup_all_routes(app, self.controller)
        app.on_shutdown.append(self._on_shutdown)
        return app

    async def _on_shutdown(self, app: web.Application) -> None:
        await self.controller.shutdown()

    async def start(self) -> None:
        """Start the server (non-blocking)."""
        if self._running:
            logger.warning("API server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        self._running = True
        mode_info = " (debug mode)" if self.debug else ""
        logger.info("Server started on %s%s", self.url, mode_info)

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping server...")

        if self._runner:
            # cleanup() runs on_shutdown hooks and stops every site
            await self._runner.cleanup()
            self._runner = None
        self._site = None

        self._app = None
        self._running = False

        logger.info("Server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"
