"""Stream Routes - Start, stop and inspect the segmented session."""

from aiohttp import web

from ..controller import StreamController
from ..middleware import parse_json_body


def setup_stream_routes(app: web.Application, controller: StreamController) -> None:
    """Register stream control routes."""
    app.router.add_post("/start", start_stream_handler)
    app.router.add_post("/stop", stop_stream_handler)
    app.router.add_get("/status", status_handler)


async def start_stream_handler(request: web.Request) -> web.Response:
    """POST /start - Start a segmented stream for a point cloud."""
    controller: StreamController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    await controller.start_stream(body)
    return web.Response(text="Stream started")


async def stop_stream_handler(request: web.Request) -> web.Response:
    """POST /stop - Stop the active stream."""
    controller: StreamController = request.app["controller"]
    await controller.stop_stream()
    return web.Response(text="Stream stopped")


async def status_handler(request: web.Request) -> web.Response:
    """GET /status - Session state for operators."""
    controller: StreamController = request.app["controller"]
    return web.json_response(await controller.get_status())
