"""Signaling Routes - WebSocket endpoint for the peer transport."""

from aiohttp import web

from ..controller import StreamController


def setup_signaling_routes(app: web.Application, controller: StreamController) -> None:
    app.router.add_get("/ws", signaling_handler)


async def signaling_handler(request: web.Request) -> web.WebSocketResponse:
    """GET /ws - Offer/answer/candidate exchange and viewer interactions."""
    controller: StreamController = request.app["controller"]
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    await controller.handle_signaling(ws)
    return ws
