"""
Stream Controller - Thin wrapper around SessionManager for the HTTP API.

Route handlers call into this controller; it owns request validation,
the per-connection peer tasks and service shutdown.
"""

import asyncio
from typing import Any, Dict, Optional, Set

import psutil
from aiohttp import web

from potree_stream.core.asyncio_utils import cancel_and_wait, create_logged_task
from potree_stream.core.config import StreamConfig
from potree_stream.core.errors import StreamError
from potree_stream.core.logging_utils import get_module_logger
from potree_stream.core.models import SessionState, TransportMode
from potree_stream.core.negotiation import FrameSinkTrack, PeerNegotiator
from potree_stream.core.peer_pipeline import PeerPipeline
from potree_stream.core.session_manager import SessionManager, StartRequest
from potree_stream.core.signaling import HandshakeCoordinator, WebSocketChannel


class StreamController:
    """
    API controller for the streaming service.

    Holds the session manager and the configuration the routes need, and
    tracks the signaling and pipeline tasks spawned per WebSocket.
    """

    def __init__(self, session_manager: SessionManager, config: StreamConfig):
        self.logger = get_module_logger("StreamController")
        self.session_manager = session_manager
        self.config = config
        self._peer_tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # Segmented transport
    # =========================================================================

    def parse_start_request(self, body: Any) -> StartRequest:
        return StartRequest.from_json(
            body,
            default_width=self.config.default_viewport_width,
            default_height=self.config.default_viewport_height,
        )

    async def start_stream(self, body: Any) -> None:
        """Validate ``body`` and start a segmented session."""
        request = self.parse_start_request(body)
        await self.session_manager.start(request, TransportMode.SEGMENTED)

    async def stop_stream(self) -> None:
        await self.session_manager.stop()

    # =========================================================================
    # Status
    # =========================================================================

    async def get_status(self) -> Dict[str, Any]:
        status = self.session_manager.snapshot()
        status["encoder"] = self._encoder_usage(status.get("pid"))
        status["peerConnections"] = len(self._peer_tasks)
        return status

    def _encoder_usage(self, pid: Optional[int]) -> Optional[Dict[str, Any]]:
        if pid is None:
            return None
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                memory = proc.memory_info()
                return {
                    "cpu_percent": proc.cpu_percent(interval=None),
                    "memory_mb": round(memory.rss / (1024**2), 1),
                    "running": proc.is_running(),
                }
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return {"running": False}

    # =========================================================================
    # Peer transport
    # =========================================================================

    def create_peer_components(self) -> tuple[FrameSinkTrack, PeerNegotiator]:
        track = FrameSinkTrack(self.config.output_width, self.config.output_height)
        negotiator = PeerNegotiator(track, stun_server=self.config.stun_server)
        return track, negotiator

    async def handle_signaling(self, ws: web.WebSocketResponse) -> None:
        """Run the handshake for one WebSocket and the pipeline task it gates."""
        track, negotiator = self.create_peer_components()
        coordinator = HandshakeCoordinator(
            WebSocketChannel(ws),
            negotiator,
            ice_ufrag=self.config.ice_ufrag,
            ice_pwd=self.config.ice_pwd,
            interaction_handler=self.session_manager.forward_interaction,
        )
        pipeline = PeerPipeline(
            coordinator,
            self.session_manager,
            negotiator,
            track,
            handshake_timeout=self.config.handshake_wait,
            viewport_width=self.config.default_viewport_width,
            viewport_height=self.config.default_viewport_height,
        )
        pipeline_task = create_logged_task(
            pipeline.run(), logger=self.logger, context="peer-pipeline", pending=self._peer_tasks
        )
        signaling_task = create_logged_task(
            coordinator.run(), logger=self.logger, context="peer-signaling", pending=self._peer_tasks
        )

        try:
            await asyncio.wait({signaling_task})
        finally:
            if not coordinator.ready.is_set():
                # Channel gone before an offer: nothing will ever release the pipeline.
                await cancel_and_wait(pipeline_task)
            await cancel_and_wait(signaling_task)

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self) -> None:
        """Stop any session and cancel per-connection tasks."""
        if self.session_manager.state is not SessionState.IDLE:
            self.logger.info("Stopping active session before shutdown")
            try:
                await self.session_manager.stop()
            except StreamError as e:
                self.logger.warning("Session stop during shutdown failed: %s", e)

        for task in list(self._peer_tasks):
            await cancel_and_wait(task)
