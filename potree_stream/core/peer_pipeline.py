"""Pipeline task for the peer transport.

Runs beside a :class:`HandshakeCoordinator` and starts the session only after
the handshake has produced an answer and delivered a target URL.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from .errors import StreamError
from .logging_utils import get_module_logger
from .models import TransportMode
from .negotiation import FrameSinkTrack, PeerNegotiator
from .session_manager import SessionManager, StartRequest
from .signaling import HandshakeCoordinator


class PeerPipeline:

    def __init__(
        self,
        coordinator: HandshakeCoordinator,
        session_manager: SessionManager,
        negotiator: PeerNegotiator,
        sink: FrameSinkTrack,
        *,
        handshake_timeout: Optional[float],
        viewport_width: int,
        viewport_height: int,
    ) -> None:
        self.coordinator = coordinator
        self.session_manager = session_manager
        self.negotiator = negotiator
        self.sink = sink
        self.handshake_timeout = handshake_timeout
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.started = False
        self.logger = get_module_logger("PeerPipeline")

    async def run(self) -> None:
        try:
            try:
                await self.coordinator.ready.wait(self.handshake_timeout)
                target_url = await self.coordinator.target_url.wait(self.handshake_timeout)
            except asyncio.TimeoutError:
                self.logger.warning(
                    "No handshake within %.0fs, closing peer connection", self.handshake_timeout
                )
                return

            request = StartRequest(
                point_cloud_url=target_url,
                viewport_width=self.viewport_width,
                viewport_height=self.viewport_height,
            )
            try:
                await self.session_manager.start(request, TransportMode.PEER, self.sink)
            except StreamError as exc:
                self.logger.error("Peer session start failed: %s", exc)
                return

            self.started = True
            await self.session_manager.wait_relay()
            self.logger.info("Peer media flow ended")
        finally:
            self.sink.stop()
            await self.negotiator.close()


__all__ = ["PeerPipeline"]
