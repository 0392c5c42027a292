"""Peer transport capability backed by aiortc.

The orchestrator only needs four things from it: accept an offer and produce
an answer, report local candidates, accept remote candidates, and expose a
sink that takes raw encoder frames.
"""

from __future__ import annotations

import asyncio
from fractions import Fraction
from typing import Any, Awaitable, Callable, Mapping, Optional

import av
import numpy as np
from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.mediastreams import MediaStreamError, MediaStreamTrack
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from .errors import SampleSinkError
from .logging_utils import get_module_logger
from .sample_relay import SAMPLE_CLOCK_RATE, Sample

CandidateCallback = Callable[[dict[str, Any]], Awaitable[None]]

logger = get_module_logger("PeerNegotiator")


class FrameSinkTrack(MediaStreamTrack):
    """Outbound video track fed with raw yuv420p frames from the encoder."""

    kind = "video"

    def __init__(self, width: int, height: int, *, max_pending: int = 2) -> None:
        super().__init__()
        self.width = width
        self.height = height
        self._time_base = Fraction(1, SAMPLE_CLOCK_RATE)
        self._queue: asyncio.Queue[Optional[av.VideoFrame]] = asyncio.Queue(maxsize=max_pending)
        self._closed = False

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 3 // 2

    def write_sample(self, sample: Sample) -> None:
        if self._closed:
            raise SampleSinkError("Sample sink is stopped")
        if len(sample.data) != self.frame_size:
            raise SampleSinkError(f"Expected {self.frame_size} bytes per frame, got {len(sample.data)}")

        planes = np.frombuffer(sample.data, dtype=np.uint8).reshape(self.height * 3 // 2, self.width)
        frame = av.VideoFrame.from_ndarray(planes, format="yuv420p")
        frame.pts = sample.pts
        frame.time_base = self._time_base
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as exc:
            raise SampleSinkError("Sample sink is full") from exc

    async def recv(self) -> av.VideoFrame:
        if self.readyState != "live":
            raise MediaStreamError
        frame = await self._queue.get()
        if frame is None:
            raise MediaStreamError
        return frame

    def stop(self) -> None:
        if not self._closed:
            self._closed = True
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(None)
        super().stop()


class PeerNegotiator:
    """One peer connection carrying one outbound video track."""

    def __init__(self, track: MediaStreamTrack, *, stun_server: str = "") -> None:
        servers = [RTCIceServer(urls=[stun_server])] if stun_server else []
        self.track = track
        self.pc = RTCPeerConnection(RTCConfiguration(iceServers=servers))
        self._closed = False

        @self.pc.on("connectionstatechange")
        async def _on_state_change() -> None:
            logger.info("Peer connection state: %s", self.pc.connectionState)

    async def accept_offer(self, sdp: str) -> str:
        """Apply the remote offer and return the local answer SDP."""
        await self.pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type="offer"))
        self.pc.addTrack(self.track)
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        return self.pc.localDescription.sdp

    async def on_local_candidate(self, callback: CandidateCallback) -> None:
        """Report every gathered local candidate through ``callback``."""
        for index, transceiver in enumerate(self.pc.getTransceivers()):
            ice_transport = transceiver.sender.transport.transport
            for candidate in ice_transport.iceGatherer.getLocalCandidates():
                await callback(
                    {
                        "candidate": "candidate:" + candidate_to_sdp(candidate),
                        "sdpMid": transceiver.mid,
                        "sdpMLineIndex": index,
                    }
                )

    async def add_remote_candidate(self, ice: Mapping[str, Any]) -> None:
        text = str(ice.get("candidate") or "")
        if text.startswith("candidate:"):
            text = text[len("candidate:"):]
        if not text.strip():
            # end-of-candidates marker
            return
        candidate = candidate_from_sdp(text)
        candidate.sdpMid = ice.get("sdpMid")
        candidate.sdpMLineIndex = ice.get("sdpMLineIndex")
        if candidate.sdpMid is None and candidate.sdpMLineIndex is None:
            candidate.sdpMLineIndex = 0
        await self.pc.addIceCandidate(candidate)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.pc.close()
        logger.info("Peer connection closed")


__all__ = ["CandidateCallback", "FrameSinkTrack", "PeerNegotiator"]
