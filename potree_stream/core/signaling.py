"""Handshake coordination over the signaling channel (peer transport only)."""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Union

from aiohttp import WSMsgType, web

from .errors import InvalidRequestError
from .handoff import OneShot
from .logging_utils import get_module_logger
from .signal_messages import (
    Answer,
    Candidate,
    Interaction,
    Offer,
    OutboundCandidate,
    encode_message,
    parse_message,
)

InteractionHandler = Callable[[str, Mapping[str, Any]], Awaitable[None]]

ICE_UFRAG_PREFIX = "a=ice-ufrag:"
ICE_PWD_PREFIX = "a=ice-pwd:"

logger = get_module_logger("Signaling")


def ensure_ice_credentials(sdp: str, ufrag: str, pwd: str) -> str:
    """Append ICE credentials when the offer carries none. Idempotent."""
    if ICE_UFRAG_PREFIX in sdp:
        return sdp
    body = sdp.rstrip("\r\n")
    return f"{body}\r\n{ICE_UFRAG_PREFIX}{ufrag}\r\n{ICE_PWD_PREFIX}{pwd}\r\n"


class SignalChannel(Protocol):
    async def receive(self) -> Optional[Union[str, bytes]]: ...

    async def send(self, text: str) -> None: ...


class Negotiator(Protocol):
    async def accept_offer(self, sdp: str) -> str: ...

    async def on_local_candidate(self, callback: Callable[[dict[str, Any]], Awaitable[None]]) -> None: ...

    async def add_remote_candidate(self, ice: Mapping[str, Any]) -> None: ...


class WebSocketChannel:
    """Adapts an aiohttp WebSocket to :class:`SignalChannel`."""

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self.ws = ws

    async def receive(self) -> Optional[Union[str, bytes]]:
        msg = await self.ws.receive()
        if msg.type == WSMsgType.TEXT:
            return msg.data
        if msg.type == WSMsgType.BINARY:
            return msg.data
        if msg.type == WSMsgType.ERROR:
            logger.warning("WebSocket error: %s", self.ws.exception())
        return None

    async def send(self, text: str) -> None:
        await self.ws.send_str(text)


class HandshakeState(Enum):
    AWAITING_OFFER = "awaiting_offer"
    NEGOTIATED = "negotiated"
    CLOSED = "closed"


class HandshakeCoordinator:
    """Reads the signaling channel and publishes the negotiated target.

    ``ready`` and ``target_url`` are each satisfied at most once. Losing the
    channel ends this task only; it never stops a running session.
    """

    def __init__(
        self,
        channel: SignalChannel,
        negotiator: Negotiator,
        *,
        ice_ufrag: str,
        ice_pwd: str,
        interaction_handler: Optional[InteractionHandler] = None,
    ) -> None:
        self.channel = channel
        self.negotiator = negotiator
        self.ice_ufrag = ice_ufrag
        self.ice_pwd = ice_pwd
        self.interaction_handler = interaction_handler
        self.state = HandshakeState.AWAITING_OFFER
        self.ready: OneShot[bool] = OneShot()
        self.target_url: OneShot[str] = OneShot()

    async def run(self) -> None:
        logger.info("Signaling channel open")
        try:
            while True:
                raw = await self.channel.receive()
                if raw is None:
                    break
                try:
                    message = parse_message(raw)
                except InvalidRequestError as exc:
                    logger.warning("Skipping signaling message: %s", exc)
                    continue
                await self._dispatch(message)
        finally:
            self.state = HandshakeState.CLOSED
            logger.info("Signaling channel closed")

    async def _dispatch(self, message: Union[Offer, Candidate, Interaction]) -> None:
        if isinstance(message, Offer):
            await self._handle_offer(message)
        elif isinstance(message, Candidate):
            await self._handle_candidate(message)
        elif isinstance(message, Interaction):
            await self._handle_interaction(message)

    async def _handle_offer(self, offer: Offer) -> None:
        if self.state is not HandshakeState.AWAITING_OFFER:
            logger.error("Protocol error: repeat offer ignored (renegotiation is not supported)")
            return

        sdp = ensure_ice_credentials(offer.sdp, self.ice_ufrag, self.ice_pwd)
        try:
            answer_sdp = await self.negotiator.accept_offer(sdp)
        except Exception as exc:
            logger.error("Offer negotiation failed: %s", exc, exc_info=True)
            return

        try:
            await self._send(Answer(sdp=answer_sdp))
        except Exception as exc:
            logger.error("Failed to send answer: %s", exc)
            return

        try:
            await self.negotiator.on_local_candidate(self._send_candidate)
        except Exception as exc:
            logger.error("Local candidate reporting failed: %s", exc)

        self.state = HandshakeState.NEGOTIATED
        self.target_url.set(offer.target_url)
        self.ready.set(True)
        logger.info("Handshake complete for %s", offer.target_url)

    async def _handle_candidate(self, candidate: Candidate) -> None:
        if self.state is not HandshakeState.NEGOTIATED:
            logger.warning("Dropping remote candidate received before offer")
            return
        try:
            await self.negotiator.add_remote_candidate(candidate.ice)
        except Exception as exc:
            logger.warning("Failed to add remote candidate: %s", exc)

    async def _handle_interaction(self, interaction: Interaction) -> None:
        if self.interaction_handler is None:
            logger.debug("Ignoring interaction %s", interaction.event_type)
            return
        try:
            await self.interaction_handler(interaction.event_type, interaction.event_data)
        except Exception as exc:
            logger.warning("Interaction %s failed: %s", interaction.event_type, exc)

    async def _send_candidate(self, ice: dict[str, Any]) -> None:
        try:
            await self._send(OutboundCandidate(ice=ice))
        except Exception as exc:
            logger.warning("Failed to send local candidate: %s", exc)

    async def _send(self, message: Union[Answer, OutboundCandidate]) -> None:
        await self.channel.send(encode_message(message))


__all__ = [
    "HandshakeCoordinator",
    "HandshakeState",
    "InteractionHandler",
    "Negotiator",
    "SignalChannel",
    "WebSocketChannel",
    "ensure_ice_credentials",
]
