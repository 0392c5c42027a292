"""Wire format of the signaling channel.

Every message is a JSON object tagged by ``type``:
``offer``, ``candidate``, ``answer`` and ``interaction``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import InvalidRequestError


@dataclass(frozen=True, slots=True)
class Offer:
    sdp: str
    target_url: str


@dataclass(frozen=True, slots=True)
class Candidate:
    ice: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Answer:
    sdp: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "answer", "sdp": self.sdp}


@dataclass(frozen=True, slots=True)
class OutboundCandidate:
    ice: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {"type": "candidate", "candidate": self.ice}


@dataclass(frozen=True, slots=True)
class Interaction:
    event_type: str
    event_data: dict[str, Any] = field(default_factory=dict)


InboundMessage = Union[Offer, Candidate, Interaction]


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRequestError(f"Field '{key}' must be a non-empty string")
    return value


def _candidate_payload(value: Any) -> dict[str, Any]:
    # Browsers send either the RTCIceCandidateInit object or just its string.
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, str):
        return {"candidate": value}
    raise InvalidRequestError("Field 'candidate' must be an object or string")


def parse_message(raw: Union[str, bytes, dict[str, Any]]) -> InboundMessage:
    """Decode one inbound message. Raises ``InvalidRequestError`` if malformed."""
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidRequestError(f"Invalid JSON: {exc}") from exc
    else:
        payload = raw

    if not isinstance(payload, dict):
        raise InvalidRequestError("Message must be a JSON object")

    msg_type = payload.get("type")
    if msg_type == "offer":
        return Offer(sdp=_require_str(payload, "sdp"), target_url=_require_str(payload, "pointCloudUrl"))
    if msg_type == "candidate":
        return Candidate(ice=_candidate_payload(payload.get("candidate")))
    if msg_type == "interaction":
        data = payload.get("eventData") or {}
        if not isinstance(data, dict):
            raise InvalidRequestError("Field 'eventData' must be an object")
        return Interaction(event_type=_require_str(payload, "eventType"), event_data=data)

    raise InvalidRequestError(f"Unknown message type: {msg_type!r}")


def encode_message(message: Union[Answer, OutboundCandidate]) -> str:
    return json.dumps(message.to_wire())


__all__ = [
    "Answer",
    "Candidate",
    "InboundMessage",
    "Interaction",
    "Offer",
    "OutboundCandidate",
    "encode_message",
    "parse_message",
]
