"""Forwards raw encoder frames into the peer transport's sample sink."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from .errors import SampleSinkError
from .logging_utils import LoggerLike, ensure_structured_logger

SAMPLE_CLOCK_RATE = 90_000


@dataclass(frozen=True, slots=True)
class Sample:
    data: bytes
    pts: int
    duration: float


class SampleSink(Protocol):
    def write_sample(self, sample: Sample) -> None: ...

    def stop(self) -> None: ...


class SampleRelay:
    """Reads one frame at a time from ``stream`` until end-of-stream.

    A failed sink write drops that frame and the loop carries on. The relay
    ending never stops the session by itself.
    """

    def __init__(
        self,
        stream: asyncio.StreamReader,
        sink: SampleSink,
        *,
        frame_size: int,
        framerate: int,
        logger: LoggerLike = None,
    ) -> None:
        if frame_size <= 0:
            raise ValueError("frame_size must be positive")
        if framerate <= 0:
            raise ValueError("framerate must be positive")
        self.stream = stream
        self.sink = sink
        self.frame_size = frame_size
        self.framerate = framerate
        self.duration = 1.0 / framerate
        self.pts_step = SAMPLE_CLOCK_RATE // framerate
        self.logger = ensure_structured_logger(logger, fallback_name="SampleRelay")
        self.relayed = 0
        self.dropped = 0

    async def run(self) -> int:
        self.logger.info("Sample relay started (%d bytes/frame @ %d fps)", self.frame_size, self.framerate)
        pts = 0
        while True:
            try:
                chunk = await self.stream.readexactly(self.frame_size)
            except asyncio.IncompleteReadError as exc:
                if exc.partial:
                    self.logger.debug("Discarding %d trailing bytes", len(exc.partial))
                break
            except (OSError, ValueError) as exc:
                self.logger.warning("Encoder stream read failed: %s", exc)
                break

            sample = Sample(data=chunk, pts=pts, duration=self.duration)
            pts += self.pts_step
            try:
                self.sink.write_sample(sample)
                self.relayed += 1
            except SampleSinkError as exc:
                self.dropped += 1
                # first drop, then every 100th
                if self.dropped == 1 or self.dropped % 100 == 0:
                    self.logger.warning("Dropped frame (%d total): %s", self.dropped, exc)

        self.logger.info("Sample relay finished: %d relayed, %d dropped", self.relayed, self.dropped)
        return self.relayed


__all__ = ["SAMPLE_CLOCK_RATE", "Sample", "SampleRelay", "SampleSink"]
