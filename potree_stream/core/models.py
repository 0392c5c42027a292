"""Value types shared by the session orchestrator."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


class TransportMode(Enum):
    SEGMENTED = "segmented"
    PEER = "peer"


@dataclass(frozen=True, slots=True)
class CaptureGeometry:
    """Pixel rectangle to crop from the captured surface."""

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Capture offset must be non-negative, got ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Capture size must be positive, got {self.width}x{self.height}")

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class InputDescriptor:
    """ffmpeg demuxer and device that provide the raw desktop surface."""

    format: str
    device: str
    framerate: int

    def to_args(self) -> list[str]:
        return ["-f", self.format, "-framerate", str(self.framerate), "-i", self.device]


@dataclass(frozen=True, slots=True)
class CodecParams:
    codec: str
    bitrate: str
    framerate: int
    keyframe_interval: int


@dataclass(frozen=True, slots=True)
class SegmentedSink:
    """Rolling HLS output: a manifest plus a bounded window of segment files."""

    directory: Path
    segment_seconds: int
    list_size: int
    flags: tuple[str, ...] = ("append_list", "delete_segments", "split_by_time")
    segment_pattern: str = "segment_%03d.m4s"
    manifest_name: str = "output.m3u8"
    segment_type: str = "fmp4"

    @property
    def manifest_path(self) -> Path:
        return self.directory / self.manifest_name

    def to_args(self) -> list[str]:
        return [
            "-hls_time", str(self.segment_seconds),
            "-hls_list_size", str(self.list_size),
            "-hls_flags", "+".join(self.flags),
            "-hls_segment_filename", str(self.directory / self.segment_pattern),
            "-hls_segment_type", self.segment_type,
            "-f", "hls",
            str(self.manifest_path),
        ]


@dataclass(frozen=True, slots=True)
class RawStreamSink:
    """Uncompressed frames on stdout, no container and no audio."""

    width: int
    height: int
    pixel_format: str = "yuv420p"

    @property
    def frame_size(self) -> int:
        # yuv420p: full-size luma plane plus two quarter-size chroma planes
        return self.width * self.height * 3 // 2

    def to_args(self) -> list[str]:
        return ["-pix_fmt", self.pixel_format, "-f", "rawvideo", "pipe:1"]


OutputSink = Union[SegmentedSink, RawStreamSink]


@dataclass(frozen=True, slots=True)
class PipelineSpec:
    """Resolved encoder invocation for one session. Immutable once built."""

    transport_mode: TransportMode
    input: InputDescriptor
    filters: tuple[str, ...]
    codec: CodecParams
    output: OutputSink
    encoder_options: tuple[str, ...] = ()
    viewport: Optional[tuple[int, int]] = None

    @property
    def filter_chain(self) -> str:
        return ",".join(self.filters)

    @property
    def produces_stream(self) -> bool:
        return isinstance(self.output, RawStreamSink)

    def to_args(self) -> list[str]:
        """Argument vector for ffmpeg, excluding the executable itself."""
        args = ["-hide_banner", "-nostats", "-nostdin", "-y"]
        args += self.input.to_args()
        args += ["-vf", self.filter_chain, "-an", "-r", str(self.codec.framerate)]
        args += ["-c:v", self.codec.codec]
        if not self.produces_stream:
            args += ["-b:v", self.codec.bitrate, "-g", str(self.codec.keyframe_interval)]
        args += list(self.encoder_options)
        args += self.output.to_args()
        return args


__all__ = [
    "SessionState",
    "TransportMode",
    "CaptureGeometry",
    "InputDescriptor",
    "CodecParams",
    "SegmentedSink",
    "RawStreamSink",
    "OutputSink",
    "PipelineSpec",
]
