"""Maps capture geometry and transport mode onto an encoder pipeline.

Everything here is pure: no I/O and no process interaction, so a geometry
fixture is enough to exercise it.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import StreamConfig
from .models import (
    CaptureGeometry,
    CodecParams,
    InputDescriptor,
    PipelineSpec,
    RawStreamSink,
    SegmentedSink,
    TransportMode,
)

SEGMENTED_CODEC = CodecParams(codec="libvpx-vp9", bitrate="6M", framerate=40, keyframe_interval=40)
PEER_CODEC = CodecParams(codec="rawvideo", bitrate="2M", framerate=30, keyframe_interval=30)

SEGMENTED_REALTIME_OPTIONS: tuple[str, ...] = (
    "-quality", "realtime",
    "-deadline", "realtime",
    "-speed", "6",
    "-threads", "8",
    "-frame-parallel", "1",
    "-tile-columns", "4",
    "-row-mt", "1",
)

PIXEL_FORMAT = "yuv420p"


@dataclass(frozen=True, slots=True)
class BuilderSettings:
    """Deployment-specific inputs that stay fixed for the life of the service."""

    capture_format: str
    capture_device: str
    hls_dir: Path
    output_width: int = 1280
    output_height: int = 720
    hls_segment_seconds: int = 1
    hls_list_size: int = 5

    @classmethod
    def from_config(cls, config: StreamConfig) -> "BuilderSettings":
        return cls(
            capture_format=config.capture_format,
            capture_device=config.capture_device,
            hls_dir=config.hls_dir,
            output_width=config.output_width,
            output_height=config.output_height,
            hls_segment_seconds=config.hls_segment_seconds,
            hls_list_size=config.hls_list_size,
        )


def codec_for(mode: TransportMode) -> CodecParams:
    return SEGMENTED_CODEC if mode is TransportMode.SEGMENTED else PEER_CODEC


def crop_filter(geometry: CaptureGeometry) -> str:
    return f"crop={geometry.width}:{geometry.height}:{geometry.x}:{geometry.y}"


def build_pipeline(
    geometry: CaptureGeometry,
    mode: TransportMode,
    viewport_size: Optional[tuple[int, int]],
    settings: BuilderSettings,
) -> PipelineSpec:
    """Resolve the encoder pipeline for one session.

    The crop rectangle comes from ``geometry`` alone. ``viewport_size`` is
    recorded for diagnostics but never influences filter parameters; the scale
    target is the fixed output resolution.
    """
    codec = codec_for(mode)
    filters = (
        crop_filter(geometry),
        f"format={PIXEL_FORMAT}",
        f"scale={settings.output_width}:{settings.output_height}",
    )
    source = InputDescriptor(
        format=settings.capture_format,
        device=settings.capture_device,
        framerate=codec.framerate,
    )

    if mode is TransportMode.SEGMENTED:
        output = SegmentedSink(
            directory=settings.hls_dir,
            segment_seconds=settings.hls_segment_seconds,
            list_size=settings.hls_list_size,
        )
        options = SEGMENTED_REALTIME_OPTIONS
    else:
        output = RawStreamSink(
            width=settings.output_width,
            height=settings.output_height,
            pixel_format=PIXEL_FORMAT,
        )
        options = ()

    return PipelineSpec(
        transport_mode=mode,
        input=source,
        filters=filters,
        codec=codec,
        output=output,
        encoder_options=options,
        viewport=viewport_size,
    )


__all__ = [
    "BuilderSettings",
    "PEER_CODEC",
    "SEGMENTED_CODEC",
    "SEGMENTED_REALTIME_OPTIONS",
    "build_pipeline",
    "codec_for",
    "crop_filter",
]
