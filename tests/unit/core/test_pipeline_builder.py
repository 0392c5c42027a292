"""Unit tests for the capture pipeline builder."""

from pathlib import Path

import pytest

from potree_stream.core.models import CaptureGeometry, RawStreamSink, SegmentedSink, TransportMode
from potree_stream.core.pipeline_builder import (
    PEER_CODEC,
    SEGMENTED_CODEC,
    BuilderSettings,
    build_pipeline,
)


@pytest.fixture
def settings(tmp_path) -> BuilderSettings:
    return BuilderSettings(capture_format="x11grab", capture_device=":0.0", hls_dir=tmp_path / "hls")


GEOMETRY = CaptureGeometry(x=10, y=20, width=800, height=600)


class TestCropFromGeometry:

    def test_crop_reflects_rectangle_exactly(self, settings):
        spec = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, (1280, 720), settings)
        assert spec.filters[0] == "crop=800:600:10:20"

    @pytest.mark.parametrize("viewport", [(640, 480), (1920, 1080), None])
    def test_viewport_does_not_change_filters(self, settings, viewport):
        baseline = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, (1280, 720), settings)
        spec = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, viewport, settings)
        assert spec.filters == baseline.filters

    def test_scale_to_fixed_output(self, settings):
        spec = build_pipeline(GEOMETRY, TransportMode.PEER, None, settings)
        assert spec.filter_chain == "crop=800:600:10:20,format=yuv420p,scale=1280:720"

    def test_same_inputs_same_spec(self, settings):
        a = build_pipeline(GEOMETRY, TransportMode.PEER, (1280, 720), settings)
        b = build_pipeline(GEOMETRY, TransportMode.PEER, (1280, 720), settings)
        assert a == b


class TestSegmentedMode:

    def test_codec_constants(self, settings):
        spec = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings)
        assert spec.codec == SEGMENTED_CODEC
        assert spec.codec.codec == "libvpx-vp9"
        assert spec.codec.bitrate == "6M"
        assert spec.codec.framerate == 40
        assert spec.codec.keyframe_interval == 40

    def test_segmented_sink(self, settings):
        spec = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings)
        assert isinstance(spec.output, SegmentedSink)
        assert spec.output.manifest_path == settings.hls_dir / "output.m3u8"
        assert not spec.produces_stream

    def test_args(self, settings):
        args = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings).to_args()
        joined = " ".join(args)
        assert "-f x11grab -framerate 40 -i :0.0" in joined
        assert "-c:v libvpx-vp9 -b:v 6M -g 40" in joined
        assert "-deadline realtime" in joined
        assert "-hls_time 1 -hls_list_size 5" in joined
        assert "-hls_flags append_list+delete_segments+split_by_time" in joined
        assert "-hls_segment_type fmp4" in joined
        assert args[-1] == str(settings.hls_dir / "output.m3u8")
        assert "-an" in args


class TestPeerMode:

    def test_codec_constants(self, settings):
        spec = build_pipeline(GEOMETRY, TransportMode.PEER, None, settings)
        assert spec.codec == PEER_CODEC
        assert spec.codec.framerate == 30

    def test_raw_stream_sink(self, settings):
        spec = build_pipeline(GEOMETRY, TransportMode.PEER, None, settings)
        assert isinstance(spec.output, RawStreamSink)
        assert spec.output.frame_size == 1280 * 720 * 3 // 2
        assert spec.produces_stream

    def test_args_write_raw_frames_to_stdout(self, settings):
        args = build_pipeline(GEOMETRY, TransportMode.PEER, None, settings).to_args()
        assert args[-5:] == ["-pix_fmt", "yuv420p", "-f", "rawvideo", "pipe:1"]
        assert "-an" in args
        assert "-hls_time" not in args


def test_settings_from_config(tmp_path):
    from potree_stream.core.config import StreamConfig

    config = StreamConfig(hls_dir=Path(tmp_path), output_width=640, output_height=360)
    settings = BuilderSettings.from_config(config)
    assert settings.hls_dir == Path(tmp_path)
    assert (settings.output_width, settings.output_height) == (640, 360)
