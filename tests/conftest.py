"""Shared pytest configuration and fixtures for the Potree Stream test suite."""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from potree_stream.core.errors import SampleSinkError  # noqa: E402
from potree_stream.core.models import CaptureGeometry, PipelineSpec  # noqa: E402
from potree_stream.core.pipeline_builder import BuilderSettings  # noqa: E402
from potree_stream.core.segment_janitor import SegmentJanitor  # noqa: E402
from potree_stream.core.session_manager import SessionManager  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


# =============================================================================
# Fakes
# =============================================================================

class FakeBrowserHandle:
    """Stands in for a live playwright session."""

    def __init__(self):
        self.closed = False
        self.close_calls = 0
        self.interact = AsyncMock()

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FakeLauncher:
    """Browser launcher that reports a fixed geometry.

    ``gate`` (when set) holds every launch until released, ``error`` makes
    launches fail.
    """

    def __init__(self, geometry: Optional[CaptureGeometry] = None):
        self.geometry = geometry or CaptureGeometry(x=0, y=50, width=1280, height=720)
        self.calls: List[tuple] = []
        self.handles: List[FakeBrowserHandle] = []
        self.entered = asyncio.Event()
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None

    async def launch(self, target_url: str, width: int, height: int):
        self.calls.append((target_url, width, height))
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        handle = FakeBrowserHandle()
        self.handles.append(handle)
        return self.geometry, handle


class FakeEncoderHandle:

    def __init__(self, spec: PipelineSpec, pid: int):
        self.spec = spec
        self.pid = pid
        self.stopped = False
        self.stdout: Optional[asyncio.StreamReader] = asyncio.StreamReader() if spec.produces_stream else None


class FakeSupervisor:
    """Records start/stop calls instead of spawning ffmpeg.

    In segmented mode a start drops a manifest and a segment into
    ``write_dir`` to mimic a running encoder.
    """

    def __init__(self, write_dir: Optional[Path] = None):
        self.write_dir = write_dir
        self.started: List[PipelineSpec] = []
        self.handles: List[FakeEncoderHandle] = []
        self.stop_calls = 0
        self.start_error: Optional[Exception] = None
        self.stop_error: Optional[Exception] = None

    async def start(self, spec: PipelineSpec) -> FakeEncoderHandle:
        if self.start_error is not None:
            raise self.start_error
        self.started.append(spec)
        handle = FakeEncoderHandle(spec, pid=4000 + len(self.started))
        self.handles.append(handle)
        if self.write_dir is not None and not spec.produces_stream:
            (self.write_dir / "output.m3u8").write_text("#EXTM3U\n")
            (self.write_dir / "segment_000.m4s").write_bytes(b"\x00" * 16)
        return handle

    async def stop(self, handle: Optional[FakeEncoderHandle]) -> None:
        if handle is None or handle.stopped:
            return
        handle.stopped = True
        self.stop_calls += 1
        if handle.stdout is not None:
            handle.stdout.feed_eof()
        if self.stop_error is not None:
            raise self.stop_error


class CollectingSink:
    """Sample sink that keeps what it receives."""

    def __init__(self, fail_every: int = 0):
        self.samples = []
        self.stopped = False
        self.writes = 0
        self.fail_every = fail_every

    def write_sample(self, sample) -> None:
        self.writes += 1
        if self.fail_every and self.writes % self.fail_every == 0:
            raise SampleSinkError("sink full")
        self.samples.append(sample)

    def stop(self) -> None:
        self.stopped = True


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def segment_dir(tmp_path: Path) -> Path:
    path = tmp_path / "hls"
    path.mkdir()
    return path


@pytest.fixture
def builder_settings(segment_dir: Path) -> BuilderSettings:
    return BuilderSettings(capture_format="x11grab", capture_device=":0.0", hls_dir=segment_dir)


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def fake_supervisor(segment_dir: Path) -> FakeSupervisor:
    return FakeSupervisor(write_dir=segment_dir)


@pytest.fixture
def janitor(segment_dir: Path) -> SegmentJanitor:
    janitor = SegmentJanitor(segment_dir)
    janitor.purge = AsyncMock(side_effect=janitor.purge)
    return janitor


@pytest.fixture
def session_manager(fake_launcher, fake_supervisor, janitor, builder_settings) -> SessionManager:
    return SessionManager(
        fake_launcher,
        fake_supervisor,
        janitor,
        builder_settings,
        viewer_url="http://localhost:8080/potree/viewer.html",
    )


@pytest.fixture
def collecting_sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def flaky_sink() -> CollectingSink:
    """Sink that rejects every second write."""
    return CollectingSink(fail_every=2)


@pytest.fixture
def peer_manager(fake_launcher, fake_supervisor, janitor, segment_dir) -> SessionManager:
    """SessionManager producing 4x2 yuv420p frames (12 bytes each)."""
    settings = BuilderSettings(
        capture_format="x11grab",
        capture_device=":0.0",
        hls_dir=segment_dir,
        output_width=4,
        output_height=2,
    )
    return SessionManager(
        fake_launcher,
        fake_supervisor,
        janitor,
        settings,
        viewer_url="http://localhost:8080/potree/viewer.html",
    )
