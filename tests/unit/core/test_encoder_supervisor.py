"""Unit tests for EncoderSupervisor using a Python child in place of ffmpeg."""

import asyncio
import sys

import pytest

from potree_stream.core.encoder_supervisor import EncoderSupervisor
from potree_stream.core.errors import EncoderStartError
from potree_stream.core.models import CaptureGeometry, TransportMode
from potree_stream.core.pipeline_builder import BuilderSettings, build_pipeline


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal semantics")

GEOMETRY = CaptureGeometry(x=0, y=0, width=640, height=480)

CHATTY = (
    "import sys, time\n"
    "for i in range(3):\n"
    "    sys.stderr.write('frame=%d\\n' % i)\n"
    "    sys.stderr.flush()\n"
    "time.sleep(30)\n"
)

STUBBORN = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "sys.stderr.write('ready\\n')\n"
    "sys.stderr.flush()\n"
    "time.sleep(30)\n"
)


@pytest.fixture
def settings(tmp_path) -> BuilderSettings:
    return BuilderSettings(capture_format="x11grab", capture_device=":0.0", hls_dir=tmp_path)


def _supervisor(script: str, lines: list, stop_timeout: float = 2.0) -> EncoderSupervisor:
    supervisor = EncoderSupervisor(sys.executable, diagnostic_sink=lines.append, stop_timeout=stop_timeout)
    supervisor.build_command = lambda spec: [sys.executable, "-c", script]
    return supervisor


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


class TestCommand:

    def test_command_starts_with_executable(self, settings):
        spec = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings)
        cmd = EncoderSupervisor("/opt/ffmpeg/bin/ffmpeg").build_command(spec)
        assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"
        assert cmd[1:] == spec.to_args()


class TestStart:

    @pytest.mark.asyncio
    async def test_missing_executable_fails(self, settings):
        supervisor = EncoderSupervisor("/nonexistent/ffmpeg-binary")
        spec = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings)
        with pytest.raises(EncoderStartError):
            await supervisor.start(spec)

    @pytest.mark.asyncio
    async def test_diagnostics_forwarded_to_sink(self, settings):
        lines: list = []
        supervisor = _supervisor(CHATTY, lines)
        spec = build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings)

        handle = await supervisor.start(spec)
        try:
            await _wait_for(lambda: len(lines) >= 3)
            assert lines[:3] == ["frame=0", "frame=1", "frame=2"]
            assert handle.is_running()
            assert handle.stdout is None
        finally:
            await supervisor.stop(handle)

    @pytest.mark.asyncio
    async def test_peer_mode_exposes_stdout(self, settings):
        script = "import sys; sys.stdout.buffer.write(b'x' * 12); sys.stdout.flush()"
        supervisor = _supervisor(script, [])
        spec = build_pipeline(GEOMETRY, TransportMode.PEER, None, settings)

        handle = await supervisor.start(spec)
        data = await asyncio.wait_for(handle.stdout.readexactly(12), timeout=5)
        assert data == b"x" * 12
        await supervisor.stop(handle)


class TestStop:

    @pytest.mark.asyncio
    async def test_stop_none_is_noop(self):
        await EncoderSupervisor().stop(None)

    @pytest.mark.asyncio
    async def test_stop_terminates_and_is_idempotent(self, settings):
        lines: list = []
        supervisor = _supervisor(CHATTY, lines)
        handle = await supervisor.start(build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings))
        await _wait_for(lambda: lines)

        await supervisor.stop(handle)
        assert handle.returncode is not None
        assert not handle.is_running()

        await supervisor.stop(handle)
        assert all(task.done() for task in handle.tasks)

    @pytest.mark.asyncio
    async def test_already_exited_process_is_not_an_error(self, settings):
        supervisor = _supervisor("pass", [])
        handle = await supervisor.start(build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings))
        await asyncio.wait_for(handle.process.wait(), timeout=5)

        await supervisor.stop(handle)
        assert handle.returncode == 0

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_kill_after_timeout(self, settings):
        lines: list = []
        supervisor = _supervisor(STUBBORN, lines, stop_timeout=0.5)
        handle = await supervisor.start(build_pipeline(GEOMETRY, TransportMode.SEGMENTED, None, settings))
        await _wait_for(lambda: "ready" in lines)

        await supervisor.stop(handle)
        assert handle.returncode is not None
        assert handle.returncode < 0
