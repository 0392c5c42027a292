"""Owns the ffmpeg child process for a session."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional

from .asyncio_utils import cancel_and_wait, create_logged_task
from .errors import EncoderStartError, EncoderStopError
from .logging_utils import get_module_logger
from .models import PipelineSpec

DiagnosticSink = Callable[[str], None]

_encoder_logger = get_module_logger("Encoder")


def log_diagnostic(line: str) -> None:
    _encoder_logger.debug("%s", line)


@dataclass(slots=True)
class EncoderHandle:
    """Exclusive ownership of one running encoder process."""

    process: asyncio.subprocess.Process
    spec: PipelineSpec
    command: list[str]
    stopped: bool = False
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> Optional[asyncio.StreamReader]:
        return self.process.stdout

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def is_running(self) -> bool:
        return not self.stopped and self.process.returncode is None


class EncoderSupervisor:
    """Starts and stops the encoder from a :class:`PipelineSpec`."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        *,
        diagnostic_sink: Optional[DiagnosticSink] = None,
        stop_timeout: float = 5.0,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.diagnostic_sink = diagnostic_sink or log_diagnostic
        self.stop_timeout = stop_timeout
        self.logger = get_module_logger("EncoderSupervisor")

    def build_command(self, spec: PipelineSpec) -> list[str]:
        return [self.ffmpeg_path, *spec.to_args()]

    async def start(self, spec: PipelineSpec) -> EncoderHandle:
        cmd = self.build_command(spec)
        self.logger.info("Starting encoder (%s)", spec.transport_mode.value)
        self.logger.debug("Command: %s", " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE if spec.produces_stream else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            raise EncoderStartError(f"Failed to spawn encoder {self.ffmpeg_path!r}: {exc}") from exc

        handle = EncoderHandle(process=process, spec=spec, command=cmd)
        handle.tasks.append(
            create_logged_task(
                self._diagnostic_reader(handle),
                logger=self.logger,
                context=f"encoder-stderr-{process.pid}",
            )
        )
        handle.tasks.append(
            create_logged_task(
                self._process_monitor(handle),
                logger=self.logger,
                context=f"encoder-monitor-{process.pid}",
            )
        )
        self.logger.info("Encoder started with PID: %d", process.pid)
        return handle

    async def stop(self, handle: Optional[EncoderHandle]) -> None:
        """Terminate the encoder. Idempotent; an already-exited process is not an error."""
        if handle is None or handle.stopped:
            return

        handle.stopped = True
        process = handle.process
        try:
            if process.returncode is None:
                try:
                    process.terminate()
                except ProcessLookupError:
                    pass
                except OSError as exc:
                    raise EncoderStopError(f"Failed to signal encoder PID {process.pid}: {exc}") from exc

                try:
                    await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
                except asyncio.TimeoutError:
                    self.logger.warning("Encoder did not exit after %.1fs, killing...", self.stop_timeout)
                    try:
                        process.kill()
                    except ProcessLookupError:
                        pass
                    await process.wait()
            self.logger.info("Encoder stopped (PID %d, exit code %s)", process.pid, process.returncode)
        finally:
            for task in handle.tasks:
                await cancel_and_wait(task)

    async def _diagnostic_reader(self, handle: EncoderHandle) -> None:
        stream = handle.process.stderr
        if stream is None:
            return

        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # Line longer than the reader limit; the remainder stays buffered.
                self.logger.debug("Skipping oversized encoder diagnostic line")
                continue
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self.diagnostic_sink(text)

    async def _process_monitor(self, handle: EncoderHandle) -> None:
        returncode = await handle.process.wait()
        if handle.stopped:
            return
        if returncode == 0:
            self.logger.info("Encoder exited on its own")
        else:
            self.logger.error("Encoder exited unexpectedly with code: %d", returncode)


__all__ = ["DiagnosticSink", "EncoderHandle", "EncoderSupervisor", "log_diagnostic"]
