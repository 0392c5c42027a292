"""
Session Manager - Owns the single capture-to-stream session.

This module serializes start/stop transitions, brings a session up
(browser, pipeline, encoder, relay) and tears it down again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .asyncio_utils import cancel_and_wait, create_logged_task
from .browser_launcher import MOUSE_EVENTS, BrowserHandle, BrowserLauncher, build_viewer_url
from .encoder_supervisor import EncoderHandle, EncoderSupervisor
from .errors import (
    AlreadyActiveError,
    EncoderStopError,
    InvalidRequestError,
    NoActiveSessionError,
    StartAbortedError,
)
from .logging_utils import get_module_logger
from .models import CaptureGeometry, PipelineSpec, RawStreamSink, SessionState, TransportMode
from .pipeline_builder import BuilderSettings, build_pipeline
from .sample_relay import SampleRelay, SampleSink
from .segment_janitor import SegmentJanitor

RELAY_DRAIN_TIMEOUT = 2.0


def _positive_int(body: Mapping[str, Any], key: str, default: int) -> int:
    value = body.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidRequestError(f"Field '{key}' must be a positive integer")
    return value


@dataclass(frozen=True, slots=True)
class StartRequest:
    point_cloud_url: str
    viewport_width: int
    viewport_height: int

    @classmethod
    def from_json(cls, body: Any, *, default_width: int, default_height: int) -> "StartRequest":
        """Validate a start request body before any state is touched."""
        if not isinstance(body, dict):
            raise InvalidRequestError("Request body must be a JSON object")
        url = body.get("pointCloudUrl")
        if not isinstance(url, str) or not url.strip():
            raise InvalidRequestError("Field 'pointCloudUrl' must be a non-empty string")
        return cls(
            point_cloud_url=url.strip(),
            viewport_width=_positive_int(body, "viewportWidth", default_width),
            viewport_height=_positive_int(body, "viewportHeight", default_height),
        )


@dataclass(slots=True)
class _Session:
    mode: TransportMode
    target_url: str
    sink: Optional[SampleSink] = None
    browser: Optional[BrowserHandle] = None
    geometry: Optional[CaptureGeometry] = None
    spec: Optional[PipelineSpec] = None
    encoder: Optional[EncoderHandle] = None
    relay_task: Optional[asyncio.Task] = None


class SessionManager:
    """
    Enforces "at most one session" and drives its lifecycle.

    State moves Idle -> Starting -> Active -> Stopping -> Idle. The lock is
    held only for state transitions; browser and process I/O happen outside it.
    """

    def __init__(
        self,
        launcher: BrowserLauncher,
        supervisor: EncoderSupervisor,
        janitor: SegmentJanitor,
        settings: BuilderSettings,
        *,
        viewer_url: str,
        viewer_param: str = "pointcloudURL",
    ):
        self.logger = get_module_logger("SessionManager")
        self.launcher = launcher
        self.supervisor = supervisor
        self.janitor = janitor
        self.settings = settings
        self.viewer_url = viewer_url
        self.viewer_param = viewer_param

        self._lock = asyncio.Lock()
        self._state = SessionState.IDLE
        self._session: Optional[_Session] = None
        self._bring_up_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        return self._state

    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    async def start(
        self,
        request: StartRequest,
        mode: TransportMode = TransportMode.SEGMENTED,
        sample_sink: Optional[SampleSink] = None,
    ) -> CaptureGeometry:
        """
        Start a session.

        Args:
            request: Validated start parameters
            mode: Transport that selects codec and output sink
            sample_sink: Frame sink for the relay (peer mode only)

        Returns:
            The capture geometry the encoder was started with

        Raises:
            AlreadyActiveError: A session is not Idle
            StartAbortedError: A stop arrived while starting
            BrowserInitError, EncoderStartError: Setup failed; resources were released
        """
        if mode is TransportMode.PEER and sample_sink is None:
            raise ValueError("Peer transport requires a sample sink")

        async with self._lock:
            if self._state is not SessionState.IDLE:
                raise AlreadyActiveError()
            self._state = SessionState.STARTING
            session = _Session(mode=mode, target_url=request.point_cloud_url, sink=sample_sink)
            self._session = session
            task = asyncio.get_running_loop().create_task(self._bring_up(session, request))
            task.set_name("session-bring-up")
            self._bring_up_task = task

        self.logger.info("Starting %s session for %s", mode.value, request.point_cloud_url)
        await asyncio.wait({task})

        if task.cancelled():
            self.logger.warning("Session start aborted by stop request")
            raise StartAbortedError()
        exc = task.exception()
        if exc is not None:
            raise exc
        return task.result()

    async def _bring_up(self, session: _Session, request: StartRequest) -> CaptureGeometry:
        try:
            if session.mode is TransportMode.SEGMENTED:
                await self.janitor.ensure_directory()
                await self.janitor.purge()

            target = build_viewer_url(self.viewer_url, self.viewer_param, request.point_cloud_url)
            geometry, browser = await self.launcher.launch(
                target, request.viewport_width, request.viewport_height
            )
            session.browser = browser
            session.geometry = geometry

            spec = build_pipeline(
                geometry,
                session.mode,
                (request.viewport_width, request.viewport_height),
                self.settings,
            )
            session.spec = spec
            session.encoder = await self.supervisor.start(spec)

            if session.mode is TransportMode.PEER:
                session.relay_task = self._start_relay(session)
        except asyncio.CancelledError:
            # The stop path owns cleanup of whatever was acquired.
            raise
        except Exception as exc:
            self.logger.error("Session start failed: %s", exc)
            await self._teardown(session, purge=False)
            async with self._lock:
                if self._session is session:
                    self._state = SessionState.IDLE
                    self._session = None
                    self._bring_up_task = None
            raise

        async with self._lock:
            if self._session is session and self._state is SessionState.STARTING:
                self._state = SessionState.ACTIVE
        self.logger.info("Session active (encoder PID %d)", session.encoder.pid)
        return geometry

    def _start_relay(self, session: _Session) -> asyncio.Task:
        output = session.spec.output
        if not isinstance(output, RawStreamSink) or session.encoder.stdout is None:
            raise ValueError("Peer transport needs a raw encoder stream")
        relay = SampleRelay(
            session.encoder.stdout,
            session.sink,
            frame_size=output.frame_size,
            framerate=session.spec.codec.framerate,
        )
        return create_logged_task(relay.run(), logger=self.logger, context="sample-relay")

    async def stop(self) -> None:
        """
        Stop the current session.

        Teardown always completes and the state always returns to Idle. An
        encoder stop failure is raised afterwards so the caller can report it.

        Raises:
            NoActiveSessionError: Nothing is starting or running
            EncoderStopError: The encoder could not be signalled
        """
        async with self._lock:
            if self._state in (SessionState.IDLE, SessionState.STOPPING) or self._session is None:
                raise NoActiveSessionError()
            self._state = SessionState.STOPPING
            session = self._session
            task = self._bring_up_task
            if task is not None and not task.done():
                self.logger.info("Cancelling in-flight session start")
                task.cancel()

        self.logger.info("Stopping session")
        stop_error: Optional[EncoderStopError] = None
        try:
            if task is not None:
                await asyncio.wait({task})
            stop_error = await self._teardown(session, purge=True)
        finally:
            async with self._lock:
                self._state = SessionState.IDLE
                self._session = None
                self._bring_up_task = None
            self.logger.info("Session stopped")

        if stop_error is not None:
            raise stop_error

    async def _teardown(self, session: _Session, *, purge: bool) -> Optional[EncoderStopError]:
        stop_error: Optional[EncoderStopError] = None
        try:
            await self.supervisor.stop(session.encoder)
        except EncoderStopError as exc:
            self.logger.error("Encoder stop failed: %s", exc)
            stop_error = exc

        if session.relay_task is not None:
            # Encoder exit closes stdout, which ends the relay on its own.
            await asyncio.wait({session.relay_task}, timeout=RELAY_DRAIN_TIMEOUT)
            await cancel_and_wait(session.relay_task)

        if session.sink is not None:
            session.sink.stop()

        if session.browser is not None:
            try:
                await session.browser.close()
            except Exception as exc:
                self.logger.warning("Browser teardown failed: %s", exc)

        # Only purge once the encoder is confirmed gone.
        if purge and stop_error is None and session.mode is TransportMode.SEGMENTED:
            await self.janitor.purge()

        return stop_error

    async def wait_relay(self) -> None:
        """Wait until the current session's sample relay finishes."""
        session = self._session
        if session is None or session.relay_task is None:
            return
        await asyncio.wait({session.relay_task})

    async def forward_interaction(self, event_type: str, data: Mapping[str, Any]) -> None:
        if event_type not in MOUSE_EVENTS:
            self.logger.debug("Ignoring unknown interaction %s", event_type)
            return
        session = self._session
        if self._state is not SessionState.ACTIVE or session is None or session.browser is None:
            self.logger.debug("Interaction %s without an active session", event_type)
            return
        await session.browser.interact(event_type, data)

    def snapshot(self) -> dict[str, Any]:
        session = self._session
        return {
            "state": self._state.value,
            "transportMode": session.mode.value if session else None,
            "targetUrl": session.target_url if session else None,
            "geometry": session.geometry.to_dict() if session and session.geometry else None,
            "pid": session.encoder.pid if session and session.encoder else None,
        }


__all__ = ["SessionManager", "StartRequest"]
