"""Exception taxonomy for session orchestration.

Conflicts and boundary errors leave the session untouched. Setup errors are
raised only after any partially acquired resource has been released.
Teardown errors are reported after the session is already back to idle.
"""


class StreamError(Exception):
    """Base class for all streaming errors."""

    code = "STREAM_ERROR"


# Conflicts


class AlreadyActiveError(StreamError):
    code = "ALREADY_ACTIVE"

    def __init__(self, message: str = "Stream already running") -> None:
        super().__init__(message)


class NoActiveSessionError(StreamError):
    code = "NO_ACTIVE_SESSION"

    def __init__(self, message: str = "No active stream") -> None:
        super().__init__(message)


class StartAbortedError(StreamError):
    code = "START_ABORTED"

    def __init__(self, message: str = "Stream stopped while starting") -> None:
        super().__init__(message)


# Setup failures


class BrowserInitError(StreamError):
    code = "BROWSER_INIT_FAILED"


class EncoderStartError(StreamError):
    code = "ENCODER_START_FAILED"


# Teardown failures


class EncoderStopError(StreamError):
    code = "ENCODER_STOP_FAILED"


# Runtime / boundary


class SampleSinkError(StreamError):
    code = "SAMPLE_SINK_FAILED"


class InvalidRequestError(StreamError, ValueError):
    code = "INVALID_REQUEST"


__all__ = [
    "StreamError",
    "AlreadyActiveError",
    "NoActiveSessionError",
    "StartAbortedError",
    "BrowserInitError",
    "EncoderStartError",
    "EncoderStopError",
    "SampleSinkError",
    "InvalidRequestError",
]
