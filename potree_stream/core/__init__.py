from .config import StreamConfig
from .encoder_supervisor import EncoderHandle, EncoderSupervisor
from .errors import (
    AlreadyActiveError,
    BrowserInitError,
    EncoderStartError,
    EncoderStopError,
    InvalidRequestError,
    NoActiveSessionError,
    SampleSinkError,
    StartAbortedError,
    StreamError,
)
from .models import CaptureGeometry, PipelineSpec, SessionState, TransportMode
from .pipeline_builder import BuilderSettings, build_pipeline
from .segment_janitor import SegmentJanitor
from .session_manager import SessionManager, StartRequest

__all__ = [
    'StreamConfig',
    'EncoderHandle',
    'EncoderSupervisor',
    'AlreadyActiveError',
    'BrowserInitError',
    'EncoderStartError',
    'EncoderStopError',
    'InvalidRequestError',
    'NoActiveSessionError',
    'SampleSinkError',
    'StartAbortedError',
    'StreamError',
    'CaptureGeometry',
    'PipelineSpec',
    'SessionState',
    'TransportMode',
    'BuilderSettings',
    'build_pipeline',
    'SegmentJanitor',
    'SessionManager',
    'StartRequest',
]
