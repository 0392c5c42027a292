"""Pytest fixtures for API unit tests.

Builds the real aiohttp application around a SessionManager wired to fake
browser and encoder collaborators, so endpoints can be exercised without a
display or an ffmpeg binary.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, TypeVar

import pytest
from aiohttp import web

from potree_stream.core.api.controller import StreamController
from potree_stream.core.api.server import APIServer
from potree_stream.core.config import StreamConfig
from potree_stream.core.session_manager import SessionManager


T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_test_app(controller: StreamController, cors_origin: str = "*") -> web.Application:
    """Create the application exactly as the service does."""
    server = APIServer(controller, host="127.0.0.1", port=0, cors_origin=cors_origin)
    return server.create_app()


@pytest.fixture
def stream_config(segment_dir: Path, tmp_path: Path) -> StreamConfig:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "metadata.json").write_text('{"points": 0}')
    return StreamConfig(
        hls_dir=segment_dir,
        log_file=None,
        static_viewer_dir=tmp_path / "missing-viewer",
        static_data_dir=data_dir,
    )


@pytest.fixture
def controller(session_manager: SessionManager, stream_config: StreamConfig) -> StreamController:
    return StreamController(session_manager, stream_config)
