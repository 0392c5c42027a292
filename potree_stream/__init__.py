"""Stream a browser-rendered point cloud viewer as HLS segments or over WebRTC."""

from __future__ import annotations

from importlib import metadata
from typing import Optional, Sequence

from .app.service import main, run as _run

try:
    __version__ = metadata.version("potree-stream")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Convenience wrapper that runs the async service entry point."""
    return _run(list(argv) if argv is not None else None)


__all__ = ["__version__", "main", "run"]
