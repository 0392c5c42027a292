"""Centralized path constants for the streaming service."""

from __future__ import annotations

from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_ROOT.parent

# Configuration
CONFIG_PATH = PROJECT_ROOT / "config.txt"

# Logging
LOGS_DIR = PROJECT_ROOT / "logs"
SERVICE_LOG_FILE = LOGS_DIR / "potree_stream.log"

# Served directories
HLS_DIR = PROJECT_ROOT / "hls"
VIEWER_DIR = PROJECT_ROOT / "potree"
DATA_DIR = PROJECT_ROOT / "data"


def resolve_project_path(value: Path) -> Path:
    """Anchor relative paths at the project root."""
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


__all__ = [
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
    "CONFIG_PATH",
    "LOGS_DIR",
    "SERVICE_LOG_FILE",
    "HLS_DIR",
    "VIEWER_DIR",
    "DATA_DIR",
    "resolve_project_path",
]
