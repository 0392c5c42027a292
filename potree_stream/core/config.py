"""Typed configuration for the streaming service."""

from __future__ import annotations

import os
import platform
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from .config_manager import get_config_manager
from .paths import DATA_DIR, HLS_DIR, SERVICE_LOG_FILE, VIEWER_DIR, resolve_project_path


def default_capture_input() -> tuple[str, str]:
    """ffmpeg demuxer and device that grab the whole desktop on this platform."""
    system = platform.system()
    if system == "Windows":
        return "gdigrab", "desktop"
    if system == "Darwin":
        return "avfoundation", "1:none"
    return "x11grab", os.environ.get("DISPLAY") or ":0.0"


_DEFAULT_FORMAT, _DEFAULT_DEVICE = default_capture_input()


@dataclass(slots=True)
class StreamConfig:
    """Typed configuration for the capture-to-stream service."""

    # Server
    host: str = "localhost"
    port: int = 8080
    cors_origin: str = "*"

    # Logging
    log_level: str = "info"
    log_file: Optional[Path] = field(default_factory=lambda: SERVICE_LOG_FILE)
    console_output: bool = True

    # Viewer / browser
    viewer_url: str = "http://localhost:8080/potree/viewer.html"
    viewer_param: str = "pointcloudURL"
    ready_selector: str = ""
    settle_delay: float = 2.0
    navigation_timeout: float = 30.0
    default_viewport_width: int = 1280
    default_viewport_height: int = 720
    capture_offset_y: int = 50
    browser_executable: str = ""

    # Encoder
    ffmpeg_path: str = "ffmpeg"
    capture_format: str = _DEFAULT_FORMAT
    capture_device: str = _DEFAULT_DEVICE
    output_width: int = 1280
    output_height: int = 720
    stop_timeout: float = 5.0

    # Segmented transport
    hls_dir: Path = field(default_factory=lambda: HLS_DIR)
    hls_segment_seconds: int = 1
    hls_list_size: int = 5

    # Peer transport
    handshake_timeout: float = 60.0
    stun_server: str = "stun:stun.l.google.com:19302"
    ice_ufrag: str = "abcdefg"
    ice_pwd: str = "1234567890"

    # Static mounts
    static_viewer_dir: Path = field(default_factory=lambda: VIEWER_DIR)
    static_data_dir: Path = field(default_factory=lambda: DATA_DIR)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str], args: Any = None) -> "StreamConfig":
        """Build config from parsed ``config.txt`` values with optional CLI overrides."""
        cm = get_config_manager()
        config = dict(values)
        d = cls()

        log_file_value = cm.get_str(config, "log_file", "")
        if log_file_value.lower() in ("none", "off"):
            log_file: Optional[Path] = None
        elif log_file_value:
            log_file = resolve_project_path(Path(log_file_value))
        else:
            log_file = d.log_file

        result = cls(
            host=cm.get_str(config, "host", d.host),
            port=cm.get_int(config, "port", d.port),
            cors_origin=cm.get_str(config, "cors_origin", d.cors_origin),
            log_level=cm.get_str(config, "log_level", d.log_level),
            log_file=log_file,
            console_output=cm.get_bool(config, "console_output", d.console_output),
            viewer_url=cm.get_str(config, "viewer_url", d.viewer_url),
            viewer_param=cm.get_str(config, "viewer_param", d.viewer_param),
            ready_selector=cm.get_str(config, "ready_selector", d.ready_selector),
            settle_delay=cm.get_float(config, "settle_delay", d.settle_delay),
            navigation_timeout=cm.get_float(config, "navigation_timeout", d.navigation_timeout),
            default_viewport_width=cm.get_int(config, "default_viewport_width", d.default_viewport_width),
            default_viewport_height=cm.get_int(config, "default_viewport_height", d.default_viewport_height),
            capture_offset_y=cm.get_int(config, "capture_offset_y", d.capture_offset_y),
            browser_executable=cm.get_str(config, "browser_executable", d.browser_executable),
            ffmpeg_path=cm.get_str(config, "ffmpeg_path", d.ffmpeg_path),
            capture_format=cm.get_str(config, "capture_format", d.capture_format),
            capture_device=cm.get_str(config, "capture_device", d.capture_device),
            output_width=cm.get_int(config, "output_width", d.output_width),
            output_height=cm.get_int(config, "output_height", d.output_height),
            stop_timeout=cm.get_float(config, "stop_timeout", d.stop_timeout),
            hls_dir=_get_path(config, "hls_dir", d.hls_dir),
            hls_segment_seconds=cm.get_int(config, "hls_segment_seconds", d.hls_segment_seconds),
            hls_list_size=cm.get_int(config, "hls_list_size", d.hls_list_size),
            handshake_timeout=cm.get_float(config, "handshake_timeout", d.handshake_timeout),
            stun_server=cm.get_str(config, "stun_server", d.stun_server),
            ice_ufrag=cm.get_str(config, "ice_ufrag", d.ice_ufrag),
            ice_pwd=cm.get_str(config, "ice_pwd", d.ice_pwd),
            static_viewer_dir=_get_path(config, "static_viewer_dir", d.static_viewer_dir),
            static_data_dir=_get_path(config, "static_data_dir", d.static_data_dir),
        )

        if args is not None:
            result = result._apply_args_override(args)

        return result

    def _apply_args_override(self, args: Any) -> "StreamConfig":
        """Apply CLI argument overrides to config values."""
        arg_mappings = {
            "host": "host",
            "port": "port",
            "log_level": "log_level",
            "log_file": "log_file",
            "console_output": "console_output",
            "viewer_url": "viewer_url",
            "ffmpeg_path": "ffmpeg_path",
            "hls_dir": "hls_dir",
        }

        overrides = {}
        for arg_name, config_key in arg_mappings.items():
            val = getattr(args, arg_name, None)
            if val is not None:
                overrides[config_key] = val

        return replace(self, **overrides) if overrides else self

    @property
    def handshake_wait(self) -> Optional[float]:
        """Handshake timeout in seconds, or None for an unbounded wait."""
        return self.handshake_timeout if self.handshake_timeout > 0 else None

    def to_dict(self) -> dict[str, Any]:
        """Export config values as dictionary."""
        return asdict(self)


def _get_path(config: Mapping[str, str], key: str, default: Path) -> Path:
    value = config.get(key)
    if not value:
        return default
    return resolve_project_path(Path(value))


__all__ = ["StreamConfig", "default_capture_input"]
