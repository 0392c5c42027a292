import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from potree_stream.core.api import APIServer, StreamController
from potree_stream.core.browser_launcher import BrowserLauncher
from potree_stream.core.config import StreamConfig
from potree_stream.core.config_manager import get_config_manager
from potree_stream.core.encoder_supervisor import EncoderSupervisor
from potree_stream.core.logging_config import configure_logging
from potree_stream.core.logging_utils import get_module_logger
from potree_stream.core.paths import CONFIG_PATH
from potree_stream.core.pipeline_builder import BuilderSettings
from potree_stream.core.segment_janitor import SegmentJanitor
from potree_stream.core.session_manager import SessionManager


logger = get_module_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments. Unset options fall back to the config file."""
    parser = argparse.ArgumentParser(
        description="Potree Stream - stream a browser-rendered point cloud viewer over HLS or WebRTC"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Path to config file (default: config.txt in the project root)"
    )

    parser.add_argument("--host", type=str, default=None, help="Host to bind (default: localhost)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (default: 8080)")

    parser.add_argument(
        "--viewer-url",
        type=str,
        default=None,
        help="Viewer page the browser opens (default: http://localhost:8080/potree/viewer.html)"
    )

    parser.add_argument("--ffmpeg-path", type=str, default=None, help="ffmpeg executable")
    parser.add_argument("--hls-dir", type=Path, default=None, help="Segment output directory")

    parser.add_argument(
        "--log-level",
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        default=None,
        help="Logging level (default: info)"
    )

    parser.add_argument("--log-file", type=Path, default=None, help="Rotating log file path")

    parser.add_argument(
        "--console",
        dest="console_output",
        action="store_true",
        default=None,
        help="Also log to console"
    )

    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        help="Log to file only"
    )

    return parser.parse_args(argv)


def build_server(config: StreamConfig) -> APIServer:
    """Wire the session manager and its collaborators into an API server."""
    launcher = BrowserLauncher(
        ready_selector=config.ready_selector,
        settle_delay=config.settle_delay,
        navigation_timeout=config.navigation_timeout,
        capture_offset_y=config.capture_offset_y,
        executable_path=config.browser_executable,
    )
    supervisor = EncoderSupervisor(config.ffmpeg_path, stop_timeout=config.stop_timeout)
    janitor = SegmentJanitor(config.hls_dir)
    session_manager = SessionManager(
        launcher,
        supervisor,
        janitor,
        BuilderSettings.from_config(config),
        viewer_url=config.viewer_url,
        viewer_param=config.viewer_param,
    )
    controller = StreamController(session_manager, config)
    return APIServer(
        controller,
        host=config.host,
        port=config.port,
        cors_origin=config.cors_origin,
        debug=config.log_level.lower() == "debug",
    )


async def main(argv: Optional[list[str]] = None) -> None:
    """
    Main entry point for the streaming service.

    Shutdown Sequence:
    1. SIGINT/SIGTERM sets the shutdown event
    2. The server runs its shutdown hook, which stops any active session
    3. The listener closes and the process exits
    """
    args = parse_args(argv)
    values = await get_config_manager().read_config_async(args.config)
    config = StreamConfig.from_mapping(values, args)

    configure_logging(
        config.log_level,
        force=True,
        console=config.console_output,
        log_file=config.log_file,
    )

    logger.info("=" * 60)
    logger.info("Potree Stream - Starting")
    logger.info("=" * 60)
    logger.info("Viewer: %s", config.viewer_url)
    logger.info("Segment directory: %s", config.hls_dir)
    logger.info("Capture input: %s %s", config.capture_format, config.capture_device)
    logger.info("Log file: %s", config.log_file)
    logger.info("=" * 60)

    server = build_server(config)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except NotImplementedError:
            pass  # Windows doesn't support add_signal_handler

    await server.start()
    try:
        await shutdown_event.wait()
        logger.info("Shutdown requested")
    finally:
        await server.stop()

    logger.info("=" * 60)
    logger.info("Potree Stream - Stopped")
    logger.info("=" * 60)


def run(argv: Optional[list[str]] = None) -> int:
    try:
        asyncio.run(main(argv))
        return 0
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as exc:  # pragma: no cover - fatal guard
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
