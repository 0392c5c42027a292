"""Static Routes - Segment output, viewer assets and point cloud data."""

from pathlib import Path

from aiohttp import web

from potree_stream.core.logging_utils import get_module_logger

from ..controller import StreamController


logger = get_module_logger("StaticRoutes")


def setup_static_routes(app: web.Application, controller: StreamController) -> None:
    """Mount /hls/, /potree/ and /file/.

    The segment directory is created if missing; viewer and data directories
    are only mounted when they exist.
    """
    config = controller.config

    hls_dir = Path(config.hls_dir)
    hls_dir.mkdir(parents=True, exist_ok=True)
    app.router.add_static("/hls/", hls_dir, name="hls")

    for prefix, directory, name in (
        ("/potree/", Path(config.static_viewer_dir), "potree"),
        ("/file/", Path(config.static_data_dir), "file"),
    ):
        if directory.is_dir():
            app.router.add_static(prefix, directory, name=name)
        else:
            logger.info("Not serving %s: %s does not exist", prefix, directory)
