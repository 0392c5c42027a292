"""Application entrypoints for Potree Stream."""

from .service import build_server, main, parse_args, run

__all__ = ["build_server", "main", "parse_args", "run"]
