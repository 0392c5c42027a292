"""Best-effort cleanup of segmented output between sessions."""

from __future__ import annotations

import asyncio
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles.os

from .logging_utils import LoggerLike, ensure_structured_logger


@dataclass(slots=True)
class PurgeSummary:
    removed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0


class SegmentJanitor:
    """Owns deletion of segment artifacts. Never raises from ``purge``."""

    def __init__(self, directory: Path, *, logger: LoggerLike = None) -> None:
        self.directory = Path(directory)
        self.logger = ensure_structured_logger(logger, fallback_name="SegmentJanitor")

    async def ensure_directory(self) -> None:
        try:
            await aiofiles.os.makedirs(self.directory, exist_ok=True)
        except OSError as exc:
            self.logger.warning("Failed to create segment directory %s: %s", self.directory, exc)

    async def purge(self) -> PurgeSummary:
        """Remove every entry in the segment directory, whatever its name."""
        start = time.perf_counter()
        summary = PurgeSummary()

        try:
            names = await aiofiles.os.listdir(self.directory)
        except FileNotFoundError:
            return summary
        except OSError as exc:
            self.logger.warning("Failed to list %s: %s", self.directory, exc)
            summary.errors.append(str(exc))
            return summary

        for name in names:
            path = self.directory / name
            try:
                if await aiofiles.os.path.isdir(path) and not await aiofiles.os.path.islink(path):
                    await asyncio.to_thread(shutil.rmtree, path)
                else:
                    await aiofiles.os.remove(path)
                summary.removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                summary.errors.append(f"{path}: {exc}")
                self.logger.warning("Failed to remove %s: %s", path, exc)

        summary.duration_ms = (time.perf_counter() - start) * 1000
        if summary.removed:
            self.logger.info("Purged %d segment artifact(s) from %s", summary.removed, self.directory)
        return summary


__all__ = ["PurgeSummary", "SegmentJanitor"]
