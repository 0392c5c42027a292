"""Drives a headed Chromium window to the viewer and measures its render area."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from playwright.async_api import Browser, Error as PlaywrightError, Page, Playwright, async_playwright

from .errors import BrowserInitError
from .logging_utils import get_module_logger
from .models import CaptureGeometry

# Window metrics used to locate the content area on screen. Outer window
# decoration shifts the renderable area away from screenX/screenY.
GEOMETRY_SCRIPT = """() => ({
    screenX: window.screenX,
    screenY: window.screenY,
    outerWidth: window.outerWidth,
    outerHeight: window.outerHeight,
    innerWidth: window.innerWidth,
    innerHeight: window.innerHeight,
    screenWidth: window.screen.width,
    screenHeight: window.screen.height,
})"""

MOUSE_EVENTS = ("move", "down", "up", "click", "wheel")

logger = get_module_logger("BrowserLauncher")


def build_viewer_url(viewer_url: str, param: str, point_cloud_url: str) -> str:
    """Append the point cloud location to the viewer URL as a query parameter."""
    parts = urlsplit(viewer_url)
    query = urlencode({param: point_cloud_url})
    if parts.query:
        query = f"{parts.query}&{query}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def _even(value: int) -> int:
    return value - (value % 2)


def geometry_from_metrics(metrics: Mapping[str, Any], offset_y: int = 0) -> CaptureGeometry:
    """Derive the on-screen capture rectangle from browser window metrics.

    The rectangle is clamped to the screen and its size rounded down to even
    values, which yuv420p requires. Raises ``ValueError`` when nothing is left.
    """
    try:
        screen_x = int(metrics["screenX"])
        screen_y = int(metrics["screenY"])
        outer_w = int(metrics["outerWidth"])
        outer_h = int(metrics["outerHeight"])
        inner_w = int(metrics["innerWidth"])
        inner_h = int(metrics["innerHeight"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Incomplete window metrics: {metrics!r}") from exc

    x = max(0, screen_x + outer_w - inner_w)
    y = max(0, screen_y + outer_h - inner_h + offset_y)
    width = inner_w
    height = inner_h

    screen_w = metrics.get("screenWidth")
    screen_h = metrics.get("screenHeight")
    if screen_w:
        width = min(width, int(screen_w) - x)
    if screen_h:
        height = min(height, int(screen_h) - y)

    width = _even(width)
    height = _even(height)
    if width <= 0 or height <= 0:
        raise ValueError(f"Empty capture rectangle at ({x}, {y}) from metrics {dict(metrics)!r}")
    return CaptureGeometry(x=x, y=y, width=width, height=height)


class BrowserHandle:
    """A live browser session. ``close`` is safe to call more than once."""

    def __init__(self, playwright: Playwright, browser: Browser, page: Page) -> None:
        self.playwright = playwright
        self.browser = browser
        self.page = page
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def interact(self, event_type: str, data: Mapping[str, Any]) -> None:
        """Replay a viewer interaction on the page's mouse."""
        if self._closed:
            return
        mouse = self.page.mouse
        x = float(data.get("x", 0))
        y = float(data.get("y", 0))
        button = data.get("button", "left")

        if event_type == "move":
            await mouse.move(x, y)
        elif event_type == "down":
            await mouse.move(x, y)
            await mouse.down(button=button)
        elif event_type == "up":
            await mouse.move(x, y)
            await mouse.up(button=button)
        elif event_type == "click":
            await mouse.click(x, y, button=button)
        elif event_type == "wheel":
            await mouse.wheel(float(data.get("deltaX", 0)), float(data.get("deltaY", 0)))
        else:
            raise ValueError(f"Unsupported interaction event: {event_type}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.browser.close()
        except PlaywrightError as exc:
            logger.warning("Browser close failed: %s", exc)
        finally:
            await self.playwright.stop()
        logger.info("Browser closed")


class BrowserLauncher:

    def __init__(
        self,
        *,
        ready_selector: str = "",
        settle_delay: float = 2.0,
        navigation_timeout: float = 30.0,
        capture_offset_y: int = 0,
        executable_path: Optional[str] = None,
    ) -> None:
        self.ready_selector = ready_selector
        self.settle_delay = settle_delay
        self.navigation_timeout = navigation_timeout
        self.capture_offset_y = capture_offset_y
        self.executable_path = executable_path or None

    def _launch_args(self, width: int, height: int) -> list[str]:
        return [
            "--window-position=0,0",
            f"--window-size={width},{height}",
            "--disable-infobars",
            "--no-first-run",
            "--no-default-browser-check",
        ]

    async def launch(self, target_url: str, width: int, height: int) -> tuple[CaptureGeometry, BrowserHandle]:
        """Open ``target_url`` in a visible window and report its capture rectangle.

        Anything started before a failure (or cancellation) is released before
        the error leaves this method.
        """
        logger.info("Launching browser for %s (%dx%d)", target_url, width, height)
        playwright: Optional[Playwright] = None
        browser: Optional[Browser] = None
        handle: Optional[BrowserHandle] = None

        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(
                headless=False,
                executable_path=self.executable_path,
                args=self._launch_args(width, height),
            )
            page = await browser.new_page(no_viewport=True)
            handle = BrowserHandle(playwright, browser, page)

            timeout_ms = self.navigation_timeout * 1000
            await page.goto(target_url, wait_until="domcontentloaded", timeout=timeout_ms)
            if self.ready_selector:
                await page.wait_for_selector(self.ready_selector, timeout=timeout_ms)

            await page.bring_to_front()
            await page.evaluate("() => window.focus()")
            if self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)

            metrics = await page.evaluate(GEOMETRY_SCRIPT)
            geometry = geometry_from_metrics(metrics, self.capture_offset_y)
        except asyncio.CancelledError:
            await self._release(handle, playwright, browser)
            raise
        except Exception as exc:
            await self._release(handle, playwright, browser)
            raise BrowserInitError(f"Browser setup failed for {target_url}: {exc}") from exc

        logger.info(
            "Capture geometry: %dx%d at (%d, %d)",
            geometry.width, geometry.height, geometry.x, geometry.y,
        )
        return geometry, handle

    async def _release(
        self,
        handle: Optional[BrowserHandle],
        playwright: Optional[Playwright],
        browser: Optional[Browser],
    ) -> None:
        try:
            if handle is not None:
                await handle.close()
                return
            if browser is not None:
                await browser.close()
            if playwright is not None:
                await playwright.stop()
        except (PlaywrightError, OSError) as exc:
            logger.warning("Failed to release partial browser session: %s", exc)


__all__ = [
    "BrowserHandle",
    "BrowserLauncher",
    "GEOMETRY_SCRIPT",
    "MOUSE_EVENTS",
    "build_viewer_url",
    "geometry_from_metrics",
]
