"""Unit tests for the browser launcher and geometry derivation."""

from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest
from playwright.async_api import Error as PlaywrightError

from potree_stream.core.browser_launcher import (
    BrowserHandle,
    BrowserLauncher,
    build_viewer_url,
    geometry_from_metrics,
)
from potree_stream.core.errors import BrowserInitError
from potree_stream.core.models import CaptureGeometry


METRICS = {
    "screenX": 0,
    "screenY": 0,
    "outerWidth": 1280,
    "outerHeight": 800,
    "innerWidth": 1280,
    "innerHeight": 720,
    "screenWidth": 1920,
    "screenHeight": 1080,
}


class TestBuildViewerUrl:

    def test_point_cloud_url_is_encoded(self):
        url = build_viewer_url(
            "http://localhost:8080/potree/viewer.html",
            "pointcloudURL",
            "http://localhost:8080/file/cloud/metadata.json?x=1&y=2",
        )
        parts = urlsplit(url)
        assert parts.path == "/potree/viewer.html"
        assert parse_qs(parts.query)["pointcloudURL"] == ["http://localhost:8080/file/cloud/metadata.json?x=1&y=2"]
        assert "&y=2" not in parts.query

    def test_existing_query_preserved(self):
        url = build_viewer_url("http://h/viewer.html?theme=dark", "pointcloudURL", "a.json")
        assert parse_qs(urlsplit(url).query) == {"theme": ["dark"], "pointcloudURL": ["a.json"]}


class TestGeometryFromMetrics:

    def test_chrome_offset_shifts_origin(self):
        geometry = geometry_from_metrics(METRICS)
        assert geometry == CaptureGeometry(x=0, y=80, width=1280, height=720)

    def test_capture_offset_added_to_y(self):
        geometry = geometry_from_metrics(METRICS, offset_y=50)
        assert geometry.y == 130

    def test_window_position_included(self):
        metrics = dict(METRICS, screenX=100, screenY=40)
        geometry = geometry_from_metrics(metrics)
        assert (geometry.x, geometry.y) == (100, 120)

    def test_clamped_to_screen(self):
        metrics = dict(METRICS, screenWidth=1000, screenHeight=700)
        geometry = geometry_from_metrics(metrics)
        assert geometry.width == 1000
        assert geometry.height == 620

    def test_odd_sizes_rounded_down_to_even(self):
        metrics = dict(METRICS, innerWidth=801, outerWidth=801, innerHeight=601, outerHeight=681)
        geometry = geometry_from_metrics(metrics)
        assert (geometry.width, geometry.height) == (800, 600)

    def test_empty_rectangle_rejected(self):
        with pytest.raises(ValueError):
            geometry_from_metrics(dict(METRICS, innerWidth=0, outerWidth=0))

    def test_offscreen_rectangle_rejected(self):
        with pytest.raises(ValueError):
            geometry_from_metrics(dict(METRICS, screenY=1200))

    def test_missing_metrics_rejected(self):
        with pytest.raises(ValueError):
            geometry_from_metrics({"screenX": 0})


def _mock_playwright(page: MagicMock):
    browser = MagicMock()
    browser.new_page = AsyncMock(return_value=page)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    context_manager = MagicMock()
    context_manager.start = AsyncMock(return_value=playwright)
    return context_manager, playwright, browser


def _mock_page() -> MagicMock:
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.bring_to_front = AsyncMock()
    page.evaluate = AsyncMock(side_effect=[None, METRICS])
    page.mouse.move = AsyncMock()
    page.mouse.down = AsyncMock()
    page.mouse.up = AsyncMock()
    page.mouse.click = AsyncMock()
    page.mouse.wheel = AsyncMock()
    return page


class TestBrowserLauncher:

    @pytest.mark.asyncio
    async def test_launch_reports_geometry(self):
        page = _mock_page()
        factory, playwright, browser = _mock_playwright(page)
        launcher = BrowserLauncher(ready_selector="#potree_render_area", settle_delay=0, capture_offset_y=50)

        with patch("potree_stream.core.browser_launcher.async_playwright", return_value=factory):
            geometry, handle = await launcher.launch("http://viewer/?pointcloudURL=x", 1280, 720)

        assert geometry == CaptureGeometry(x=0, y=130, width=1280, height=720)
        assert isinstance(handle, BrowserHandle)
        launch_kwargs = playwright.chromium.launch.await_args.kwargs
        assert launch_kwargs["headless"] is False
        assert "--window-size=1280,720" in launch_kwargs["args"]
        page.wait_for_selector.assert_awaited_once()
        browser.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigation_failure_releases_browser(self):
        page = _mock_page()
        page.goto = AsyncMock(side_effect=PlaywrightError("net::ERR_CONNECTION_REFUSED"))
        factory, playwright, browser = _mock_playwright(page)
        launcher = BrowserLauncher(settle_delay=0)

        with patch("potree_stream.core.browser_launcher.async_playwright", return_value=factory):
            with pytest.raises(BrowserInitError):
                await launcher.launch("http://viewer/", 1280, 720)

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bad_geometry_releases_browser(self):
        page = _mock_page()
        page.evaluate = AsyncMock(side_effect=[None, dict(METRICS, innerHeight=0, outerHeight=0)])
        factory, playwright, browser = _mock_playwright(page)
        launcher = BrowserLauncher(settle_delay=0)

        with patch("potree_stream.core.browser_launcher.async_playwright", return_value=factory):
            with pytest.raises(BrowserInitError):
                await launcher.launch("http://viewer/", 1280, 720)

        browser.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_launch_failure_stops_playwright(self):
        factory, playwright, _ = _mock_playwright(_mock_page())
        playwright.chromium.launch = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
        launcher = BrowserLauncher(settle_delay=0)

        with patch("potree_stream.core.browser_launcher.async_playwright", return_value=factory):
            with pytest.raises(BrowserInitError):
                await launcher.launch("http://viewer/", 1280, 720)

        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_browser(self):
        page = _mock_page()
        page.bring_to_front = AsyncMock(side_effect=RuntimeError("target crashed"))
        factory, playwright, browser = _mock_playwright(page)
        launcher = BrowserLauncher(settle_delay=0)

        with patch("potree_stream.core.browser_launcher.async_playwright", return_value=factory):
            with pytest.raises(BrowserInitError, match="target crashed"):
                await launcher.launch("http://viewer/", 1280, 720)

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()


class TestBrowserHandle:

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        page = _mock_page()
        _, playwright, browser = _mock_playwright(page)
        handle = BrowserHandle(playwright, browser, page)

        await handle.close()
        await handle.close()

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert handle.closed

    @pytest.mark.asyncio
    async def test_interact_drives_mouse(self):
        page = _mock_page()
        _, playwright, browser = _mock_playwright(page)
        handle = BrowserHandle(playwright, browser, page)

        await handle.interact("down", {"x": 10, "y": 20, "button": "left"})
        await handle.interact("wheel", {"deltaY": -120})

        page.mouse.move.assert_awaited_with(10.0, 20.0)
        page.mouse.down.assert_awaited_once_with(button="left")
        page.mouse.wheel.assert_awaited_once_with(0.0, -120.0)

    @pytest.mark.asyncio
    async def test_interact_rejects_unknown_event(self):
        page = _mock_page()
        _, playwright, browser = _mock_playwright(page)
        handle = BrowserHandle(playwright, browser, page)

        with pytest.raises(ValueError):
            await handle.interact("keypress", {})
