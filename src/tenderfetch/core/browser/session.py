"""
Playwright browser session.

Launches Chromium with the flags the portal's frameset needs, opens a single
download-enabled page and closes everything on exit.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from tenderfetch.core.config.models import BrowserConfig
from tenderfetch.core.errors import TenderFetchError

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Dialog, Page, Playwright

logger = logging.getLogger(__name__)

WINDOW_SIZE = (1280, 882)

LAUNCH_ARGS = [
    "--no-sandbox",
    # frames stay in the page process
    "--disable-features=site-per-process",
    f"--window-size={WINDOW_SIZE[0]},{WINDOW_SIZE[1]}",
]


class BrowserSession:
    """Async context manager owning the browser, context and page.

    Usage:
        async with BrowserSession(config.browser) as session:
            page = session.page
    """

    def __init__(
        self,
        config: BrowserConfig,
        snapshot_dir: Path | str = "snapshots",
    ):
        self.config = config
        self.snapshot_dir = Path(snapshot_dir)

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> "Page":
        if self._page is None:
            raise TenderFetchError("Browser session is not open")
        return self._page

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> "Page":
        """Launch the browser and prepare the page."""
        from playwright.async_api import async_playwright

        executable = self.config.resolve_executable()
        self._playwright = await async_playwright().start()

        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                executable_path=executable,
                args=LAUNCH_ARGS,
            )
        except Exception as e:
            await self.close()
            raise TenderFetchError(
                "Failed to launch Chromium. Run: playwright install chromium",
                cause=e,
            ) from e

        self._context = await self._browser.new_context(
            accept_downloads=True,
            viewport={"width": WINDOW_SIZE[0], "height": WINDOW_SIZE[1]},
            extra_http_headers={"User-Agent": self.config.user_agent},
        )
        self._page = await self._context.new_page()
        self._page.set_default_timeout(self.config.navigation_timeout_ms)
        # Empty searches raise a confirm() dialog
        self._page.on("dialog", _accept_dialog)

        logger.info(
            "Launched Chromium (headless=%s, executable=%s)",
            self.config.headless,
            executable or "bundled",
        )
        return self._page

    async def close(self) -> None:
        """Close page, context, browser and driver, ignoring already-closed handles."""
        for closer, label in (
            (self._context, "context"),
            (self._browser, "browser"),
        ):
            if closer is None:
                continue
            try:
                await closer.close()
            except Exception as e:
                logger.debug("Error closing %s: %s", label, e)

        if self._playwright is not None:
            await self._playwright.stop()

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    async def capture_screenshot(self, prefix: str = "error") -> str | None:
        """Capture a full-page screenshot for debugging."""
        if not self.config.screenshots_on_error or self._page is None:
            return None

        try:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filepath = self.snapshot_dir / f"{prefix}_{timestamp}.png"
            await self._page.screenshot(path=str(filepath), full_page=True)
            logger.info("Screenshot saved: %s", filepath)
            return str(filepath)
        except Exception as e:
            logger.warning("Failed to capture screenshot: %s", e)
            return None


async def _accept_dialog(dialog: "Dialog") -> None:
    await dialog.accept()
