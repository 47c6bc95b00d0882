"""
Navigation walker for the portal's nested frameset.

The walker holds only the top-level page. Frames are looked up again from
the page after every transition, since the portal replaces frame documents
on each navigation and old handles go stale.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from tenderfetch.core.errors import ConnectivityError, MarkerNotFound, NavigationError
from tenderfetch.core.extract.base import Entity
from tenderfetch.core.extract.pages import list_entities

from . import selectors as sel

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Frame, Page

logger = logging.getLogger(__name__)


class WalkerState(str, Enum):
    """Where the walker currently stands in the portal."""

    START = "start"
    TOP_LOADED = "top_loaded"
    SEARCH_FORM_READY = "search_form_ready"
    RESULTS_LISTED = "results_listed"
    DETAIL_OPEN = "detail_open"


class ConnectStatus(str, Enum):
    """Outcome of loading the top page."""

    READY = "ready"
    UNAVAILABLE = "unavailable"  # maintenance banner shown


class NavigationWalker:
    """Drives the page from the top menu to each entity's detail page and back.

    Transitions:
        START -> TOP_LOADED -> SEARCH_FORM_READY -> RESULTS_LISTED
        RESULTS_LISTED <-> DETAIL_OPEN
    """

    def __init__(
        self,
        page: "Page",
        target_url: str,
        *,
        marker_timeout_ms: int = 30_000,
        settle_seconds: float = 3.0,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        """Initialize the walker.

        Args:
            page: Top-level Playwright page
            target_url: Portal top page
            marker_timeout_ms: Bounded wait for every marker selector
            settle_seconds: Pause after the result list frame appears
            log: Logger to report through
        """
        self.page = page
        self.target_url = target_url
        self.marker_timeout_ms = marker_timeout_ms
        self.settle_seconds = settle_seconds
        self.log = log or logger
        self._state = WalkerState.START

    @property
    def state(self) -> WalkerState:
        return self._state

    def _require(self, *allowed: WalkerState, action: str) -> None:
        if self._state not in allowed:
            raise NavigationError(
                f"Cannot {action} while {self._state.value}; "
                f"expected {' or '.join(s.value for s in allowed)}"
            )

    # -------------------------------------------------------------------------
    # Frame and marker helpers
    # -------------------------------------------------------------------------

    async def _wait_marker(
        self,
        scope: "Page | Frame",
        selector: str,
        *,
        state: str = "attached",
    ) -> "ElementHandle":
        try:
            handle = await scope.wait_for_selector(
                selector, state=state, timeout=self.marker_timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise MarkerNotFound(selector, url=getattr(scope, "url", None), cause=e) from e
        if handle is None:
            raise MarkerNotFound(selector, url=getattr(scope, "url", None))
        return handle

    async def _content_frame(self, scope: "Page | Frame", selector: str) -> "Frame":
        handle = await self._wait_marker(scope, selector)
        frame = await handle.content_frame()
        if frame is None:
            raise NavigationError(f"{selector} has no content frame")
        return frame

    async def _outer_frame(self) -> "Frame":
        return await self._content_frame(self.page, sel.OUTER_FRAME)

    async def _list_frame(self) -> "Frame":
        outer = await self._outer_frame()
        return await self._content_frame(outer, sel.LIST_FRAME)

    async def _click_and_wait(
        self,
        scope: "Page | Frame",
        selector: str,
        navigating: "Page | Frame | None" = None,
    ) -> None:
        """Click ``selector`` in ``scope`` and wait for ``navigating`` to load."""
        navigating = navigating or scope
        try:
            async with navigating.expect_navigation():
                await scope.click(selector)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Navigation after clicking {selector} timed out", cause=e) from e

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def connect(self) -> ConnectStatus:
        """Load the top page.

        Returns:
            READY, or UNAVAILABLE when the portal shows its maintenance banner

        Raises:
            ConnectivityError: If the page cannot be loaded
        """
        self._state = WalkerState.START
        try:
            response = await self.page.goto(self.target_url, wait_until="domcontentloaded")
        except Exception as e:
            raise ConnectivityError(
                f"Cannot reach {self.target_url}: {e}",
                url=self.target_url,
                cause=e,
            ) from e

        if response is None or not response.ok:
            status = response.status if response is not None else None
            raise ConnectivityError(
                f"Top page answered with status {status}",
                url=self.target_url,
                status_code=status,
            )

        if sel.MAINTENANCE_BANNER in await self.page.content():
            self.log.warning("Portal is under maintenance")
            return ConnectStatus.UNAVAILABLE

        self._state = WalkerState.TOP_LOADED
        self.log.info("Connected to %s", self.target_url)
        return ConnectStatus.READY

    async def open_search_form(self) -> None:
        """Open the order search form inside the outer frame."""
        self._require(WalkerState.TOP_LOADED, action="open the search form")

        await self._click_and_wait(self.page, sel.TOP_MENU_LINK)
        outer = await self._outer_frame()
        await self._click_and_wait(outer, sel.SEARCH_MENU_LINK)

        outer = await self._outer_frame()
        await self._wait_marker(outer, sel.PAGE_SIZE_SELECT)

        self._state = WalkerState.SEARCH_FORM_READY
        self.log.info("Search form ready")

    async def search(self, name_filter: str, page_size: int) -> list[Entity]:
        """Submit the search form and read the result list.

        Args:
            name_filter: Text for the name field
            page_size: Rows per page, one of 10, 25, 50, 100

        Returns:
            Entities listed on the first result page
        """
        self._require(WalkerState.SEARCH_FORM_READY, action="search")
        option = sel.PAGE_SIZE_OPTIONS.get(page_size, sel.PAGE_SIZE_OPTIONS[100])

        outer = await self._outer_frame()
        await self._wait_marker(outer, sel.PAGE_SIZE_SELECT)
        await outer.select_option(sel.PAGE_SIZE_SELECT, option)
        await outer.fill(sel.NAME_FIELD, name_filter)
        await self._click_and_wait(outer, sel.SEARCH_BUTTON)

        outer = await self._outer_frame()
        await self._wait_marker(outer, sel.RESULT_TABLE_MARKER, state="visible")
        await self._wait_marker(outer, sel.LIST_FRAME, state="visible")
        self._state = WalkerState.RESULTS_LISTED

        if self.settle_seconds > 0:
            await asyncio.sleep(self.settle_seconds)

        entities = await self.list_entities()
        self.log.info("Search '%s' listed %d entities", name_filter, len(entities))
        return entities

    async def list_entities(self) -> list[Entity]:
        """Read the result list currently shown."""
        self._require(WalkerState.RESULTS_LISTED, action="list entities")
        frame = await self._list_frame()
        return list_entities(await frame.content())

    async def open_detail(self, entity: Entity) -> None:
        """Open an entity's detail page from the result list."""
        self._require(WalkerState.RESULTS_LISTED, action="open a detail page")

        outer = await self._outer_frame()
        inner = await self._content_frame(outer, sel.LIST_FRAME)
        link = sel.attribute_selector("a", "href", entity.detail_link_token)
        await self._wait_marker(inner, link)
        await self._click_and_wait(inner, link, navigating=outer)

        self._state = WalkerState.DETAIL_OPEN
        self.log.debug("Opened detail page of %s", entity.entity_id)

    async def detail_frame(self) -> "Frame":
        """Frame holding the open detail page (attachments and info table)."""
        self._require(WalkerState.DETAIL_OPEN, action="read the detail page")
        return await self._outer_frame()

    async def back(self) -> None:
        """Return from a detail page to the result list."""
        self._require(WalkerState.DETAIL_OPEN, action="go back")

        outer = await self._outer_frame()
        await self._wait_marker(outer, sel.BACK_BUTTON)
        await self._click_and_wait(outer, sel.BACK_BUTTON)

        self._state = WalkerState.RESULTS_LISTED
