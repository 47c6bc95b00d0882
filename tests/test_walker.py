from __future__ import annotations

import asyncio

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from tenderfetch.core.errors import ConnectivityError, MarkerNotFound, NavigationError
from tenderfetch.core.extract.base import Entity
from tenderfetch.core.portal import selectors as sel
from tenderfetch.core.portal.walker import ConnectStatus, NavigationWalker, WalkerState

RESULT_LIST = """
<table>
  <tr>
    <td><img src="new.gif">2024/04/01</td>
    <td><a href="javascript:detail('001')">道路設計</a></td>
    <td>001</td><td></td><td></td><td></td><td></td><td>土木課</td>
  </tr>
</table>
"""


class FakeResponse:
    def __init__(self, status: int = 200):
        self.status = status
        self.ok = 200 <= status < 400


class FakeHandle:
    def __init__(self, frame=None):
        self.frame = frame

    async def content_frame(self):
        return self.frame


class FakeNavigation:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeFrame:
    def __init__(self, name: str, html: str = "", children: dict | None = None):
        self.url = f"https://portal.example/{name}"
        self.html = html
        self.children = children or {}
        self.missing: set[str] = set()
        self.clicks: list[str] = []
        self.filled: dict[str, str] = {}
        self.selected: dict[str, str] = {}
        self.navigations = 0

    async def wait_for_selector(self, selector, state="attached", timeout=None):
        if selector in self.missing:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return FakeHandle(self.children.get(selector))

    def expect_navigation(self):
        self.navigations += 1
        return FakeNavigation()

    async def click(self, selector):
        self.clicks.append(selector)

    async def fill(self, selector, value):
        self.filled[selector] = value

    async def select_option(self, selector, value):
        self.selected[selector] = value

    async def content(self):
        return self.html


class FakePage(FakeFrame):
    def __init__(self, response=None, html: str = "<html>top</html>"):
        self.inner = FakeFrame("list", RESULT_LIST)
        self.outer = FakeFrame("right", children={sel.LIST_FRAME: self.inner})
        super().__init__("top", html, children={sel.OUTER_FRAME: self.outer})
        self.response = FakeResponse() if response is None else response
        self.visited: list[str] = []

    async def goto(self, url, wait_until=None):
        self.visited.append(url)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def make_walker(page: FakePage) -> NavigationWalker:
    return NavigationWalker(page, "https://portal.example/top", marker_timeout_ms=100, settle_seconds=0)


def test_connect_ready():
    page = FakePage()
    walker = make_walker(page)

    assert asyncio.run(walker.connect()) is ConnectStatus.READY
    assert walker.state is WalkerState.TOP_LOADED
    assert page.visited == ["https://portal.example/top"]


def test_connect_reports_maintenance():
    page = FakePage(html=f"<html><body>{sel.MAINTENANCE_BANNER}</body></html>")
    walker = make_walker(page)

    assert asyncio.run(walker.connect()) is ConnectStatus.UNAVAILABLE
    assert walker.state is WalkerState.START


@pytest.mark.parametrize("response", [FakeResponse(503), OSError("connection refused")])
def test_connect_failure_is_a_connectivity_error(response):
    walker = make_walker(FakePage(response=response))

    with pytest.raises(ConnectivityError):
        asyncio.run(walker.connect())


def test_transitions_out_of_order_are_rejected():
    walker = make_walker(FakePage())

    with pytest.raises(NavigationError):
        asyncio.run(walker.search("設計", 100))
    with pytest.raises(NavigationError):
        asyncio.run(walker.back())


def test_search_fills_form_and_lists_entities():
    page = FakePage()
    walker = make_walker(page)

    async def scenario():
        await walker.connect()
        await walker.open_search_form()
        return await walker.search("設計", 50)

    entities = asyncio.run(scenario())

    assert walker.state is WalkerState.RESULTS_LISTED
    assert page.clicks == [sel.TOP_MENU_LINK]
    assert page.outer.clicks == [sel.SEARCH_MENU_LINK, sel.SEARCH_BUTTON]
    assert page.outer.selected == {sel.PAGE_SIZE_SELECT: "030"}
    assert page.outer.filled == {sel.NAME_FIELD: "設計"}
    assert [e.entity_id for e in entities] == ["001"]
    assert entities[0].is_new is True


def test_missing_marker_raises_and_keeps_state():
    page = FakePage()
    page.outer.missing.add(sel.PAGE_SIZE_SELECT)
    walker = make_walker(page)

    async def scenario():
        await walker.connect()
        await walker.open_search_form()

    with pytest.raises(MarkerNotFound) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.selector == sel.PAGE_SIZE_SELECT
    assert walker.state is WalkerState.TOP_LOADED


def test_detail_and_back_use_fresh_frames():
    page = FakePage()
    walker = make_walker(page)
    entity = Entity("001", "道路設計", "土木課", "2024/04/01", "javascript:detail('001')", True)

    async def scenario():
        await walker.connect()
        await walker.open_search_form()
        await walker.search("設計", 100)
        await walker.open_detail(entity)

        # the portal swaps the outer frame's document on navigation
        detail = FakeFrame("detail")
        page.children[sel.OUTER_FRAME] = detail
        frame = await walker.detail_frame()
        await walker.back()
        return detail, frame

    detail, frame = asyncio.run(scenario())

    assert page.inner.clicks == [sel.attribute_selector("a", "href", "javascript:detail('001')")]
    assert frame is detail
    assert detail.clicks == [sel.BACK_BUTTON]
    assert walker.state is WalkerState.RESULTS_LISTED


def test_frame_without_document_is_a_navigation_error():
    page = FakePage()
    page.children[sel.OUTER_FRAME] = None
    walker = make_walker(page)

    async def scenario():
        await walker.connect()
        await walker.open_search_form()

    with pytest.raises(NavigationError):
        asyncio.run(scenario())
