from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tenderfetch.core.download.orchestrator import DownloadOrchestrator, assign_completions, wait_all_until
from tenderfetch.core.extract.base import AttachmentCandidate
from tenderfetch.core.portal.selectors import attribute_selector


class FakeDownload:
    def __init__(self, name: str, delay: float = 0.0):
        self.suggested_filename = name
        self.delay = delay

    async def save_as(self, path: Path) -> None:
        await asyncio.sleep(self.delay)
        Path(path).write_bytes(b"%PDF")


class FakePage:
    def __init__(self) -> None:
        self.listeners: list = []

    def on(self, event: str, handler) -> None:
        assert event == "download"
        self.listeners.append(handler)

    def remove_listener(self, event: str, handler) -> None:
        self.listeners.remove(handler)

    def emit(self, download: FakeDownload) -> None:
        for handler in list(self.listeners):
            handler(download)


class FakeFrame:
    """Clicking a trigger emits its download on the page shortly after."""

    def __init__(self, page: FakePage, downloads: dict[str, FakeDownload], broken: set[str] | None = None):
        self.page = page
        self.downloads = downloads
        self.broken = broken or set()
        self.clicked: list[str] = []

    async def wait_for_selector(self, selector: str):
        return object()

    async def click(self, selector: str) -> None:
        if selector in self.broken:
            raise RuntimeError("element detached")
        self.clicked.append(selector)
        download = self.downloads.get(selector)
        if download is not None:
            asyncio.get_running_loop().call_soon(self.page.emit, download)


def candidate(name: str, eligible: bool = True) -> AttachmentCandidate:
    return AttachmentCandidate(name, f"javascript:download('{name}')", eligible)


def trigger(name: str) -> str:
    return attribute_selector("a", "href", f"javascript:download('{name}')")


@pytest.fixture
def fast_floors(monkeypatch):
    monkeypatch.setattr(DownloadOrchestrator, "MIN_BATCH_TIMEOUT", 0.01)
    monkeypatch.setattr(DownloadOrchestrator, "FALLBACK_CLICK_DELAY", 0.01)


def test_all_downloads_complete(tmp_path, fast_floors):
    page = FakePage()
    frame = FakeFrame(page, {
        trigger("a.pdf"): FakeDownload("a.pdf"),
        trigger("b.pdf"): FakeDownload("b.pdf", delay=0.02),
    })
    orchestrator = DownloadOrchestrator(page, batch_timeout=2.0, click_delay=0.01)

    outcome = asyncio.run(orchestrator.download_all(
        frame,
        [candidate("a.pdf"), candidate("様式.docx", eligible=False), candidate("b.pdf")],
        tmp_path,
    ))

    assert outcome.downloaded == ["a.pdf", "b.pdf"]
    assert outcome.not_downloaded == ["様式.docx"]
    assert outcome.unconfirmed == []
    assert outcome.timed_out is False
    assert outcome.ok
    assert (tmp_path / "a.pdf").exists()
    assert (tmp_path / "b.pdf").exists()
    assert page.listeners == []


def test_shared_deadline_keeps_completed_downloads(tmp_path, fast_floors):
    page = FakePage()
    frame = FakeFrame(page, {
        trigger("a.pdf"): FakeDownload("a.pdf"),
        trigger("b.pdf"): FakeDownload("b.pdf"),
        trigger("c.pdf"): FakeDownload("c.pdf", delay=30),
    })
    orchestrator = DownloadOrchestrator(page, batch_timeout=0.3, click_delay=0.01)

    outcome = asyncio.run(orchestrator.download_all(
        frame,
        [candidate("a.pdf"), candidate("b.pdf"), candidate("c.pdf")],
        tmp_path,
    ))

    assert outcome.downloaded == ["a.pdf", "b.pdf"]
    assert outcome.unconfirmed == ["c.pdf"]
    assert outcome.timed_out is True
    assert not outcome.ok
    assert not (tmp_path / "c.pdf").exists()
    assert page.listeners == []


def test_lost_click_is_unconfirmed_without_stealing_other_downloads(tmp_path, fast_floors):
    page = FakePage()
    frame = FakeFrame(
        page,
        {trigger("b.pdf"): FakeDownload("b.pdf")},
        broken={trigger("a.pdf")},
    )
    orchestrator = DownloadOrchestrator(page, batch_timeout=1.0, click_delay=0.01)

    outcome = asyncio.run(orchestrator.download_all(
        frame, [candidate("a.pdf"), candidate("b.pdf")], tmp_path
    ))

    assert outcome.downloaded == ["b.pdf"]
    assert outcome.unconfirmed == ["a.pdf"]
    assert outcome.timed_out is False


def test_no_eligible_candidates_registers_nothing(tmp_path):
    page = FakePage()
    frame = FakeFrame(page, {})
    orchestrator = DownloadOrchestrator(page)

    outcome = asyncio.run(orchestrator.download_all(
        frame, [candidate("様式.docx", eligible=False)], tmp_path / "entity"
    ))

    assert outcome.downloaded == []
    assert outcome.not_downloaded == ["様式.docx"]
    assert frame.clicked == []
    assert not (tmp_path / "entity").exists()


def test_timing_floors_apply():
    orchestrator = DownloadOrchestrator(FakePage(), batch_timeout=1.0, click_delay=0)

    assert orchestrator.batch_timeout == DownloadOrchestrator.MIN_BATCH_TIMEOUT
    assert orchestrator.click_delay == DownloadOrchestrator.FALLBACK_CLICK_DELAY

    orchestrator = DownloadOrchestrator(FakePage(), batch_timeout=45.0, click_delay=2.5)
    assert orchestrator.batch_timeout == 45.0
    assert orchestrator.click_delay == 2.5


def test_wait_all_until_partitions_results():
    async def value(v):
        return v

    async def boom():
        raise ValueError("bad file")

    async def slow():
        await asyncio.sleep(30)

    async def scenario():
        return await wait_all_until({"a": value(1), "b": boom(), "c": slow()}, timeout=0.1)

    result = asyncio.run(scenario())

    assert result.completed == {"a": 1}
    assert isinstance(result.failed["b"], ValueError)
    assert result.pending == ["c"]
    assert result.timed_out is True


def test_wait_all_until_with_nothing_to_wait_for():
    result = asyncio.run(wait_all_until({}, timeout=1.0))

    assert result.completed == {}
    assert result.timed_out is False


class BrokenDownload(FakeDownload):
    async def save_as(self, path: Path) -> None:
        raise OSError("disk full")


def test_failed_save_is_unconfirmed(tmp_path, fast_floors):
    page = FakePage()
    frame = FakeFrame(page, {
        trigger("a.pdf"): BrokenDownload("a.pdf"),
        trigger("b.pdf"): FakeDownload("b.pdf"),
    })
    orchestrator = DownloadOrchestrator(page, batch_timeout=1.0, click_delay=0.01)

    outcome = asyncio.run(orchestrator.download_all(
        frame, [candidate("a.pdf"), candidate("b.pdf")], tmp_path
    ))

    assert outcome.downloaded == ["b.pdf"]
    assert outcome.unconfirmed == ["a.pdf"]
    assert outcome.timed_out is False


def test_click_without_download_does_not_shift_results(tmp_path, fast_floors):
    page = FakePage()
    frame = FakeFrame(page, {trigger("b.pdf"): FakeDownload("b.pdf")})
    orchestrator = DownloadOrchestrator(page, batch_timeout=0.3, click_delay=0.01)

    outcome = asyncio.run(orchestrator.download_all(
        frame, [candidate("a.pdf"), candidate("b.pdf")], tmp_path
    ))

    assert frame.clicked == [trigger("a.pdf"), trigger("b.pdf")]
    assert outcome.downloaded == ["b.pdf"]
    assert outcome.unconfirmed == ["a.pdf"]
    assert set(outcome.downloaded).isdisjoint(outcome.unconfirmed)
    assert outcome.timed_out is True
    assert (tmp_path / "b.pdf").exists()


def test_saved_names_are_matched_loosely(tmp_path, fast_floors):
    page = FakePage()
    frame = FakeFrame(page, {trigger("資料+A.pdf"): FakeDownload("資料 A.PDF")})
    orchestrator = DownloadOrchestrator(page, batch_timeout=0.3, click_delay=0.01)

    outcome = asyncio.run(orchestrator.download_all(
        frame, [candidate("図面.pdf"), candidate("資料+A.pdf")], tmp_path
    ))

    assert outcome.downloaded == ["資料 A.PDF"]
    assert outcome.unconfirmed == ["図面.pdf"]


def test_assign_completions_prefers_names_over_slots():
    names = ["a.pdf", "b.pdf", "c.pdf"]

    assert assign_completions(names, {0: "b.pdf", 1: "c.pdf"}) == {1: "b.pdf", 2: "c.pdf"}
    assert assign_completions(names, {0: "a (1).pdf"}) == {0: "a (1).pdf"}
    assert assign_completions(names, {1: "zzz.bin"}) == {1: "zzz.bin"}
    assert assign_completions(names, {0: "zzz.bin", 1: "a.pdf"}) == {0: "a.pdf", 1: "zzz.bin"}
