"""
Download orchestrator.

Triggers an entity's eligible attachment downloads one at a time, lets the
completions run concurrently, and waits for all of them against a single
shared deadline. Whatever completed before the deadline is kept.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Hashable

from tenderfetch.core.errors import DownloadError
from tenderfetch.core.extract.base import AttachmentCandidate
from tenderfetch.core.extract.pages import strip_whitespace
from tenderfetch.core.portal.selectors import attribute_selector

if TYPE_CHECKING:
    from playwright.async_api import Download, Frame, Page

logger = logging.getLogger(__name__)


# =============================================================================
# Aggregate wait
# =============================================================================


@dataclass
class BatchResult:
    """Outcome of waiting on a group of tasks until a deadline."""

    completed: dict[Hashable, Any] = field(default_factory=dict)
    failed: dict[Hashable, BaseException] = field(default_factory=dict)
    pending: list[Hashable] = field(default_factory=list)
    timed_out: bool = False


async def wait_all_until(
    tasks: dict[Hashable, Awaitable[Any]],
    timeout: float,
) -> BatchResult:
    """Wait for every task or until ``timeout`` seconds pass, whichever is first.

    Results of tasks that finished in time are kept even when the deadline
    fires. Tasks still running at the deadline are cancelled and reported
    as pending.

    Args:
        tasks: Mapping of key to task/coroutine
        timeout: Shared deadline in seconds

    Returns:
        BatchResult keyed like ``tasks``
    """
    result = BatchResult()
    if not tasks:
        return result

    futures = {asyncio.ensure_future(aw): key for key, aw in tasks.items()}
    done, pending = await asyncio.wait(list(futures), timeout=timeout)

    for future in done:
        key = futures[future]
        if future.cancelled():
            result.failed[key] = asyncio.CancelledError()
        elif future.exception() is not None:
            result.failed[key] = future.exception()
        else:
            result.completed[key] = future.result()

    if pending:
        result.timed_out = True
        for future in pending:
            future.cancel()
            result.pending.append(futures[future])
        await asyncio.gather(*pending, return_exceptions=True)

    return result


# =============================================================================
# Download dispatch
# =============================================================================


class DownloadDispatcher:
    """Hands each browser ``download`` event to the oldest waiting trigger.

    Triggers are clicked in order and spaced apart, so download events
    usually arrive in trigger order. A click that never produces a download
    shifts later events one slot early; ``assign_completions`` repairs that
    by file name once the batch is over.
    """

    def __init__(self, log: logging.Logger | logging.LoggerAdapter | None = None):
        self._waiting: deque[asyncio.Future] = deque()
        self.log = log or logger

    def expect(self) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._waiting.append(future)
        return future

    def withdraw(self, future: asyncio.Future) -> None:
        try:
            self._waiting.remove(future)
        except ValueError:
            pass
        future.cancel()

    def __call__(self, download: "Download") -> None:
        while self._waiting:
            future = self._waiting.popleft()
            if not future.done():
                future.set_result(download)
                return
        self.log.warning("Unexpected download ignored: %s", download.suggested_filename)


def _name_key(name: str) -> str:
    stem = PurePath(name.strip()).stem
    return strip_whitespace(stem).replace("+", "").casefold()


def assign_completions(names: list[str], completed: dict[int, str]) -> dict[int, str]:
    """Pair saved files with the candidates they belong to.

    A saved file goes to the candidate with the same name, then to one whose
    name (without extension, spaces or ``+``) equals or prefixes its own,
    and only then to the trigger slot that received it. When that slot is
    already taken it goes to the first candidate still unmatched.

    Args:
        names: Eligible candidate names in trigger order
        completed: Trigger slot -> saved file name

    Returns:
        Candidate index -> saved file name
    """
    assigned: dict[int, str] = {}
    remaining = dict(sorted(completed.items()))
    keys = [_name_key(name) for name in names]

    def claim(matches: Callable[[int, str], bool]) -> None:
        for slot, saved in list(remaining.items()):
            for index in range(len(names)):
                if index not in assigned and matches(index, saved):
                    assigned[index] = saved
                    del remaining[slot]
                    break

    def prefixes(index: int, saved: str) -> bool:
        key, other = keys[index], _name_key(saved)
        return bool(key and other) and (key.startswith(other) or other.startswith(key))

    claim(lambda index, saved: names[index] == saved)
    claim(lambda index, saved: bool(keys[index]) and keys[index] == _name_key(saved))
    claim(prefixes)

    for slot, saved in remaining.items():
        if slot not in assigned:
            assigned[slot] = saved
        else:
            assigned[next(i for i in range(len(names)) if i not in assigned)] = saved

    return assigned


# =============================================================================
# Orchestrator
# =============================================================================


@dataclass
class DownloadOutcome:
    """Per-entity download result."""

    downloaded: list[str] = field(default_factory=list)
    not_downloaded: list[str] = field(default_factory=list)
    unconfirmed: list[str] = field(default_factory=list)
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and not self.unconfirmed


class DownloadOrchestrator:
    """Serial triggers, concurrent completions, one shared deadline."""

    MIN_BATCH_TIMEOUT = 10.0  # seconds
    FALLBACK_CLICK_DELAY = 1.0  # seconds

    def __init__(
        self,
        page: "Page",
        batch_timeout: float = 30.0,
        click_delay: float = 3.0,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            page: Top-level page that emits ``download`` events
            batch_timeout: Shared deadline for one entity's downloads, floored
            click_delay: Pause between triggers; non-positive values use a fallback
            log: Logger to report through
        """
        self.page = page
        self.log = log or logger

        if batch_timeout < self.MIN_BATCH_TIMEOUT:
            self.log.warning(
                "Batch timeout %.1fs raised to the %.1fs minimum",
                batch_timeout,
                self.MIN_BATCH_TIMEOUT,
            )
            batch_timeout = self.MIN_BATCH_TIMEOUT
        if click_delay <= 0:
            self.log.warning("Click delay %.1fs replaced by %.1fs", click_delay, self.FALLBACK_CLICK_DELAY)
            click_delay = self.FALLBACK_CLICK_DELAY

        self.batch_timeout = batch_timeout
        self.click_delay = click_delay

    async def download_all(
        self,
        frame: "Frame",
        candidates: list[AttachmentCandidate],
        destination: Path,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> DownloadOutcome:
        """Download every eligible candidate into ``destination``.

        Args:
            frame: Frame holding the download anchors
            candidates: Attachment candidates in page order
            destination: Entity folder
            log: Logger for this entity (defaults to the orchestrator's)

        Returns:
            DownloadOutcome; ineligible names go to ``not_downloaded``,
            confirmed saves to ``downloaded``, everything else to ``unconfirmed``
        """
        log = log or self.log
        outcome = DownloadOutcome()
        eligible = [c for c in candidates if c.eligible]
        outcome.not_downloaded = [c.file_name for c in candidates if not c.eligible]

        if not eligible:
            log.info("No eligible attachments")
            return outcome

        log.info("%d eligible attachment(s)", len(eligible))
        destination.mkdir(parents=True, exist_ok=True)

        dispatcher = DownloadDispatcher(log)
        self.page.on("download", dispatcher)
        tasks: dict[int, asyncio.Task] = {}

        try:
            for index, candidate in enumerate(eligible):
                selector = attribute_selector("a", "href", candidate.link_token)
                try:
                    await frame.wait_for_selector(selector)
                except Exception as e:
                    log.error("Trigger for %s not found: %s", candidate.file_name, e)
                    continue

                started = dispatcher.expect()
                try:
                    await frame.click(selector)
                except Exception as e:
                    dispatcher.withdraw(started)
                    log.error("Click on %s failed: %s", candidate.file_name, e)
                    continue

                tasks[index] = asyncio.create_task(self._complete(started, destination))
                await asyncio.sleep(self.click_delay)

            batch = await wait_all_until(tasks, self.batch_timeout)
        finally:
            self.page.remove_listener("download", dispatcher)

        for slot, error in batch.failed.items():
            log.error("Download for trigger %s failed: %s", eligible[slot].file_name, error)

        assigned = assign_completions([c.file_name for c in eligible], batch.completed)
        for index, candidate in enumerate(eligible):
            saved = assigned.get(index)
            if saved is None:
                outcome.unconfirmed.append(candidate.file_name)
            elif saved in outcome.downloaded:
                log.warning("%s was saved twice; %s left unconfirmed", saved, candidate.file_name)
                outcome.unconfirmed.append(candidate.file_name)
            else:
                outcome.downloaded.append(saved)
        confirmed = set(outcome.downloaded)
        outcome.unconfirmed = [name for name in outcome.unconfirmed if name not in confirmed]

        if batch.timed_out:
            outcome.timed_out = True
            log.error(
                "Download batch timed out after %.1fs; %d of %d confirmed",
                self.batch_timeout,
                len(outcome.downloaded),
                len(eligible),
            )
        else:
            log.info("Downloaded %d of %d attachment(s)", len(outcome.downloaded), len(eligible))

        return outcome

    async def _complete(self, started: asyncio.Future, destination: Path) -> str:
        download: Download = await started
        name = download.suggested_filename
        try:
            await download.save_as(destination / name)
        except Exception as e:
            raise DownloadError(f"Saving {name} failed: {e}", cause=e) from e
        return name
