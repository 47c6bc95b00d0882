"""
Sync runner.

Coordinates a full run: connect → search → filter against the ledger →
per entity (detail → download → record → mirror → back) → persist →
reconcile → prune → notify.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from tenderfetch.core.browser.session import BrowserSession
from tenderfetch.core.config.models import AppConfig
from tenderfetch.core.download.orchestrator import DownloadOrchestrator
from tenderfetch.core.errors import MirrorError
from tenderfetch.core.extract.base import Entity
from tenderfetch.core.extract.pages import list_attachments, read_detail_table
from tenderfetch.core.logging import ContextualLogger, get_logger
from tenderfetch.core.mirror.sync import MirrorSummary, MirrorSync
from tenderfetch.core.notify.base import Notifier
from tenderfetch.core.notify.messages import (
    build_error_message,
    build_mirror_message,
    build_run_message,
)
from tenderfetch.core.notify.transports import build_notifier
from tenderfetch.core.portal.walker import ConnectStatus, NavigationWalker, WalkerState
from tenderfetch.persistence.ledger import RunLedger
from tenderfetch.persistence.models import FailedDownload, LedgerRow
from tenderfetch.persistence.store import EntityStore

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Final state of a sync run."""

    COMPLETED = "completed"
    PARTIAL = "partial"  # some entity failed or a download batch timed out
    NOTHING_NEW = "nothing_new"
    SERVICE_UNAVAILABLE = "service_unavailable"


@dataclass
class EntityFailure:
    """An entity whose processing raised."""

    entity_id: str
    entity_name: str
    error: str


@dataclass
class RunReport:
    """Statistics and outcomes of a sync run."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: RunStatus = RunStatus.COMPLETED

    entities_listed: int = 0
    entities_selected: int = 0
    processed: list[LedgerRow] = field(default_factory=list)
    failures: list[EntityFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    timed_out: list[str] = field(default_factory=list)

    failed_downloads: list[FailedDownload] = field(default_factory=list)
    pruned: list[Path] = field(default_factory=list)
    mirror: MirrorSummary | None = None
    ledger_saved: bool = True
    notified: bool = False

    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def files_downloaded(self) -> int:
        return sum(len(row.downloaded) for row in self.processed)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "entities_listed": self.entities_listed,
            "entities_selected": self.entities_selected,
            "entities_processed": len(self.processed),
            "entities_failed": len(self.failures),
            "entities_skipped": len(self.skipped),
            "files_downloaded": self.files_downloaded,
            "batches_timed_out": len(self.timed_out),
            "failed_downloads": len(self.failed_downloads),
            "folders_pruned": len(self.pruned),
            "ledger_saved": self.ledger_saved,
            "notified": self.notified,
            "duration_seconds": self.duration_seconds,
        }


class SyncRunner:
    """Runs one crawl-and-fetch pass against the portal."""

    def __init__(
        self,
        config: AppConfig,
        walker: NavigationWalker,
        downloader: DownloadOrchestrator,
        ledger: RunLedger,
        store: EntityStore,
        notifier: Notifier,
        *,
        mirror: MirrorSync | None = None,
        on_entity_error: Callable[[Entity], Awaitable[Any]] | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        """Initialize the runner.

        Args:
            config: Application configuration
            walker: Navigation walker bound to the browser page
            downloader: Download orchestrator bound to the same page
            ledger: Loaded run ledger
            store: Entity folder store
            notifier: Receives exactly one summary per run
            mirror: Optional mirror sync run after each entity is recorded
            on_entity_error: Hook awaited when an entity fails (e.g. screenshot)
            now: Clock used for pruning
        """
        self.config = config
        self.walker = walker
        self.downloader = downloader
        self.ledger = ledger
        self.store = store
        self.notifier = notifier
        self.mirror = mirror
        self.on_entity_error = on_entity_error
        self.now = now or (lambda: datetime.now(timezone.utc))

    def select(self, entities: list[Entity]) -> list[Entity]:
        """Entities to process: flagged new (when configured) and not yet in the ledger."""
        selected: list[Entity] = []
        seen: set[str] = set()
        for entity in entities:
            if self.config.new_only and not entity.is_new:
                continue
            if entity.entity_id in seen or self.ledger.is_seen(entity.entity_id):
                continue
            seen.add(entity.entity_id)
            selected.append(entity)
        return selected

    async def run(self) -> RunReport:
        """Execute a complete run.

        Returns:
            RunReport describing the run

        Raises:
            ConnectivityError: If the portal cannot be reached
        """
        report = RunReport()
        log = ContextualLogger(get_logger("runner"), run_id=report.run_id)
        log.info("Run started (filter=%r, new_only=%s)", self.config.name_filter, self.config.new_only)

        status = await self.walker.connect()
        if status is ConnectStatus.UNAVAILABLE:
            report.status = RunStatus.SERVICE_UNAVAILABLE
            return await self._finish(report, log)

        await self.walker.open_search_form()
        entities = await self.walker.search(self.config.name_filter, self.config.page_size)
        selected = self.select(entities)
        report.entities_listed = len(entities)
        report.entities_selected = len(selected)
        log.info("%d listed, %d to process", len(entities), len(selected))

        if not selected:
            report.status = RunStatus.NOTHING_NEW
        else:
            if self.mirror is not None:
                report.mirror = MirrorSummary()
            await self._process_all(selected, report, log)
            report.ledger_saved = self.ledger.save()

        await self._housekeeping(report, log)
        return await self._finish(report, log)

    async def _process_all(
        self,
        entities: list[Entity],
        report: RunReport,
        log: ContextualLogger,
    ) -> None:
        for position, entity in enumerate(entities):
            entity_log = log.with_context(entity_id=entity.entity_id, entity_name=entity.name)
            try:
                await self._process(entity, report, entity_log)
            except Exception as e:
                entity_log.error("Processing failed: %s", e, exc_info=True)
                report.failures.append(EntityFailure(entity.entity_id, entity.name, str(e)))
                if self.on_entity_error is not None:
                    await self.on_entity_error(entity)
                if not await self._recover(entity_log):
                    report.skipped = [f"{rest.name}({rest.entity_id})" for rest in entities[position + 1:]]
                    log.error("Session lost; %d entities left unprocessed", len(report.skipped))
                    break

        if report.failures or report.timed_out or report.skipped:
            report.status = RunStatus.PARTIAL

    async def _process(self, entity: Entity, report: RunReport, log: ContextualLogger) -> None:
        await self.walker.open_detail(entity)
        frame = await self.walker.detail_frame()
        html = await frame.content()

        candidates = list_attachments(html, self.config.attachment_keywords)
        details = read_detail_table(html)
        destination = self.store.ensure_folder(entity.entity_id, entity.name, entity.section_name)

        outcome = await self.downloader.download_all(frame, candidates, destination, log=log)
        if outcome.timed_out:
            report.timed_out.append(entity.entity_id)

        row = LedgerRow(
            entity_id=entity.entity_id,
            entity_name=entity.name,
            section_name=entity.section_name,
            release_date=entity.release_date,
            downloaded=outcome.downloaded,
            not_downloaded=outcome.not_downloaded,
            unconfirmed=outcome.unconfirmed,
            details=details,
        )
        if not self.ledger.record(row):
            log.warning("Ledger checkpoint failed; row kept in memory")
        report.processed.append(row)

        if self.mirror is not None:
            await self._mirror_row(row, report, log)

        await self.walker.back()

    async def _mirror_row(self, row: LedgerRow, report: RunReport, log: ContextualLogger) -> None:
        try:
            results, sheet_written = await self.mirror.sync_row(row)
        except Exception as e:
            log.error("Mirror sync failed, row left pending: %s", e)
            return
        self.ledger.attach_upload_results(row.entity_id, results, sheet_written=sheet_written)
        if report.mirror is not None:
            report.mirror.add(row, results)
            if not sheet_written:
                report.mirror.sheet_rows_failed += 1

    async def _recover(self, log: ContextualLogger) -> bool:
        """Bring the walker back to the result list after a failure."""
        if self.walker.state is WalkerState.RESULTS_LISTED:
            return True
        if self.walker.state is not WalkerState.DETAIL_OPEN:
            return False
        try:
            await self.walker.back()
        except Exception as e:
            log.error("Could not return to the result list: %s", e)
            return False
        return True

    async def _housekeeping(self, report: RunReport, log: ContextualLogger) -> None:
        """Reconcile and prune. Filesystem errors here never cost the summary."""
        if self.config.file_check:
            try:
                report.failed_downloads = self.ledger.reconcile(self.store)
            except OSError as e:
                log.error("File check failed: %s", e)

        retention = self.config.retention
        if retention.enabled:
            try:
                report.pruned = self.ledger.prune(
                    self.store,
                    timedelta(days=retention.retention_days),
                    now=self.now(),
                )
            except OSError as e:
                log.error("Pruning %s failed: %s", self.store.data_dir, e)
            if report.pruned:
                log.info("Pruned %d folder(s) older than %s day(s)", len(report.pruned), retention.retention_days)

    async def _finish(self, report: RunReport, log: ContextualLogger) -> RunReport:
        report.finished_at = datetime.now()
        subject, text = build_run_message(report, self.config.notification.subject_prefix)
        report.notified = await self.notifier.send(subject, text)
        log.info("Run finished: %s", report.to_dict())
        return report


# =============================================================================
# Entry points
# =============================================================================


def build_mirror(config: AppConfig, store: EntityStore) -> MirrorSync | None:
    """Mirror sync for the configured Google account, or None when disabled.

    Raises:
        MirrorError: If the mirror is enabled but the client cannot be built
    """
    if not config.mirror.enabled:
        return None
    if not config.mirror.service_account_key_path:
        raise MirrorError("Mirror enabled without a service account key")

    from tenderfetch.core.mirror.drive import GoogleDriveMirror

    client = GoogleDriveMirror.from_service_account(
        config.mirror.service_account_key_path,
        config.mirror.folder_id,
    )
    return MirrorSync(client, store, config.mirror)


async def run_sync(config: AppConfig) -> RunReport:
    """Open a browser and run a full sync with the given configuration."""
    ledger = RunLedger.open(config.paths.ledger_file)
    store = EntityStore(config.paths.data_dir)
    notifier = build_notifier(config.notification)

    try:
        mirror = build_mirror(config, store)
    except MirrorError as e:
        logger.error("Mirror disabled for this run: %s", e)
        mirror = None

    async with BrowserSession(config.browser, config.paths.snapshot_dir) as session:
        walker = NavigationWalker(
            session.page,
            config.target_url,
            marker_timeout_ms=config.browser.marker_timeout_ms,
            settle_seconds=config.browser.results_settle_seconds,
        )
        downloader = DownloadOrchestrator(
            session.page,
            batch_timeout=config.batch_timeout_seconds,
            click_delay=config.click_delay_seconds,
        )

        async def capture(entity: Entity) -> None:
            await session.capture_screenshot(f"entity_{entity.entity_id}")

        runner = SyncRunner(
            config,
            walker,
            downloader,
            ledger,
            store,
            notifier,
            mirror=mirror,
            on_entity_error=capture,
        )
        return await runner.run()


async def run_mirror_pass(config: AppConfig) -> MirrorSummary:
    """Upload every ledger row still pending, without touching the portal.

    Raises:
        MirrorError: If the mirror is disabled or cannot be set up
    """
    store = EntityStore(config.paths.data_dir)
    mirror = build_mirror(config, store)
    if mirror is None:
        raise MirrorError("Mirror is disabled in the configuration")

    ledger = RunLedger.open(config.paths.ledger_file)
    summary = await mirror.sync_pending(ledger)
    if not ledger.save():
        raise MirrorError(f"Mirror results could not be written to {ledger.path}")

    subject, text = build_mirror_message(summary, config.notification.subject_prefix)
    await build_notifier(config.notification).send(subject, text)
    return summary


async def notify_failure(config: AppConfig, title: str, error: BaseException) -> bool:
    """Best-effort error notification for a run that could not finish."""
    subject, text = build_error_message(
        title,
        error,
        config.notification.subject_prefix,
        settings=config.snapshot(),
    )
    return await build_notifier(config.notification).send(subject, text)
