"""
Mirror synchronization of ledger rows.

Uploads each row's downloaded files that are not yet mirrored and upserts
its spreadsheet row. The mirror client is blocking, so calls run in a worker
thread one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from tenderfetch.core.config.models import MirrorConfig
from tenderfetch.persistence.ledger import RunLedger
from tenderfetch.persistence.models import LedgerRow, UploadResult, UploadStatus
from tenderfetch.persistence.store import EntityStore, folder_name

from .base import MirrorClient, build_sheet_row

logger = logging.getLogger(__name__)

FOLDER_FAILURE = "Failed to create entity folder"


def failed_results(names: list[str], error: str) -> list[UploadResult]:
    return [UploadResult(file_name=name, status=UploadStatus.FAILED, error=error) for name in names]


@dataclass
class MirrorSummary:
    """Totals of a mirror pass."""

    entities: int = 0
    uploaded: int = 0
    failed: int = 0
    sheet_rows_failed: int = 0
    failures: list[str] = field(default_factory=list)

    def add(self, row: LedgerRow, results: list[UploadResult]) -> None:
        self.entities += 1
        for result in results:
            if result.ok:
                self.uploaded += 1
            else:
                self.failed += 1
                self.failures.append(f"{row.entity_id}/{result.file_name}: {result.error}")


class MirrorSync:
    """Pushes ledger rows to the remote mirror."""

    def __init__(
        self,
        client: MirrorClient,
        store: EntityStore,
        config: MirrorConfig,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.client = client
        self.store = store
        self.config = config
        self.log = log or logger

    async def sync_row(self, row: LedgerRow) -> tuple[list[UploadResult], bool]:
        """Mirror one ledger row.

        Files already uploaded successfully are skipped, so a retry only
        re-sends what failed before. A client error on one call becomes a
        failed result for that call and never stops the rest of the row.

        Returns:
            Upload results for the files attempted, and whether the
            spreadsheet row was written (True when no spreadsheet is set)
        """
        already = row.uploaded_files()
        pending = [name for name in row.downloaded if name not in already]
        local_folder = self.store.find_folder(row.entity_id) or self.store.folder_for(
            row.entity_id, row.entity_name, row.section_name
        )

        try:
            remote_folder = await asyncio.to_thread(
                self.client.create_folder,
                folder_name(row.entity_id, row.entity_name, row.section_name),
                self.config.folder_id,
            )
        except Exception as e:
            self.log.error("Remote folder for %s failed: %s", row.entity_id, e)
            remote_folder = None

        results: list[UploadResult] = []
        if remote_folder is None:
            results = failed_results(pending, FOLDER_FAILURE)
        else:
            for name in pending:
                try:
                    result = await asyncio.to_thread(
                        self.client.upload_file, local_folder / name, remote_folder
                    )
                except Exception as e:
                    self.log.error("Upload of %s/%s failed: %s", row.entity_id, name, e)
                    result = UploadResult(file_name=name, status=UploadStatus.FAILED, error=str(e))
                results.append(result)

        sheet_written = True
        if self.config.spreadsheet_id:
            values, key_index = build_sheet_row(
                row,
                self.config.sheet_columns,
                self.config.key_column_title,
                self.client.folder_url(remote_folder) if remote_folder else None,
            )
            try:
                sheet_written = await asyncio.to_thread(
                    self.client.write_row,
                    self.config.spreadsheet_id,
                    self.config.sheet_name,
                    key_index,
                    row.entity_id,
                    values,
                )
            except Exception as e:
                self.log.error("Sheet row for %s failed: %s", row.entity_id, e)
                sheet_written = False

        failed = sum(1 for r in results if not r.ok)
        self.log.info(
            "Mirrored %s: %d uploaded, %d failed%s",
            row.entity_id,
            len(results) - failed,
            failed,
            "" if sheet_written else ", sheet row not written",
        )
        return results, sheet_written

    async def sync_pending(self, ledger: RunLedger) -> MirrorSummary:
        """Mirror every row still pending and record the results in the ledger.

        A row that fails outright gets failed results for its pending files
        and stays pending; the remaining rows are still mirrored.
        """
        summary = MirrorSummary()
        rows = ledger.pending_sync()
        self.log.info("%d ledger row(s) pending mirror sync", len(rows))

        for row in rows:
            try:
                results, sheet_written = await self.sync_row(row)
            except Exception as e:
                self.log.error("Mirror sync of %s failed: %s", row.entity_id, e, exc_info=True)
                already = row.uploaded_files()
                results = failed_results([n for n in row.downloaded if n not in already], str(e))
                sheet_written = not self.config.spreadsheet_id

            ledger.attach_upload_results(row.entity_id, results, sheet_written=sheet_written)
            summary.add(row, results)
            if not sheet_written:
                summary.sheet_rows_failed += 1

        return summary
