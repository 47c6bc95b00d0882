"""
Run ledger: the persisted record of every processed entity.

The ledger makes runs idempotent (seen entities are skipped), resumable
after a crash (each recorded row is checkpointed) and reconcilable against
the filesystem and the remote mirror.
"""

from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import orjson

from tenderfetch.core.errors import LedgerError

from .models import FailedDownload, LedgerRow, UploadResult
from .store import EntityStore

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class RunLedger:
    """JSON-backed ledger with atomic snapshots.

    Single writer: one run owns the ledger for its whole duration.
    """

    def __init__(
        self,
        path: Path | str,
        rows: list[LedgerRow] | None = None,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.path = Path(path)
        self.log = log or logger
        self._rows: list[LedgerRow] = []
        self._index: dict[str, LedgerRow] = {}
        self._unreadable = False

        for row in rows or []:
            if row.entity_id in self._index:
                self.log.warning("Duplicate ledger row for %s ignored", row.entity_id)
                continue
            self._rows.append(row)
            self._index[row.entity_id] = row

    @classmethod
    def open(
        cls,
        path: Path | str,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> "RunLedger":
        """Load the ledger from disk.

        A missing file yields an empty ledger. An unreadable or malformed
        file is logged at CRITICAL and also yields an empty ledger; the file
        is moved aside on the next save instead of being overwritten.
        """
        path = Path(path)
        log = log or logger

        if not path.exists():
            log.info("No ledger at %s; starting a new one", path)
            return cls(path, log=log)

        try:
            raw = path.read_bytes()
            data = orjson.loads(raw) if raw.strip() else []
            if not isinstance(data, list):
                raise ValueError("ledger root must be a JSON array")
            rows = [LedgerRow.model_validate(item) for item in data]
        except (OSError, ValueError) as e:
            log.critical("Ledger %s is unreadable, continuing with an empty ledger: %s", path, e)
            ledger = cls(path, log=log)
            ledger._unreadable = True
            return ledger

        log.debug("Loaded %d ledger rows from %s", len(rows), path)
        return cls(path, rows, log=log)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[LedgerRow]:
        return iter(list(self._rows))

    @property
    def rows(self) -> list[LedgerRow]:
        return list(self._rows)

    def is_seen(self, entity_id: str) -> bool:
        return entity_id in self._index

    def get(self, entity_id: str) -> LedgerRow | None:
        return self._index.get(entity_id)

    def pending_sync(self) -> list[LedgerRow]:
        """Rows never mirrored, or with at least one failed upload."""
        return [row for row in self._rows if row.needs_sync]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def record(self, row: LedgerRow, *, checkpoint: bool = True) -> bool:
        """Append a row and, by default, checkpoint the ledger to disk.

        Returns:
            False when the checkpoint could not be written; the row stays
            recorded in memory either way.

        Raises:
            LedgerError: If a row with the same entity id already exists
        """
        if row.entity_id in self._index:
            raise LedgerError(f"Entity {row.entity_id} is already recorded")

        if row.downloaded_at is None:
            row.downloaded_at = datetime.now(timezone.utc)

        self._rows.append(row)
        self._index[row.entity_id] = row

        if checkpoint:
            return self.save()
        return True

    def attach_upload_results(
        self,
        entity_id: str,
        results: list[UploadResult],
        *,
        sheet_written: bool | None = None,
    ) -> LedgerRow:
        """Merge mirror outcomes into a row, one result per file name.

        ``sheet_written`` replaces the row's spreadsheet state when given.
        """
        row = self._index.get(entity_id)
        if row is None:
            raise LedgerError(f"Entity {entity_id} is not in the ledger")

        merged = {r.file_name: r for r in row.upload_results or []}
        for result in results:
            merged[result.file_name] = result

        order = {name: i for i, name in enumerate(row.downloaded)}
        row.upload_results = sorted(
            merged.values(),
            key=lambda r: (order.get(r.file_name, len(order)), r.file_name),
        )
        if sheet_written is not None:
            row.sheet_written = sheet_written
        return row

    def save(self) -> bool:
        """Write an atomic snapshot: temp file in the same directory, then rename."""
        payload = orjson.dumps(
            [row.model_dump(mode="json") for row in self._rows],
            option=orjson.OPT_INDENT_2,
        )
        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self._unreadable and self.path.exists():
                stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
                aside = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
                os.replace(self.path, aside)
                self.log.warning("Moved unreadable ledger to %s", aside)
            self._unreadable = False

            with open(tmp_path, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            self.log.error("Failed to write ledger %s: %s", self.path, e)
            tmp_path.unlink(missing_ok=True)
            return False

        self.log.debug("Saved %d ledger rows to %s", len(self._rows), self.path)
        return True

    # -------------------------------------------------------------------------
    # Filesystem checks
    # -------------------------------------------------------------------------

    def reconcile(self, store: EntityStore) -> list[FailedDownload]:
        """Report files the ledger claims were downloaded but are missing on disk."""
        failed: list[FailedDownload] = []

        for row in self._rows:
            if not row.downloaded:
                continue
            folder = store.find_folder(row.entity_id)
            if folder is None:
                self.log.warning("Folder for %s (%s) not found", row.entity_id, row.entity_name)
                continue
            for file_name in row.downloaded:
                if not (folder / file_name).exists():
                    failed.append(
                        FailedDownload(
                            entity_id=row.entity_id,
                            entity_name=row.entity_name,
                            section_name=row.section_name,
                            file_name=file_name,
                        )
                    )

        if failed:
            self.log.warning("%d recorded downloads are missing on disk", len(failed))
        return failed

    def prune(
        self,
        store: EntityStore,
        retention: timedelta,
        now: datetime | None = None,
    ) -> list[Path]:
        """Delete entity folders strictly older than the retention window.

        The age of a folder is its row's download time, or the folder's
        modification time when no row (or no timestamp) exists. Ledger rows
        are kept so pruned entities are still skipped.
        """
        now = _as_utc(now or datetime.now(timezone.utc))
        cutoff = now - retention
        entity_ids = list(self._index)
        pruned: list[Path] = []

        for folder in store.iter_folders():
            owner = store.owner_of(folder, entity_ids)
            row = self._index.get(owner) if owner else None

            if row is not None and row.downloaded_at is not None:
                stamp = _as_utc(row.downloaded_at)
            else:
                stamp = datetime.fromtimestamp(folder.stat().st_mtime, tz=timezone.utc)

            if stamp >= cutoff:
                continue

            try:
                shutil.rmtree(folder)
            except OSError as e:
                self.log.error("Failed to delete %s: %s", folder, e)
                continue
            self.log.info("Pruned %s (downloaded %s)", folder.name, stamp.isoformat())
            pruned.append(folder)

        return pruned
