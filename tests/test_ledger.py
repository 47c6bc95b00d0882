from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from tenderfetch.core.errors import LedgerError
from tenderfetch.persistence.ledger import RunLedger
from tenderfetch.persistence.models import LedgerRow, UploadResult, UploadStatus
from tenderfetch.persistence.store import EntityStore, folder_name

NOW = datetime(2024, 4, 10, 12, 0, tzinfo=timezone.utc)


def make_row(entity_id: str, downloaded: list[str] | None = None, **kwargs) -> LedgerRow:
    return LedgerRow(
        entity_id=entity_id,
        entity_name=f"業務{entity_id}",
        section_name="土木課",
        downloaded=downloaded or [],
        **kwargs,
    )


def test_missing_file_opens_empty(tmp_path):
    ledger = RunLedger.open(tmp_path / "downloadHistory.json")

    assert len(ledger) == 0
    assert ledger.pending_sync() == []


def test_record_checkpoints_and_reopens(tmp_path):
    path = tmp_path / "downloadHistory.json"
    ledger = RunLedger.open(path)

    assert ledger.record(make_row("001", ["a.pdf"])) is True
    assert ledger.record(make_row("002")) is True

    reopened = RunLedger.open(path)
    assert [row.entity_id for row in reopened] == ["001", "002"]
    assert reopened.get("001").downloaded == ["a.pdf"]
    assert reopened.get("001").downloaded_at is not None
    assert reopened.is_seen("002")
    assert not list(tmp_path.glob(".*.tmp"))


def test_record_rejects_duplicate_entity(tmp_path):
    ledger = RunLedger.open(tmp_path / "downloadHistory.json")
    ledger.record(make_row("001"), checkpoint=False)

    with pytest.raises(LedgerError):
        ledger.record(make_row("001"), checkpoint=False)
    assert len(ledger) == 1


def test_legacy_camel_case_rows_load(tmp_path):
    path = tmp_path / "downloadHistory.json"
    path.write_text(json.dumps([
        {
            "contractId": "001",
            "contractName": "道路設計",
            "sectionName": "土木課",
            "downloaded": ["a.pdf"],
            "notDownloaded": ["様式.docx"],
            "uploaded": [{"fileName": "a.pdf", "fileId": "drive-1", "status": "success"}],
        },
        {
            "contractId": "002",
            "contractName": "橋梁設計",
            "sectionName": "建築課",
            "downloaded": ["b.pdf"],
            "notDownloaded": [],
        },
    ], ensure_ascii=False), encoding="utf-8")

    ledger = RunLedger.open(path)

    first = ledger.get("001")
    assert first.entity_name == "道路設計"
    assert first.not_downloaded == ["様式.docx"]
    assert first.upload_results[0].remote_id == "drive-1"
    assert first.needs_sync is False
    assert [row.entity_id for row in ledger.pending_sync()] == ["002"]


def test_unreadable_ledger_is_moved_aside_on_save(tmp_path, caplog):
    path = tmp_path / "downloadHistory.json"
    path.write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.CRITICAL):
        ledger = RunLedger.open(path)
    assert len(ledger) == 0
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    ledger.record(make_row("001"))

    aside = list(tmp_path.glob("downloadHistory.json.corrupt-*"))
    assert len(aside) == 1
    assert aside[0].read_text(encoding="utf-8") == "{not json"
    assert [row.entity_id for row in RunLedger.open(path)] == ["001"]


def test_attach_upload_results_merges_by_file_name(tmp_path):
    ledger = RunLedger(tmp_path / "ledger.json")
    ledger.record(make_row("001", ["a.pdf", "b.pdf"]), checkpoint=False)

    ledger.attach_upload_results("001", [
        UploadResult(file_name="b.pdf", status=UploadStatus.FAILED, error="quota"),
        UploadResult(file_name="a.pdf", remote_id="x", status=UploadStatus.SUCCESS),
    ])
    assert ledger.get("001").needs_sync is True

    row = ledger.attach_upload_results("001", [
        UploadResult(file_name="b.pdf", remote_id="y", status=UploadStatus.SUCCESS),
    ])
    assert [r.file_name for r in row.upload_results] == ["a.pdf", "b.pdf"]
    assert row.needs_sync is False
    assert ledger.pending_sync() == []

    with pytest.raises(LedgerError):
        ledger.attach_upload_results("999", [])


def test_reconcile_reports_missing_files(tmp_path):
    store = EntityStore(tmp_path / "data")
    ledger = RunLedger(tmp_path / "ledger.json")
    ledger.record(make_row("001", ["a.pdf", "b.pdf"]), checkpoint=False)
    ledger.record(make_row("002", ["c.pdf"]), checkpoint=False)

    folder = store.ensure_folder("001", "業務001", "土木課")
    (folder / "a.pdf").write_bytes(b"%PDF")

    missing = ledger.reconcile(store)

    assert [(m.entity_id, m.file_name) for m in missing] == [("001", "b.pdf")]


def test_prune_cutoff_is_strict(tmp_path):
    store = EntityStore(tmp_path / "data")
    ledger = RunLedger(tmp_path / "ledger.json")
    retention = timedelta(days=3)
    cutoff = NOW - retention

    ledger.record(make_row("001", downloaded_at=cutoff), checkpoint=False)
    ledger.record(make_row("002", downloaded_at=cutoff - timedelta(milliseconds=1)), checkpoint=False)
    kept = store.ensure_folder("001", "業務001", "土木課")
    old = store.ensure_folder("002", "業務002", "土木課")
    unowned = tmp_path / "data" / "999_unknown"
    unowned.mkdir()

    pruned = ledger.prune(store, retention, now=NOW)

    assert pruned == [old]
    assert kept.exists()
    assert not old.exists()
    # folder mtime is now, far inside the window
    assert unowned.exists()
    assert ledger.is_seen("002")


def test_folder_lookup_prefers_exact_prefix(tmp_path):
    store = EntityStore(tmp_path)
    (tmp_path / "0011_other").mkdir()
    (tmp_path / folder_name("001", "道路/設計", "土木課")).mkdir()

    assert store.find_folder("001").name == "001_道路_設計_土木課"
    assert EntityStore.owner_of(tmp_path / "0011_other", ["001", "0011"]) == "0011"
    assert store.find_folder("404") is None
