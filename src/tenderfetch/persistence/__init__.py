"""Run ledger persistence layer."""

from .ledger import RunLedger
from .models import FailedDownload, LedgerRow, UploadResult, UploadStatus
from .store import EntityStore, folder_name

__all__ = [
    "RunLedger",
    "FailedDownload",
    "LedgerRow",
    "UploadResult",
    "UploadStatus",
    "EntityStore",
    "folder_name",
]
