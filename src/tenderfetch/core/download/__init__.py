"""Attachment download orchestration."""

from .orchestrator import (
    BatchResult,
    DownloadDispatcher,
    DownloadOrchestrator,
    DownloadOutcome,
    wait_all_until,
)

__all__ = [
    "BatchResult",
    "DownloadDispatcher",
    "DownloadOrchestrator",
    "DownloadOutcome",
    "wait_all_until",
]
