"""Run orchestration."""

from .runner import (
    EntityFailure,
    RunReport,
    RunStatus,
    SyncRunner,
    notify_failure,
    run_mirror_pass,
    run_sync,
)

__all__ = [
    "EntityFailure",
    "RunReport",
    "RunStatus",
    "SyncRunner",
    "notify_failure",
    "run_mirror_pass",
    "run_sync",
]
