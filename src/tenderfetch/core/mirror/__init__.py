"""Remote mirror (Google Drive folders and a Google Sheets index)."""

from .base import MirrorClient, build_sheet_row, column_letter, find_row_index
from .sync import MirrorSummary, MirrorSync

__all__ = [
    "MirrorClient",
    "MirrorSummary",
    "MirrorSync",
    "build_sheet_row",
    "column_letter",
    "find_row_index",
]
