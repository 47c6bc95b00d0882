"""
Remote mirror interface.

A mirror keeps a folder per entity holding copies of its attachments, plus
one spreadsheet row per entity keyed by entity id.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from tenderfetch.persistence.models import LedgerRow, UploadResult


class MirrorClient(Protocol):
    """Blocking client for a remote folder store and spreadsheet."""

    def create_folder(self, name: str, parent_id: str | None = None) -> str | None:
        """Return the id of an existing or newly created folder, or None on failure."""
        ...

    def upload_file(self, path: Path, parent_id: str) -> UploadResult:
        ...

    def folder_url(self, folder_id: str) -> str:
        ...

    def write_row(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        key_column: int,
        key_value: str,
        row_values: list[str],
    ) -> bool:
        """Update the row whose ``key_column`` equals ``key_value``, or append one."""
        ...


def column_letter(index: int) -> str:
    """Zero-based column index to A1 letters (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def find_row_index(rows: list[list[str]], key_column: int, key_value: str) -> int | None:
    """Zero-based index of the first row whose key cell equals ``key_value``."""
    for index, row in enumerate(rows):
        if len(row) > key_column and row[key_column] == key_value:
            return index
    return None


def build_sheet_row(
    row: LedgerRow,
    columns: list[str],
    key_title: str,
    folder_url: str | None = None,
) -> tuple[list[str], int]:
    """Spreadsheet values for a ledger row and the index of its key column.

    Values come from the detail table read off the entity's page; the name,
    section and release date fall back to the ledger when the table lacks
    them. The folder link is appended as the last column.
    """
    fallbacks = {
        "業務名": row.entity_name,
        "課所名": row.section_name,
        "公開日": row.release_date,
    }
    values = [row.details.get(title) or fallbacks.get(title, "") for title in columns]

    if key_title in columns:
        key_index = columns.index(key_title)
        values[key_index] = row.entity_id
    else:
        key_index = 0
        values.insert(0, row.entity_id)

    values.append(folder_url or "")
    return values, key_index
