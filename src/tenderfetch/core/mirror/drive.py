"""
Google Drive / Google Sheets mirror client.

Uses a service account. Transient API errors (rate limits, 5xx, dropped
connections) are retried with tenacity; anything else is reported in the
returned results instead of raised.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from tenderfetch.core.errors import MirrorError
from tenderfetch.core.retries import call_with_retry
from tenderfetch.persistence.models import UploadResult, UploadStatus

from .base import column_letter, find_row_index

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, HttpError):
        return exc.resp.status in TRANSIENT_STATUSES
    return isinstance(exc, (ConnectionError, TimeoutError))


def _execute(request: Any) -> dict[str, Any]:
    return call_with_retry(request.execute, _is_transient, log=logger)


def _quote(value: str) -> str:
    """Escape a literal for a Drive search query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveMirror:
    """MirrorClient backed by the Drive v3 and Sheets v4 APIs."""

    def __init__(
        self,
        drive: Any,
        sheets: Any,
        root_folder_id: str | None = None,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.drive = drive
        self.sheets = sheets
        self.root_folder_id = root_folder_id
        self.log = log or logger

    @classmethod
    def from_service_account(
        cls,
        key_path: Path | str,
        root_folder_id: str | None = None,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> "GoogleDriveMirror":
        """Build API clients from a service account key file.

        Raises:
            MirrorError: If the key file is missing or invalid
        """
        key_path = Path(key_path)
        if not key_path.exists():
            raise MirrorError(f"Service account key not found: {key_path}")

        try:
            credentials = service_account.Credentials.from_service_account_file(
                str(key_path), scopes=SCOPES
            )
        except (ValueError, OSError) as e:
            raise MirrorError(f"Invalid service account key {key_path}: {e}", cause=e) from e

        drive = build("drive", "v3", credentials=credentials, cache_discovery=False)
        sheets = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return cls(drive, sheets, root_folder_id, log=log)

    # -------------------------------------------------------------------------
    # Drive
    # -------------------------------------------------------------------------

    def find_folder(self, name: str, parent_id: str) -> str | None:
        query = (
            f"name='{_quote(name)}' and mimeType='{FOLDER_MIME_TYPE}' "
            f"and '{_quote(parent_id)}' in parents and trashed=false"
        )
        response = _execute(
            self.drive.files().list(
                q=query,
                fields="files(id, name)",
                spaces="drive",
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            )
        )
        files = response.get("files") or []
        return files[0].get("id") if files else None

    def create_folder(self, name: str, parent_id: str | None = None) -> str | None:
        parent_id = parent_id or self.root_folder_id
        if not parent_id:
            self.log.error("No parent folder configured for %s", name)
            return None

        try:
            existing = self.find_folder(name, parent_id)
            if existing:
                self.log.debug("Folder %s already exists (%s)", name, existing)
                return existing

            response = _execute(
                self.drive.files().create(
                    body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
                    fields="id",
                    supportsAllDrives=True,
                )
            )
        except (HttpError, OSError) as e:
            self.log.error("Failed to create folder %s: %s", name, e)
            return None

        folder_id = response.get("id")
        self.log.info("Created folder %s (%s)", name, folder_id)
        return folder_id

    def upload_file(self, path: Path, parent_id: str) -> UploadResult:
        path = Path(path)
        if not path.exists():
            return UploadResult(file_name=path.name, status=UploadStatus.FAILED, error="File not found")

        try:
            media = MediaFileUpload(str(path), resumable=False)
            response = _execute(
                self.drive.files().create(
                    body={"name": path.name, "parents": [parent_id]},
                    media_body=media,
                    fields="id",
                    supportsAllDrives=True,
                )
            )
        except (HttpError, OSError) as e:
            self.log.error("Failed to upload %s: %s", path.name, e)
            return UploadResult(file_name=path.name, status=UploadStatus.FAILED, error=str(e))

        self.log.info("Uploaded %s (%s)", path.name, response.get("id"))
        return UploadResult(
            file_name=path.name,
            remote_id=response.get("id"),
            status=UploadStatus.SUCCESS,
        )

    def folder_url(self, folder_id: str) -> str:
        return f"https://drive.google.com/drive/folders/{folder_id}"

    # -------------------------------------------------------------------------
    # Sheets
    # -------------------------------------------------------------------------

    def write_row(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        key_column: int,
        key_value: str,
        row_values: list[str],
    ) -> bool:
        last = column_letter(len(row_values) - 1)
        values = self.sheets.spreadsheets().values()
        body = {"values": [row_values]}

        try:
            existing = _execute(
                values.get(spreadsheetId=spreadsheet_id, range=f"{sheet_name}!A:{last}")
            ).get("values", [])
            index = find_row_index(existing, key_column, key_value)

            if index is not None:
                row_number = index + 1
                _execute(
                    values.update(
                        spreadsheetId=spreadsheet_id,
                        range=f"{sheet_name}!A{row_number}:{last}{row_number}",
                        valueInputOption="RAW",
                        body=body,
                    )
                )
                self.log.info("Updated sheet row %d for %s", row_number, key_value)
            else:
                _execute(
                    values.append(
                        spreadsheetId=spreadsheet_id,
                        range=f"{sheet_name}!A:{last}",
                        valueInputOption="RAW",
                        insertDataOption="INSERT_ROWS",
                        body=body,
                    )
                )
                self.log.info("Appended sheet row for %s", key_value)
        except (HttpError, OSError) as e:
            self.log.error("Failed to write sheet row for %s: %s", key_value, e)
            return False

        return True
