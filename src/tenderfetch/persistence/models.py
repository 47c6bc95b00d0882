"""
Ledger record models.

Rows are stored as a JSON array. Field aliases also accept the camelCase
keys of older ledgers (``contractId``, ``notDownloaded``, ``uploaded`` ...).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class UploadStatus(str, Enum):
    """Outcome of one file upload to the mirror."""

    SUCCESS = "success"
    FAILED = "failed"


class UploadResult(BaseModel):
    """Mirror outcome for one file, kept verbatim in the ledger."""

    file_name: str = Field(validation_alias=AliasChoices("file_name", "fileName"))
    remote_id: str | None = Field(default=None, validation_alias=AliasChoices("remote_id", "fileId"))
    status: UploadStatus
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def ok(self) -> bool:
        return self.status == UploadStatus.SUCCESS


class LedgerRow(BaseModel):
    """One processed entity."""

    entity_id: str = Field(validation_alias=AliasChoices("entity_id", "contractId"))
    entity_name: str = Field(validation_alias=AliasChoices("entity_name", "contractName"))
    section_name: str = Field(default="", validation_alias=AliasChoices("section_name", "sectionName"))
    release_date: str = ""
    downloaded: list[str] = Field(default_factory=list)
    not_downloaded: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("not_downloaded", "notDownloaded"),
    )
    unconfirmed: list[str] = Field(default_factory=list)
    details: dict[str, str] = Field(default_factory=dict)
    upload_results: list[UploadResult] | None = Field(
        default=None,
        validation_alias=AliasChoices("upload_results", "uploaded"),
    )
    downloaded_at: datetime | None = None
    sheet_written: bool | None = None  # None until a mirror pass has tried the spreadsheet

    model_config = ConfigDict(populate_by_name=True)

    @property
    def needs_sync(self) -> bool:
        """No mirror attempt yet, a failed file, or a spreadsheet row not written."""
        if self.upload_results is None or self.sheet_written is False:
            return True
        return any(not result.ok for result in self.upload_results)

    def uploaded_files(self) -> set[str]:
        """Names already mirrored successfully."""
        return {r.file_name for r in self.upload_results or [] if r.ok}


class FailedDownload(BaseModel):
    """A file the ledger claims was downloaded but which is missing on disk."""

    entity_id: str
    entity_name: str
    section_name: str
    file_name: str
