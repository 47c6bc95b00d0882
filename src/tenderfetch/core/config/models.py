"""
Pydantic configuration models for TenderFetch.

These models provide type-safe configuration with validation for:
- Crawl settings (target portal, name filter, page size, keywords)
- Browser launch settings
- Notification transports
- Remote mirror (Google Drive / Sheets)
- Retention and logging
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


DEFAULT_TARGET_URL = (
    "https://www.epi-cloud.fwd.ne.jp/koukai/do/KF001ShowAction?name1=0620060006600600"
)
DEFAULT_KEYWORDS = ["公告", "位置図", "図面", "参考資料", "平面図"]
PAGE_SIZES = (10, 25, 50, 100)
DEFAULT_PAGE_SIZE = 100

# Two name columns; the entity id lands in column D, the folder link after the last
DEFAULT_SHEET_COLUMNS = [
    "年度",
    "業務名",
    "業務名",
    "契約管理番号",
    "入札方式",
    "業種",
    "業務場所",
    "業務内容",
    "公開日",
    "参加受付開始",
    "参加受付期限",
    "入札締切日時",
    "開札日",
    "予定価格",
    "発注等級",
    "WTO条件付一般競争入札方式の型",
    "備考",
    "課所名",
]

BROWSER_CANDIDATES = (
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/usr/bin/google-chrome",
)


# =============================================================================
# Browser Configuration
# =============================================================================


class BrowserConfig(BaseModel):
    """Headless browser launch and timing settings."""

    headless: bool = Field(default=True, description="Run the browser headless")
    executable_path: str | None = Field(
        default=None,
        description="Chromium executable; detected from common locations when unset",
    )
    user_agent: str = Field(default="bot", description="User-Agent header sent with every request")
    navigation_timeout_ms: int = Field(
        default=90_000,
        ge=1_000,
        description="Default timeout for page operations",
    )
    marker_timeout_ms: int = Field(
        default=30_000,
        ge=100,
        description="Bounded wait for marker selectors",
    )
    results_settle_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Pause after the result list frame loads",
    )
    screenshots_on_error: bool = Field(default=True, description="Capture a screenshot when an entity fails")

    def resolve_executable(self) -> str | None:
        """Return the configured executable, or the first Chromium found on the host."""
        if self.executable_path:
            return self.executable_path
        for candidate in BROWSER_CANDIDATES:
            if Path(candidate).exists():
                return candidate
        return shutil.which("chromium") or None


# =============================================================================
# Paths
# =============================================================================


class PathsConfig(BaseModel):
    """Local storage locations."""

    data_dir: Path = Field(default=Path("data"), description="Root of per-entity download folders")
    ledger_file: Path = Field(default=Path("downloadHistory.json"), description="Run ledger JSON file")
    snapshot_dir: Path = Field(default=Path("snapshots"), description="Error screenshots")


# =============================================================================
# Notification Configuration
# =============================================================================


class MailConfig(BaseModel):
    """Direct SMTP delivery of notifications."""

    enabled: bool = Field(default=False, validation_alias=AliasChoices("enabled", "sendEmailEnabled"))
    host: str = "smtp.gmail.com"
    port: int = Field(default=465, ge=1, le=65535)
    user: str | None = None
    password: str | None = Field(default=None, validation_alias=AliasChoices("password", "pass"))
    to: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("to", mode="before")
    @classmethod
    def split_recipients(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [addr.strip() for addr in v.split(",") if addr.strip()]
        return v


class NotificationConfig(BaseModel):
    """Run summary and error notification settings."""

    enabled: bool = False
    relay_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("relay_url", "gasUrl"),
        description="Serverless relay accepting {apiKey, subject, text, timestamp}",
    )
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("api_key", "apiKey"),
        description="Shared secret checked by the relay",
    )
    chat_webhook_url: str | None = Field(default=None, description="Incoming chat webhook")
    subject_prefix: str = Field(default="入札情報DL結果", description="Subject line prefix")
    timeout_seconds: float = Field(default=30.0, gt=0)
    mail: MailConfig = Field(default_factory=MailConfig)

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Mirror Configuration
# =============================================================================


class MirrorConfig(BaseModel):
    """Google Drive folder mirror and spreadsheet index."""

    enabled: bool = Field(default=False, validation_alias=AliasChoices("enabled", "uploadEnabled"))
    service_account_key_path: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("service_account_key_path", "serviceAccountKeyPath"),
    )
    folder_id: str | None = Field(default=None, validation_alias=AliasChoices("folder_id", "folderId"))
    spreadsheet_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("spreadsheet_id", "spreadsheetId"),
    )
    sheet_name: str = "Sheet1"
    sheet_columns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SHEET_COLUMNS),
        description="Detail-table titles written to each spreadsheet row, in order",
    )
    key_column_title: str = Field(
        default="契約管理番号",
        description="Column holding the entity id; rows are upserted on it",
    )

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Retention and Logging
# =============================================================================


class RetentionConfig(BaseModel):
    """Pruning of old per-entity download folders."""

    enabled: bool = True
    retention_days: float = Field(
        default=3,
        ge=0,
        validation_alias=AliasChoices("retention_days", "retentionDays"),
    )

    model_config = ConfigDict(populate_by_name=True)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    file: Path | None = Field(default=Path("logs/system.log"))
    error_file: Path | None = Field(default=Path("logs/error.log"))
    json_format: bool = True
    rich_console: bool = True


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root configuration for a sync run."""

    target_url: str = Field(
        default=DEFAULT_TARGET_URL,
        validation_alias=AliasChoices("target_url", "topPage"),
        description="Portal top page",
    )
    name_filter: str = Field(
        default="設計",
        validation_alias=AliasChoices("name_filter", "projectTitle"),
        description="Text typed into the search form's name field",
    )
    new_only: bool = Field(
        default=True,
        validation_alias=AliasChoices("new_only", "downloadOnlyNew"),
        description="Only process entities flagged as new on the result list",
    )
    page_size: int = Field(
        default=DEFAULT_PAGE_SIZE,
        validation_alias=AliasChoices("page_size", "numberOfItems"),
        description="Result rows per page (10, 25, 50 or 100)",
    )
    attachment_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_KEYWORDS),
        validation_alias=AliasChoices("attachment_keywords", "pdfKeywords"),
    )
    file_check: bool = Field(
        default=False,
        validation_alias=AliasChoices("file_check", "fileCheckEnabled"),
        description="Reconcile the ledger against the filesystem after each run",
    )
    batch_timeout_seconds: float = Field(
        default=30,
        validation_alias=AliasChoices("batch_timeout_seconds", "downloadTimeoutSec"),
        description="Shared deadline for one entity's downloads",
    )
    click_delay_seconds: float = Field(
        default=3,
        validation_alias=AliasChoices("click_delay_seconds", "pdfClickDelaySec"),
        description="Pause between download triggers",
    )

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    mirror: MirrorConfig = Field(default_factory=MirrorConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("page_size", mode="before")
    @classmethod
    def fallback_page_size(cls, v: Any) -> int:
        """Replace an unsupported page size with the largest one."""
        try:
            size = int(v)
        except (TypeError, ValueError):
            size = None
        if size not in PAGE_SIZES:
            logger.warning(
                "Unsupported page size %r; using %d (allowed: %s)",
                v,
                DEFAULT_PAGE_SIZE,
                ", ".join(str(s) for s in PAGE_SIZES),
            )
            return DEFAULT_PAGE_SIZE
        return size

    @field_validator("attachment_keywords", mode="before")
    @classmethod
    def split_keywords(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        return v

    def snapshot(self) -> dict[str, Any]:
        """Settings worth quoting in an error notification."""
        return {
            "name_filter": self.name_filter,
            "new_only": self.new_only,
            "attachment_keywords": list(self.attachment_keywords),
        }
