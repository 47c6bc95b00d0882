"""
Notification message builders.

Messages are written in Japanese for the people reading the portal's
announcements.
"""

from __future__ import annotations

import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tenderfetch.core.orchestrator.runner import RunReport
    from tenderfetch.core.mirror.sync import MirrorSummary

SEPARATOR = "*" * 70
NOTHING_NEW = "新規ダウンロードはありませんでした"
SERVICE_STOPPED = "入札情報公開サービスは現在停止中です"


def _date(when: datetime | None = None) -> str:
    return (when or datetime.now()).strftime("%Y/%m/%d")


def _bullets(names: list[str]) -> str:
    return "\n".join(f"・{name}" for name in names)


def run_subject(prefix: str, when: datetime | None = None) -> str:
    return f"{prefix}({_date(when)})"


def build_run_message(report: "RunReport", prefix: str) -> tuple[str, str]:
    """Subject and body summarizing a sync run."""
    from tenderfetch.core.orchestrator.runner import RunStatus

    subject = run_subject(prefix, report.started_at)
    today = _date(report.started_at)

    if report.status is RunStatus.SERVICE_UNAVAILABLE:
        return subject, f"{today}\n\n{SERVICE_STOPPED}\n"
    if report.status is RunStatus.NOTHING_NEW:
        return subject, f"{NOTHING_NEW}\n\n"

    parts = [f"{today}のダウンロード結果\n"]

    for row in report.processed:
        block = [
            SEPARATOR,
            "",
            f"{row.entity_name} ({row.entity_id})",
            "【DL済】",
            _bullets(row.downloaded),
            "【未DL】",
            _bullets(row.not_downloaded),
        ]
        if row.unconfirmed:
            block += ["【未確認】", _bullets(row.unconfirmed)]
        parts.append("\n".join(block) + "\n")

    if report.failures:
        parts.append(SEPARATOR)
        parts.append("以下の案件は処理中にエラーが発生しました。")
        parts.extend(f"{f.entity_name}({f.entity_id}) - {f.error}" for f in report.failures)
        parts.append("")

    if report.skipped:
        parts.append("以下の案件は処理されませんでした。")
        parts.append(_bullets(report.skipped))
        parts.append("")

    if report.failed_downloads:
        parts.append(SEPARATOR)
        parts.append("以下のファイルがダウンロードに失敗した可能性があります。")
        parts.extend(
            f"{item.entity_name}({item.entity_id}) - {item.file_name}"
            for item in report.failed_downloads
        )
        parts.append("")

    if report.mirror is not None:
        parts.append(build_mirror_lines(report.mirror))

    if not report.ledger_saved:
        parts.append("※ダウンロード履歴の保存に失敗しました。")

    return subject, "\n".join(parts)


def build_mirror_message(summary: "MirrorSummary", prefix: str) -> tuple[str, str]:
    """Subject and body for a mirror-only pass."""
    subject = f"{prefix}アップロード結果({_date()})"
    text = f"{summary.entities}件の案件を同期しました\n\n" + build_mirror_lines(summary)
    return subject, text


def build_mirror_lines(summary: "MirrorSummary") -> str:
    lines = [f"Google Drive: {summary.uploaded}件アップロード, {summary.failed}件失敗"]
    lines.extend(f"・{failure}" for failure in summary.failures)
    if summary.sheet_rows_failed:
        lines.append(f"スプレッドシート書き込み失敗: {summary.sheet_rows_failed}件")
    return "\n".join(lines) + "\n"


def build_error_message(
    title: str,
    error: BaseException | str,
    prefix: str,
    settings: dict[str, Any] | None = None,
    when: datetime | None = None,
) -> tuple[str, str]:
    """Subject and body for a fatal error, with traceback and a settings snapshot."""
    today = _date(when)
    subject = f"【エラー】{prefix}({today}): {title}"

    if isinstance(error, BaseException):
        detail = f"{type(error).__name__}: {error}"
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        if error.__traceback__ is not None:
            detail += f"\n\nスタックトレース:\n{stack}"
    else:
        detail = str(error)

    text = f"{today}にエラーが発生しました\n\n{title}\n\n{detail}"

    if settings is not None:
        keywords = settings.get("attachment_keywords") or []
        text += "\n\n【実行時の設定情報】\n"
        text += f"・業務名: {settings.get('name_filter') or '指定なし'}\n"
        text += f"・新着のみ: {'はい' if settings.get('new_only') else 'いいえ'}\n"
        text += f"・キーワード: {', '.join(keywords)}\n"

    return subject, text
