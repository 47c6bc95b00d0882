from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tenderfetch.core.config.loader import (
    ConfigError,
    load_app_config,
    render_default_config,
    validate_config_file,
)
from tenderfetch.core.config.models import DEFAULT_KEYWORDS, AppConfig


def test_defaults_when_file_missing(tmp_path):
    config = load_app_config(tmp_path / "config.toml")

    assert config.name_filter == "設計"
    assert config.new_only is True
    assert config.page_size == 100
    assert config.attachment_keywords == DEFAULT_KEYWORDS
    assert config.batch_timeout_seconds == 30
    assert config.click_delay_seconds == 3
    assert config.retention.retention_days == 3
    assert config.mirror.enabled is False


@pytest.mark.parametrize("value", [20, "abc", None])
def test_unsupported_page_size_falls_back(value, caplog):
    with caplog.at_level(logging.WARNING):
        config = AppConfig(page_size=value)

    assert config.page_size == 100
    assert "Unsupported page size" in caplog.text


def test_supported_page_size_is_kept():
    assert AppConfig(page_size="25").page_size == 25


def test_camel_case_keys_are_accepted(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        """
projectTitle = "測量"
downloadOnlyNew = false
numberOfItems = 50
pdfKeywords = "公告, 図面"
downloadTimeoutSec = 60
pdfClickDelaySec = 1
fileCheckEnabled = true

[mirror]
uploadEnabled = true
folderId = "root-folder"
""",
        encoding="utf-8",
    )

    config = load_app_config(path)

    assert config.name_filter == "測量"
    assert config.new_only is False
    assert config.page_size == 50
    assert config.attachment_keywords == ["公告", "図面"]
    assert config.batch_timeout_seconds == 60
    assert config.click_delay_seconds == 1
    assert config.file_check is True
    assert config.mirror.enabled is True
    assert config.mirror.folder_id == "root-folder"


def test_yaml_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("NOTIFY_API_KEY", "s3cret")
    monkeypatch.delenv("NOTIFY_RELAY_URL", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        """
name_filter: 設計
notification:
  enabled: true
  relay_url: ${NOTIFY_RELAY_URL:-https://relay.example/exec}
  api_key: ${NOTIFY_API_KEY}
""",
        encoding="utf-8",
    )

    config = load_app_config(path)

    assert config.notification.relay_url == "https://relay.example/exec"
    assert config.notification.api_key == "s3cret"


def test_unsupported_format(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{}", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_app_config(path)
    assert excinfo.value.path == path


def test_invalid_values_raise_config_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[logging]\nlevel = "LOUD"\n', encoding="utf-8")

    with pytest.raises(ConfigError):
        load_app_config(path)
    assert validate_config_file(path)[0].startswith("logging.level")


def test_default_template_loads(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(render_default_config(), encoding="utf-8")

    assert validate_config_file(path) == []
    config = load_app_config(path)
    assert config.paths.ledger_file == Path("downloadHistory.json")
    assert config.notification.enabled is False
