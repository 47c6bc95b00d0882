"""
Configuration loader for TOML and YAML files.

Loads and validates configuration into Pydantic models.
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig

DEFAULT_CONFIG_PATH = Path("config.toml")

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)


def _load_file(path: Path) -> dict[str, Any]:
    """Load a TOML or YAML file and return its contents as a dictionary.

    Args:
        path: Path to the configuration file

    Returns:
        Parsed contents

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            with open(path, "rb") as f:
                return tomllib.load(f)
        if suffix in (".yaml", ".yml"):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
                return data if data is not None else {}
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}", path=path, details=str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}", path=path, details=str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}", path=path, details=str(e)) from e

    raise ConfigError(
        f"Unsupported configuration format: {path.suffix or '(none)'}",
        path=path,
        details="Use a .toml, .yaml or .yml file",
    )


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(data, str):
        def replacer(match: re.Match[str]) -> str:
            return os.environ.get(match.group(1), match.group(2) or "")

        return _ENV_PATTERN.sub(replacer, data)
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


def load_app_config(
    path: Path | str | None = None,
    expand_env: bool = True,
) -> AppConfig:
    """Load application configuration.

    Args:
        path: Path to config.toml / config.yaml (default: ./config.toml)
        expand_env: Whether to expand environment variables

    Returns:
        Validated AppConfig instance; defaults when the file does not exist

    Raises:
        ConfigError: If configuration is invalid
    """
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)

    if not path.exists():
        return AppConfig()

    data = _load_file(path)

    if expand_env:
        data = _expand_env_vars(data)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {path}",
            path=path,
            details=str(e),
        ) from e


def validate_config_file(path: Path | str) -> list[str]:
    """Validate a configuration file without using it.

    Returns:
        List of validation error messages (empty if valid)
    """
    path = Path(path)
    if not path.exists():
        return [f"File not found: {path}"]

    try:
        data = _load_file(path)
    except ConfigError as e:
        return [f"{e}: {e.details}" if e.details else str(e)]

    try:
        AppConfig.model_validate(_expand_env_vars(data))
    except ValidationError as e:
        return [f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()]
    return []


DEFAULT_CONFIG_TOML = """\
# TenderFetch configuration

target_url = "{target_url}"
name_filter = "設計"
new_only = true
page_size = 100
attachment_keywords = ["公告", "位置図", "図面", "参考資料", "平面図"]
file_check = false
batch_timeout_seconds = 30
click_delay_seconds = 3

[browser]
headless = true
user_agent = "bot"
navigation_timeout_ms = 90000

[paths]
data_dir = "data"
ledger_file = "downloadHistory.json"
snapshot_dir = "snapshots"

[notification]
enabled = false
relay_url = "${{NOTIFY_RELAY_URL:-}}"
api_key = "${{NOTIFY_API_KEY:-}}"

[notification.mail]
enabled = false
user = "${{SMTP_USER:-}}"
password = "${{SMTP_PASSWORD:-}}"
to = []

[mirror]
enabled = false
service_account_key_path = "service-account.json"
folder_id = ""
spreadsheet_id = ""
sheet_name = "Sheet1"

[retention]
enabled = true
retention_days = 3

[logging]
level = "INFO"
file = "logs/system.log"
error_file = "logs/error.log"
json_format = true
rich_console = true
"""


def render_default_config() -> str:
    """Default config.toml contents written by `tenderfetch init`."""
    from .models import DEFAULT_TARGET_URL

    return DEFAULT_CONFIG_TOML.format(target_url=DEFAULT_TARGET_URL)
