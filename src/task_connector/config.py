"""Runtime configuration for the task connector."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

DEFAULT_URL = "http://taskserver:8888/"
DEFAULT_INTERVAL_SECONDS = 10
DEFAULT_CONFIG_FILENAME = "conf.json"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(slots=True)
class PollSettings:
    """Task server endpoints, credential and schedule."""

    url: str = DEFAULT_URL
    report_url: str | None = None
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    api_key: str = ""
    request_timeout_seconds: float = 30.0

    @property
    def effective_report_url(self) -> str:
        return self.report_url or self.url


@dataclass(slots=True)
class DatabaseSettings:
    """Local database execution settings."""

    driver: str = "mysql+pymysql"
    pool_size: int = 100
    task_timeout_seconds: float = 300.0
    null_as_empty_string: bool = False


@dataclass(slots=True)
class LoggingSettings:
    """Console and file logging settings."""

    level: str = "INFO"
    log_file: Path | None = None


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    poll: PollSettings = field(default_factory=PollSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Path | None = None

    @classmethod
    def from_env(cls, config_path: Path | None = None) -> Settings:
        """Load settings from the config file and environment.

        Environment variables win over the config file; CLI flags are applied
        afterwards with ``with_overrides``.
        """

        path = config_path or _env_path("TASK_CONNECTOR_CONFIG") or Path(DEFAULT_CONFIG_FILENAME)
        file_values = load_config_file(path) if path.exists() else {}
        log_file = _env_path("TASK_CONNECTOR_LOG_FILE")
        return cls(
            poll=PollSettings(
                url=str(_value("TASK_CONNECTOR_URL", file_values.get("url"), DEFAULT_URL)),
                report_url=_optional_str(
                    _value("TASK_CONNECTOR_REPORT_URL", file_values.get("report_url"), None),
                ),
                interval_seconds=int(
                    _value(
                        "TASK_CONNECTOR_INTERVAL_SECONDS",
                        file_values.get("interval"),
                        DEFAULT_INTERVAL_SECONDS,
                    ),
                ),
                api_key=str(_value("TASK_CONNECTOR_API_KEY", file_values.get("key"), "")),
                request_timeout_seconds=float(
                    os.getenv("TASK_CONNECTOR_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
            ),
            database=DatabaseSettings(
                driver=os.getenv("TASK_CONNECTOR_DB_DRIVER", "mysql+pymysql"),
                pool_size=int(os.getenv("TASK_CONNECTOR_DB_POOL_SIZE", "100")),
                task_timeout_seconds=float(
                    os.getenv("TASK_CONNECTOR_TASK_TIMEOUT_SECONDS", "300.0"),
                ),
                null_as_empty_string=_env_bool(
                    "TASK_CONNECTOR_NULL_AS_EMPTY_STRING",
                    default=False,
                ),
            ),
            logging=LoggingSettings(
                level=os.getenv("TASK_CONNECTOR_LOG_LEVEL", "INFO").strip().upper(),
                log_file=log_file,
            ),
            config_path=path,
        )

    def with_overrides(
        self,
        *,
        url: str | None = None,
        report_url: str | None = None,
        interval_seconds: int | None = None,
        api_key: str | None = None,
    ) -> tuple[Settings, bool]:
        """Apply CLI flag values; return new settings and whether poll values changed."""

        changes: dict[str, Any] = {}
        if url is not None and url != self.poll.url:
            changes["url"] = url
        if report_url is not None and report_url != self.poll.report_url:
            changes["report_url"] = report_url
        if interval_seconds is not None and interval_seconds != self.poll.interval_seconds:
            changes["interval_seconds"] = interval_seconds
        if api_key is not None and api_key != self.poll.api_key:
            changes["api_key"] = api_key
        if not changes:
            return self, False
        return replace(self, poll=replace(self.poll, **changes)), True

    def validate(self) -> None:
        """Raise configuration error if the agent cannot start polling."""

        if not self.poll.api_key.strip():
            raise ValueError(
                "Invalid API Key. Set TASK_CONNECTOR_API_KEY, "
                'add "key" to the config file or pass --key.',
            )
        _validate_url(self.poll.url, name="poll URL")
        if self.poll.report_url is not None:
            _validate_url(self.poll.report_url, name="report URL")
        if self.poll.interval_seconds <= 0:
            raise ValueError("TASK_CONNECTOR_INTERVAL_SECONDS must be > 0.")
        if self.poll.request_timeout_seconds <= 0:
            raise ValueError("TASK_CONNECTOR_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if not self.database.driver.strip():
            raise ValueError("TASK_CONNECTOR_DB_DRIVER must not be empty.")
        if self.database.pool_size <= 0:
            raise ValueError("TASK_CONNECTOR_DB_POOL_SIZE must be a positive integer.")
        if self.database.task_timeout_seconds <= 0:
            raise ValueError("TASK_CONNECTOR_TASK_TIMEOUT_SECONDS must be > 0.")
        if self.logging.level not in _LOG_LEVELS:
            raise ValueError(f"Invalid TASK_CONNECTOR_LOG_LEVEL: {self.logging.level!r}")


def load_config_file(path: Path) -> dict[str, Any]:
    """Load the JSON config file and validate top-level object type."""

    try:
        payload = json.loads(path.read_text("utf-8"))
    except ValueError as error:
        raise ValueError(f"Invalid JSON in config file {path}: {error}") from error
    if not isinstance(payload, dict):
        raise ValueError(f"Expected JSON object in config file {path}")
    return payload


def save_config_file(path: Path, poll: PollSettings) -> None:
    """Persist poll settings into the config file, keeping unrelated keys."""

    payload = load_config_file(path) if path.exists() else {}
    payload["url"] = poll.url
    payload["interval"] = poll.interval_seconds
    payload["key"] = poll.api_key
    if poll.report_url is not None:
        payload["report_url"] = poll.report_url
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def _value(name: str, file_value: Any, default: Any) -> Any:
    value = os.getenv(name)
    if value is not None and value.strip():
        return value.strip()
    if file_value not in (None, "", 0):
        return file_value
    return default


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _env_path(name: str) -> Path | None:
    value = os.getenv(name, "").strip()
    return Path(value) if value else None


def _validate_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
