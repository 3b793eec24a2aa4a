"""Controllers for agent CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import httpx
from sqlalchemy import create_engine

from task_connector.agent.dispatcher import build_dispatcher
from task_connector.agent.executor import EngineFactory, SQLExecutor
from task_connector.agent.fetcher import TaskFetcher
from task_connector.agent.models import PollerRunSummary
from task_connector.agent.poller import Poller
from task_connector.agent.reporter import ResponseReporter
from task_connector.config import Settings, save_config_file
from task_connector.http.client import build_http_client
from task_connector.logging_setup import setup_logging

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AgentRunCommand:
    """CLI input for running the polling agent."""

    config_path: Path | None
    url: str | None = None
    report_url: str | None = None
    interval_seconds: int | None = None
    api_key: str | None = None
    once: bool = False
    max_iterations: int | None = None
    log_level: str | None = None
    log_file: Path | None = None


@dataclass(slots=True)
class CheckConfigCommand:
    """CLI input for configuration validation."""

    config_path: Path | None
    url: str | None = None
    report_url: str | None = None
    interval_seconds: int | None = None
    api_key: str | None = None


class AgentCliController:
    """Builds the agent from settings and runs it for the CLI."""

    def __init__(
        self,
        *,
        transport: httpx.BaseTransport | None = None,
        engine_factory: EngineFactory = create_engine,
    ) -> None:
        self.transport = transport
        self.engine_factory = engine_factory

    def run(self, command: AgentRunCommand) -> list[str]:
        """Validate configuration, then poll until stopped.

        Raises ``ValueError`` for invalid configuration before any poll.
        """

        settings = self._resolve_settings(
            config_path=command.config_path,
            url=command.url,
            report_url=command.report_url,
            interval_seconds=command.interval_seconds,
            api_key=command.api_key,
            persist=True,
        )
        setup_logging(
            level=(command.log_level or settings.logging.level).upper(),
            log_file=command.log_file or settings.logging.log_file,
        )
        logger.info("Running...")
        with self._poller(settings) as poller:
            if command.once:
                summary = PollerRunSummary()
                summary.record(poller.run_iteration())
            else:
                summary = poller.run_loop(max_iterations=command.max_iterations)

        return [
            "Poller summary: "
            f"iterations={summary.iterations} succeeded={summary.succeeded} "
            f"failed={summary.failed} no_task={summary.no_task} "
            f"skipped_ticks={summary.skipped_ticks} report_failures={summary.report_failures}",
        ]

    def check_config(self, command: CheckConfigCommand) -> list[str]:
        """Validate configuration and render the effective values."""

        settings = self._resolve_settings(
            config_path=command.config_path,
            url=command.url,
            report_url=command.report_url,
            interval_seconds=command.interval_seconds,
            api_key=command.api_key,
            persist=False,
        )
        return [
            "Configuration OK",
            f"config_file={settings.config_path}",
            f"url={settings.poll.url}",
            f"report_url={settings.poll.effective_report_url}",
            f"interval_seconds={settings.poll.interval_seconds}",
            f"api_key={_mask(settings.poll.api_key)}",
            f"db_driver={settings.database.driver}",
            f"db_pool_size={settings.database.pool_size}",
            f"task_timeout_seconds={settings.database.task_timeout_seconds:g}",
            f"null_as_empty_string={settings.database.null_as_empty_string}",
        ]

    def _resolve_settings(  # noqa: PLR0913
        self,
        *,
        config_path: Path | None,
        url: str | None,
        report_url: str | None,
        interval_seconds: int | None,
        api_key: str | None,
        persist: bool,
    ) -> Settings:
        settings, changed = Settings.from_env(config_path=config_path).with_overrides(
            url=url,
            report_url=report_url,
            interval_seconds=interval_seconds,
            api_key=api_key,
        )
        settings.validate()
        saved_path = settings.config_path
        if persist and changed and saved_path is not None and saved_path.exists():
            save_config_file(saved_path, settings.poll)
            logger.info("Configuration saved to %s", saved_path)
        return settings

    @contextmanager
    def _poller(self, settings: Settings) -> Iterator[Poller]:
        client = build_http_client(
            api_key=settings.poll.api_key,
            timeout_seconds=settings.poll.request_timeout_seconds,
            transport=self.transport,
        )
        try:
            dispatcher = build_dispatcher(
                executor=SQLExecutor(
                    engine_factory=self.engine_factory,
                    pool_size=settings.database.pool_size,
                ),
                driver=settings.database.driver,
                null_as_empty_string=settings.database.null_as_empty_string,
            )
            yield Poller(
                fetcher=TaskFetcher(client=client, url=settings.poll.url),
                dispatcher=dispatcher,
                reporter=ResponseReporter(client=client, url=settings.poll.effective_report_url),
                interval_seconds=settings.poll.interval_seconds,
                task_timeout_seconds=settings.database.task_timeout_seconds,
            )
        finally:
            client.close()


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "*" * len(value)
    return f"{'*' * (len(value) - 4)}{value[-4:]}"
