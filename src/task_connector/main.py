"""CLI entrypoint for task-connector."""

from pathlib import Path

import rich_click as click

from task_connector import __version__
from task_connector.agent.controllers import (
    AgentCliController,
    AgentRunCommand,
    CheckConfigCommand,
)

click.rich_click.USE_MARKDOWN = True
AGENT_CONTROLLER = AgentCliController()


def _poll_options(func):
    func = click.option(
        "--key",
        "api_key",
        default=None,
        help="Task server API key. Overrides TASK_CONNECTOR_API_KEY and the config file.",
    )(func)
    func = click.option(
        "--interval",
        "interval_seconds",
        type=click.IntRange(min=1),
        default=None,
        help="Seconds between polls.",
    )(func)
    func = click.option(
        "--report-url",
        default=None,
        help="Address results are POSTed to. Defaults to the poll URL.",
    )(func)
    func = click.option("--url", default=None, help="Task server poll URL.")(func)
    return click.option(
        "--config",
        "config_path",
        type=click.Path(path_type=Path, dir_okay=False),
        default=None,
        help="JSON config file. Defaults to TASK_CONNECTOR_CONFIG or ./conf.json.",
    )(func)


@click.group()
@click.version_option(version=__version__, prog_name="task-connector")
def task_connector() -> None:
    """Poll a task server and run its tasks against local databases."""


@task_connector.command("run")
@_poll_options
@click.option(
    "--once/--no-once",
    default=False,
    show_default=True,
    help="Run a single iteration and exit.",
)
@click.option(
    "--max-iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many iterations (default: run until SIGINT/SIGTERM).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Console log level. Overrides TASK_CONNECTOR_LOG_LEVEL.",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Also write DEBUG logs to this file.",
)
def run(  # noqa: PLR0913
    config_path: Path | None,
    url: str | None,
    report_url: str | None,
    interval_seconds: int | None,
    api_key: str | None,
    once: bool,
    max_iterations: int | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Poll for tasks, execute them and report results.

    Flag values that differ from the config file are written back to it.
    """

    try:
        lines = AGENT_CONTROLLER.run(
            AgentRunCommand(
                config_path=config_path,
                url=url,
                report_url=report_url,
                interval_seconds=interval_seconds,
                api_key=api_key,
                once=once,
                max_iterations=max_iterations,
                log_level=log_level,
                log_file=log_file,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@task_connector.command("check-config")
@_poll_options
def check_config(
    config_path: Path | None,
    url: str | None,
    report_url: str | None,
    interval_seconds: int | None,
    api_key: str | None,
) -> None:
    """Validate configuration and print the effective settings."""

    try:
        lines = AGENT_CONTROLLER.check_config(
            CheckConfigCommand(
                config_path=config_path,
                url=url,
                report_url=report_url,
                interval_seconds=interval_seconds,
                api_key=api_key,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    task_connector()
