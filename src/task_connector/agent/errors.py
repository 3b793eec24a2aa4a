"""Error taxonomy for one polling iteration."""

from __future__ import annotations


class AgentError(RuntimeError):
    """Iteration-local failure that is reported to the task server."""


class NetworkError(AgentError):
    """Transport failure while talking to the task server."""


class DecodeError(AgentError):
    """Malformed task envelope or task config."""


class UnknownTaskTypeError(AgentError):
    """Task type code outside the known set."""

    def __init__(self, type_code: int) -> None:
        super().__init__("Task type not recognised")
        self.type_code = type_code


class DatabaseConnectionError(AgentError):
    """Database could not be opened for the task."""


class ExecutionError(AgentError):
    """Statement or result metadata failure."""


class TaskTimeoutError(ExecutionError):
    """Task ran past its execution deadline."""


class TaskCancelledError(ExecutionError):
    """Task was cancelled because the agent is shutting down."""


class ScanError(AgentError):
    """Column value could not be rendered as text."""

    def __init__(self, column_index: int, column_name: str) -> None:
        super().__init__(f"Cannot convert index {column_index} column {column_name} to text")
        self.column_index = column_index
        self.column_name = column_name


class ReportError(AgentError):
    """Result could not be serialized or posted back."""
