"""Domain models for task envelopes, result rows and response envelopes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

from task_connector.agent.errors import DecodeError

logger = logging.getLogger(__name__)

NO_TASK_SENTINEL = "0"


class TaskType(IntEnum):
    """Task kind codes issued by the task server."""

    DB_QUERY = 1
    DB_EXEC = 2


DATABASE_TASK_TYPES: frozenset[int] = frozenset({TaskType.DB_QUERY, TaskType.DB_EXEC})


class ResponseKind(str, Enum):
    """Envelope kinds understood by the task server."""

    SUCCESS = "success"
    ERROR = "error"


class IterationStatus(str, Enum):
    """Terminal state of one polling iteration."""

    NO_TASK = "no_task"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class TaskEnvelope:
    """Unit of work fetched from the task server.

    ``raw_config`` is the serialized ``config`` value exactly as it will be
    handed to the task handler; its schema depends on ``type_code`` only.
    """

    task_id: str
    type_code: int
    payload: str
    raw_config: bytes = b"null"

    @classmethod
    def from_json(cls, body: str | bytes) -> TaskEnvelope:
        """Decode a poll response body into an envelope."""

        try:
            raw = json.loads(body)
        except (TypeError, ValueError) as error:
            raise DecodeError(f"Malformed task envelope: {error}") from error
        if not isinstance(raw, dict):
            raise DecodeError("Malformed task envelope: expected a JSON object")

        task_id = raw.get("id", "")
        type_code = raw.get("type")
        payload = raw.get("payload", "")
        if not isinstance(task_id, str):
            raise DecodeError("Malformed task envelope: id must be a string")
        if isinstance(type_code, bool) or not isinstance(type_code, int) or type_code < 0:
            raise DecodeError("Malformed task envelope: type must be an unsigned integer")
        if not isinstance(payload, str):
            raise DecodeError("Malformed task envelope: payload must be a string")
        raw_config = json.dumps(raw.get("config")).encode("utf-8")
        return cls(task_id=task_id, type_code=type_code, payload=payload, raw_config=raw_config)


@dataclass(slots=True, frozen=True)
class DBTaskConfig:
    """Connection settings for one database task."""

    driver: str
    dsn: str

    @classmethod
    def decode(cls, raw_config: bytes, *, driver: str) -> DBTaskConfig:
        """Decode ``raw_config`` for a database task kind.

        The config may arrive as an object or as a string holding an object.
        ``driver`` always comes from the agent settings.
        """

        try:
            value = json.loads(raw_config)
            if isinstance(value, str):
                value = json.loads(value)
        except (TypeError, ValueError) as error:
            raise DecodeError(f"Malformed database task config: {error}") from error
        if not isinstance(value, dict):
            raise DecodeError("Malformed database task config: expected a JSON object")
        dsn = value.get("dsn")
        if not isinstance(dsn, str) or not dsn.strip():
            raise DecodeError("Malformed database task config: dsn must be a non-empty string")
        server_driver = value.get("type")
        if server_driver is not None and server_driver != driver:
            logger.debug("Ignoring server driver %r, using %r", server_driver, driver)
        return cls(driver=driver, dsn=dsn)


@dataclass(slots=True, frozen=True)
class CellValue:
    """One column value: either NULL or text."""

    value: str | None = None

    @classmethod
    def null(cls) -> CellValue:
        return cls(None)

    @classmethod
    def text(cls, value: str) -> CellValue:
        return cls(value)

    @property
    def is_null(self) -> bool:
        return self.value is None

    def to_wire(self, *, null_as_empty: bool = False) -> str | None:
        if self.value is None:
            return "" if null_as_empty else None
        return self.value


ResultRow = dict[str, CellValue]


@dataclass(slots=True, frozen=True)
class ExecStatus:
    """Outcome of a statement that returns no rows."""

    rows_affected: int


@dataclass(slots=True, frozen=True)
class ResponseEnvelope:
    """Result posted back to the task server."""

    kind: ResponseKind
    body: Any

    @classmethod
    def success_rows(
        cls,
        rows: list[ResultRow],
        *,
        null_as_empty: bool = False,
    ) -> ResponseEnvelope:
        body = [
            {name: cell.to_wire(null_as_empty=null_as_empty) for name, cell in row.items()}
            for row in rows
        ]
        return cls(kind=ResponseKind.SUCCESS, body=body)

    @classmethod
    def success_status(cls, status: ExecStatus) -> ResponseEnvelope:
        return cls(kind=ResponseKind.SUCCESS, body={"rowsAffected": status.rows_affected})

    @classmethod
    def error(cls, message: str) -> ResponseEnvelope:
        return cls(kind=ResponseKind.ERROR, body=message)

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.kind.value, "body": self.body}


@dataclass(slots=True, frozen=True)
class FetchOutcome:
    """Result of one poll request."""

    task: TaskEnvelope | None = None

    @property
    def no_task(self) -> bool:
        return self.task is None


@dataclass(slots=True)
class IterationOutcome:
    """What happened during one polling iteration."""

    status: IterationStatus
    task_id: str | None = None
    error: str | None = None
    reported: bool = False


@dataclass(slots=True)
class PollerRunSummary:
    """Aggregate poller counters for CLI reporting."""

    iterations: int = 0
    succeeded: int = 0
    failed: int = 0
    no_task: int = 0
    skipped_ticks: int = 0
    report_failures: int = 0
    last_outcome: IterationOutcome | None = None

    def record(self, outcome: IterationOutcome) -> None:
        self.last_outcome = outcome
        if outcome.status == IterationStatus.SKIPPED:
            self.skipped_ticks += 1
            return
        self.iterations += 1
        if outcome.status == IterationStatus.SUCCEEDED:
            self.succeeded += 1
        elif outcome.status == IterationStatus.FAILED:
            self.failed += 1
        elif outcome.status == IterationStatus.NO_TASK:
            self.no_task += 1
        if outcome.status in {IterationStatus.SUCCEEDED, IterationStatus.FAILED} and (
            not outcome.reported
        ):
            self.report_failures += 1
