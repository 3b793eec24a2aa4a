"""Task type classification and routing to task handlers."""

from __future__ import annotations

import logging
from typing import Protocol

from task_connector.agent.context import IterationContext
from task_connector.agent.errors import UnknownTaskTypeError
from task_connector.agent.executor import SQLExecutor
from task_connector.agent.models import (
    DATABASE_TASK_TYPES,
    DBTaskConfig,
    ResponseEnvelope,
    TaskEnvelope,
    TaskType,
)

logger = logging.getLogger(__name__)


class TaskHandler(Protocol):
    """Protocol implemented by per-kind task handlers."""

    def handle(self, task: TaskEnvelope, context: IterationContext) -> ResponseEnvelope:
        """Execute the task and build the success envelope."""


def is_database_task(task: TaskEnvelope) -> bool:
    """Whether the task runs a statement against a database."""

    return task.type_code in DATABASE_TASK_TYPES


class DatabaseTaskHandler:
    """Run query and exec tasks through ``SQLExecutor``."""

    def __init__(
        self,
        *,
        executor: SQLExecutor,
        driver: str,
        null_as_empty_string: bool = False,
    ) -> None:
        self.executor = executor
        self.driver = driver
        self.null_as_empty_string = null_as_empty_string

    def handle(self, task: TaskEnvelope, context: IterationContext) -> ResponseEnvelope:
        config = DBTaskConfig.decode(task.raw_config, driver=self.driver)
        if task.type_code == TaskType.DB_QUERY:
            rows = self.executor.query(config, task.payload, context)
            return ResponseEnvelope.success_rows(rows, null_as_empty=self.null_as_empty_string)
        status = self.executor.execute(config, task.payload, context)
        return ResponseEnvelope.success_status(status)


class TaskDispatcher:
    """Route envelopes to the handler registered for their type code."""

    def __init__(self) -> None:
        self._handlers: dict[int, TaskHandler] = {}

    def register(self, type_code: int, handler: TaskHandler) -> None:
        if type_code in self._handlers:
            raise ValueError(f"Handler already registered for task type {type_code}")
        self._handlers[type_code] = handler

    def supports(self, type_code: int) -> bool:
        return type_code in self._handlers

    def dispatch(self, task: TaskEnvelope, context: IterationContext) -> ResponseEnvelope:
        handler = self._handlers.get(task.type_code)
        if handler is None:
            raise UnknownTaskTypeError(task.type_code)
        logger.info("Dispatching task %s of type %d", task.task_id, task.type_code)
        return handler.handle(task, context)


def build_dispatcher(
    *,
    executor: SQLExecutor,
    driver: str,
    null_as_empty_string: bool = False,
) -> TaskDispatcher:
    """Dispatcher with the database handlers for every database task kind."""

    dispatcher = TaskDispatcher()
    handler = DatabaseTaskHandler(
        executor=executor,
        driver=driver,
        null_as_empty_string=null_as_empty_string,
    )
    for type_code in sorted(DATABASE_TASK_TYPES):
        dispatcher.register(type_code, handler)
    return dispatcher
