"""Poll the task server for the next pending task."""

from __future__ import annotations

import logging

import httpx

from task_connector.agent.errors import NetworkError
from task_connector.agent.models import NO_TASK_SENTINEL, FetchOutcome, TaskEnvelope

logger = logging.getLogger(__name__)


class TaskFetcher:
    """Issue one poll request per call; the poller owns the retry cadence."""

    def __init__(self, *, client: httpx.Client, url: str) -> None:
        self.client = client
        self.url = url

    def fetch(self) -> FetchOutcome:
        logger.info("Checking for tasks...")
        try:
            response = self.client.get(self.url)
        except httpx.TimeoutException as error:
            raise NetworkError(f"Timeout polling {self.url}") from error
        except httpx.HTTPError as error:
            raise NetworkError(f"Poll request failed: {error}") from error
        if not response.is_success:
            raise NetworkError(f"Poll request failed: HTTP {response.status_code}")

        body = response.text
        if body == NO_TASK_SENTINEL:
            logger.info("No tasks")
            return FetchOutcome()

        task = TaskEnvelope.from_json(body)
        logger.info("Task found: %s", task.task_id)
        return FetchOutcome(task=task)
