"""Post task results back to the task server."""

from __future__ import annotations

import json
import logging

import httpx

from task_connector.agent.errors import ReportError
from task_connector.agent.models import ResponseEnvelope

logger = logging.getLogger(__name__)


class ResponseReporter:
    """Serialize response envelopes and POST them to the report address."""

    def __init__(self, *, client: httpx.Client, url: str) -> None:
        self.client = client
        self.url = url

    def report(self, envelope: ResponseEnvelope) -> str:
        """Post one envelope and return the server acknowledgment body."""

        try:
            payload = json.dumps(envelope.to_wire(), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as error:
            # UnicodeEncodeError (lone surrogates) is a ValueError.
            raise ReportError(
                f"Cannot serialize {envelope.kind.value} response: {error}",
            ) from error

        try:
            response = self.client.post(
                self.url,
                content=payload,
                headers={"Content-Type": "application/json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as error:
            raise ReportError(f"Report request failed: {error}") from error
        if not response.is_success:
            raise ReportError(f"Report request failed: HTTP {response.status_code}")

        acknowledgment = response.text
        logger.debug(
            "Task server acknowledged %s response: %s",
            envelope.kind.value,
            acknowledgment,
        )
        return acknowledgment

    def report_safely(self, envelope: ResponseEnvelope) -> bool:
        """Report without raising; a failed report is logged and dropped."""

        try:
            self.report(envelope)
        except ReportError as error:
            logger.error("Failed to report %s response: %s", envelope.kind.value, error)
            return False
        return True
