from __future__ import annotations

import json

import allure
import httpx
import pytest

from task_connector.agent.errors import ReportError
from task_connector.agent.models import ResponseEnvelope, ResponseKind
from task_connector.agent.reporter import ResponseReporter
from task_connector.http.client import AUTH_HEADER

from .fakes import API_KEY, REPORT_URL, FakeTaskServer

pytestmark = [
    allure.epic("Task Server"),
    allure.feature("Reporter"),
]


@pytest.fixture()
def reporter(http_client: httpx.Client) -> ResponseReporter:
    return ResponseReporter(client=http_client, url=REPORT_URL)


def test_envelope_is_posted_as_json(
    reporter: ResponseReporter,
    task_server: FakeTaskServer,
) -> None:
    acknowledgment = reporter.report(ResponseEnvelope.error("Task type not recognised"))

    assert acknowledgment == "received"
    assert task_server.reports == [{"type": "error", "body": "Task type not recognised"}]
    request = task_server.report_requests[0]
    assert request.method == "POST"
    assert str(request.url) == REPORT_URL
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers[AUTH_HEADER] == API_KEY


def test_non_ascii_text_is_sent_as_utf8(
    reporter: ResponseReporter,
    task_server: FakeTaskServer,
) -> None:
    reporter.report(ResponseEnvelope(kind=ResponseKind.SUCCESS, body=[{"name": "Zoë"}]))

    assert json.loads(task_server.report_requests[0].content.decode("utf-8")) == {
        "type": "success",
        "body": [{"name": "Zoë"}],
    }


def test_rejected_report_is_report_error(
    reporter: ResponseReporter,
    task_server: FakeTaskServer,
) -> None:
    task_server.report_status = 500

    with pytest.raises(ReportError, match="HTTP 500"):
        reporter.report(ResponseEnvelope.error("boom"))


def test_report_safely_swallows_failure_once(
    reporter: ResponseReporter,
    task_server: FakeTaskServer,
) -> None:
    task_server.report_status = 500

    assert reporter.report_safely(ResponseEnvelope.error("boom")) is False
    assert len(task_server.report_requests) == 1


def test_unserializable_body_is_report_error(
    reporter: ResponseReporter,
    task_server: FakeTaskServer,
) -> None:
    envelope = ResponseEnvelope(kind=ResponseKind.SUCCESS, body=object())

    with pytest.raises(ReportError, match="Cannot serialize success response"):
        reporter.report(envelope)

    assert task_server.report_requests == []


def test_lone_surrogate_is_report_error(
    reporter: ResponseReporter,
    task_server: FakeTaskServer,
) -> None:
    envelope = ResponseEnvelope(kind=ResponseKind.SUCCESS, body=[{"name": "bad \ud800"}])

    with pytest.raises(ReportError, match="Cannot serialize success response"):
        reporter.report(envelope)

    assert reporter.report_safely(envelope) is False
    assert task_server.report_requests == []
