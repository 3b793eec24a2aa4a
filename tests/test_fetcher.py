from __future__ import annotations

import allure
import httpx
import pytest

from task_connector.agent.errors import DecodeError, NetworkError
from task_connector.agent.fetcher import TaskFetcher
from task_connector.http.client import AUTH_HEADER

from .fakes import API_KEY, POLL_URL, FakeTaskServer

pytestmark = [
    allure.epic("Task Server"),
    allure.feature("Fetcher"),
]


@pytest.fixture()
def fetcher(http_client: httpx.Client) -> TaskFetcher:
    return TaskFetcher(client=http_client, url=POLL_URL)


def test_zero_body_means_no_task(fetcher: TaskFetcher, task_server: FakeTaskServer) -> None:
    outcome = fetcher.fetch()

    assert outcome.no_task
    assert len(task_server.polls) == 1
    request = task_server.polls[0]
    assert request.method == "GET"
    assert str(request.url) == POLL_URL
    assert request.headers[AUTH_HEADER] == API_KEY


def test_task_envelope_is_decoded(fetcher: TaskFetcher, task_server: FakeTaskServer) -> None:
    task_server.queue_task(
        {"id": "t-7", "type": 2, "payload": "DELETE FROM t", "config": {"dsn": "u:p@/db"}},
    )

    outcome = fetcher.fetch()

    assert not outcome.no_task
    assert outcome.task is not None
    assert outcome.task.task_id == "t-7"
    assert outcome.task.type_code == 2
    assert outcome.task.payload == "DELETE FROM t"


@pytest.mark.parametrize("body", ["00", " 0", "", "{not json"])
def test_anything_but_exact_zero_must_be_an_envelope(
    fetcher: TaskFetcher,
    task_server: FakeTaskServer,
    body: str,
) -> None:
    task_server.queue_body(body)

    with pytest.raises(DecodeError):
        fetcher.fetch()


def test_server_error_status_is_network_error(
    fetcher: TaskFetcher,
    task_server: FakeTaskServer,
) -> None:
    task_server.queue_body("down", status_code=503)

    with pytest.raises(NetworkError, match="HTTP 503"):
        fetcher.fetch()


def test_transport_failure_is_network_error(
    fetcher: TaskFetcher,
    task_server: FakeTaskServer,
) -> None:
    task_server.queue_error(httpx.ConnectError("connection refused"))

    with pytest.raises(NetworkError, match="connection refused"):
        fetcher.fetch()


def test_timeout_is_network_error(fetcher: TaskFetcher, task_server: FakeTaskServer) -> None:
    task_server.queue_error(httpx.ReadTimeout("slow"))

    with pytest.raises(NetworkError, match="Timeout polling"):
        fetcher.fetch()
