"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from .fakes import FakeClock, FakeTaskServer, RecordingEngineFactory, seed_two_row_table


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path: Path) -> None:
    """Keep TASK_CONNECTOR_* variables and ./conf.json out of every test."""

    for name in list(os.environ):
        if name.startswith("TASK_CONNECTOR_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def task_server() -> FakeTaskServer:
    return FakeTaskServer()


@pytest.fixture()
def http_client(task_server: FakeTaskServer):
    client = task_server.client()
    yield client
    client.close()


@pytest.fixture()
def fixture_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "fixture.db"
    seed_two_row_table(db_path)
    return db_path


@pytest.fixture()
def engine_factory(fixture_db: Path) -> RecordingEngineFactory:
    return RecordingEngineFactory(db_path=fixture_db)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()
