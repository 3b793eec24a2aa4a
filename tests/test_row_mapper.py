from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import allure
import pytest

from task_connector.agent.errors import ScanError
from task_connector.agent.models import CellValue
from task_connector.agent.row_mapper import RowMapper

pytestmark = [
    allure.epic("Task Execution"),
    allure.feature("Row Mapping"),
]


def test_row_keys_follow_declared_column_order() -> None:
    mapper = RowMapper(["zeta", "alpha", "mid"])
    mapper.update((1, "two", None))

    row = mapper.get()

    assert list(row) == ["zeta", "alpha", "mid"]
    assert row == {
        "zeta": CellValue.text("1"),
        "alpha": CellValue.text("two"),
        "mid": CellValue.null(),
    }


def test_null_in_next_row_does_not_inherit_previous_value() -> None:
    mapper = RowMapper(["id", "name"])

    mapper.update((1, "first"))
    first = mapper.get()
    mapper.update((2, None))
    second = mapper.get()

    assert first["name"] == CellValue.text("first")
    assert second["name"].is_null
    assert second["id"] == CellValue.text("2")


def test_scan_buffer_is_empty_after_each_update() -> None:
    mapper = RowMapper(["a", "b"])

    mapper.update((b"x", "y"))

    assert mapper.buffer_is_empty()


def test_scan_buffer_is_reset_when_conversion_fails() -> None:
    mapper = RowMapper(["a", "b"])

    with pytest.raises(ScanError):
        mapper.update(("ok", object()))

    assert mapper.buffer_is_empty()


def test_get_returns_independent_rows() -> None:
    mapper = RowMapper(["id"])
    mapper.update((1,))
    first = mapper.get()
    mapper.update((2,))

    assert first == {"id": CellValue.text("1")}
    assert mapper.get() == {"id": CellValue.text("2")}


def test_driver_values_are_rendered_as_text() -> None:
    mapper = RowMapper(["raw", "view", "flag", "amount", "ratio", "day", "at"])
    mapper.update(
        (
            b"bytes",
            memoryview(b"view"),
            True,
            Decimal("10.50"),
            0.25,
            date(2026, 2, 18),
            datetime(2026, 2, 18, 12, 30, tzinfo=UTC),
        ),
    )

    row = mapper.get()

    assert {name: cell.value for name, cell in row.items()} == {
        "raw": "bytes",
        "view": "view",
        "flag": "1",
        "amount": "10.50",
        "ratio": "0.25",
        "day": "2026-02-18",
        "at": "2026-02-18T12:30:00+00:00",
    }


def test_unsupported_value_names_column_index_and_name() -> None:
    mapper = RowMapper(["id", "payload"])

    with pytest.raises(ScanError, match="index 1 column payload") as error:
        mapper.update((1, {"nested": True}))

    assert error.value.column_index == 1
    assert error.value.column_name == "payload"


def test_non_utf8_bytes_raise_scan_error() -> None:
    mapper = RowMapper(["blob"])

    with pytest.raises(ScanError, match="index 0 column blob"):
        mapper.update((b"\xff\xfe",))


def test_row_width_mismatch_raises_scan_error() -> None:
    mapper = RowMapper(["id", "name"])

    with pytest.raises(ScanError, match="index 1 column name"):
        mapper.update((1,))
