"""Row mapping for result sets with columns unknown in advance."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from task_connector.agent.errors import ScanError
from task_connector.agent.models import CellValue, ResultRow

_EMPTY = object()


class RowMapper:
    """Map driver rows to ``ResultRow`` keyed by column name.

    One scan buffer sized to the column count is allocated per task and
    reused for every row. Each slot is reset to empty as soon as its value has
    been copied into the row mapping, so a driver that reuses backing storage
    cannot leak a value from one row into the next.
    """

    def __init__(self, column_names: Sequence[str]) -> None:
        self.column_names = tuple(column_names)
        self.column_count = len(self.column_names)
        self._buffer: list[object] = [_EMPTY] * self.column_count
        self._row: ResultRow = {}

    def update(self, raw_row: Sequence[object]) -> None:
        """Scan one driver row and refresh the current row mapping."""

        if len(raw_row) != self.column_count:
            index = min(len(raw_row), self.column_count - 1) if self.column_count else 0
            name = self.column_names[index] if self.column_count else "<none>"
            raise ScanError(index, name)
        self._buffer[:] = raw_row
        row: ResultRow = {}
        try:
            for index, name in enumerate(self.column_names):
                row[name] = _to_cell(self._buffer[index], index=index, name=name)
                self._buffer[index] = _EMPTY
        finally:
            self._reset_buffer()
        self._row = row

    def get(self) -> ResultRow:
        """Return a copy of the most recently scanned row."""

        return dict(self._row)

    def buffer_is_empty(self) -> bool:
        return all(slot is _EMPTY for slot in self._buffer)

    def _reset_buffer(self) -> None:
        for index in range(self.column_count):
            self._buffer[index] = _EMPTY


def _to_cell(value: object, *, index: int, name: str) -> CellValue:  # noqa: PLR0911
    if value is None:
        return CellValue.null()
    if isinstance(value, str):
        return CellValue.text(value)
    if isinstance(value, bytes | bytearray | memoryview):
        try:
            return CellValue.text(bytes(value).decode("utf-8"))
        except UnicodeDecodeError as error:
            raise ScanError(index, name) from error
    if isinstance(value, bool):
        return CellValue.text("1" if value else "0")
    if isinstance(value, int | float | Decimal | UUID | timedelta):
        return CellValue.text(str(value))
    if isinstance(value, datetime | date | time):
        return CellValue.text(value.isoformat())
    raise ScanError(index, name)
