"""Shared fixtures: an in-memory stand-in for the spreadsheet transport."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import pytest

from bidlink_tracker.errors import ProtectedCellError
from bidlink_tracker.models import CellWrite

HEADER = [
    "Date",
    "No",
    "Job Site",
    "Company Name",
    "Position",
    "Job Url",
    "Applied Url",
    "Approved",
    "Feedback",
    "Bonus",
]


def make_row(
    url: str = "",
    applied: str = "",
    *,
    day: str = "01/01/2025",
    no: str = "1",
    company: str = "Acme",
    position: str = "Engineer",
    approved: str = "TRUE",
    feedback: str = "",
) -> List[str]:
    return [day, no, "site", company, position, url, applied, approved, feedback, ""]


class FakeSheet:
    """Tabs held in memory, with optional protected cells and unreadable tabs."""

    def __init__(self, tabs: Optional[Dict[str, List[List[str]]]] = None) -> None:
        self.tabs: Dict[str, List[List[str]]] = {
            name: [list(HEADER)] + [list(row) for row in rows]
            for name, rows in (tabs or {}).items()
        }
        self.protected: set[str] = set()
        self.failing_tabs: set[str] = set()
        self.read_calls: List[str] = []
        self.write_calls: List[List[CellWrite]] = []
        self._lock = threading.Lock()

    def list_partitions(self) -> List[str]:
        return list(self.tabs)

    def read_rows(self, partition_name: str) -> List[List[str]]:
        with self._lock:
            self.read_calls.append(partition_name)
        if partition_name in self.failing_tabs:
            raise RuntimeError(f"unable to read {partition_name}")
        return [list(row) for row in self.tabs[partition_name]]

    def read_feedback(self, partition_name: str, first_row: int, last_row: int) -> List[str]:
        rows = self.tabs[partition_name]
        cells = []
        for row_number in range(first_row, last_row + 1):
            row = rows[row_number - 1] if row_number - 1 < len(rows) else []
            cells.append(row[8] if len(row) > 8 else "")
        return cells

    def write_cells(self, writes: Sequence[CellWrite]) -> None:
        self.write_calls.append(list(writes))
        for write in writes:
            if f"{write.partition_name}!{write.cell_ref}" in self.protected:
                raise ProtectedCellError(
                    "You are trying to edit a protected cell or object.",
                    cell_ref=write.range_ref,
                )
        for write in writes:
            self._set(write)

    def cell(self, partition_name: str, cell_ref: str) -> str:
        column = ord(cell_ref[0]) - ord("A")
        row = self.tabs[partition_name][int(cell_ref[1:]) - 1]
        return row[column] if column < len(row) else ""

    def _set(self, write: CellWrite) -> None:
        column = ord(write.cell_ref[0]) - ord("A")
        row_number = int(write.cell_ref[1:])
        rows = self.tabs[write.partition_name]
        while len(rows) < row_number:
            rows.append([""] * len(HEADER))
        row = rows[row_number - 1]
        row.extend([""] * (column + 1 - len(row)))
        row[column] = write.value


@pytest.fixture
def fake_sheet() -> Callable[..., FakeSheet]:
    def _factory(tabs: Optional[Dict[str, Iterable[List[str]]]] = None) -> FakeSheet:
        return FakeSheet({name: list(rows) for name, rows in (tabs or {}).items()})

    return _factory


class ManualClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
