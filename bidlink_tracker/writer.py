"""Write duplicate feedback back to the sheet, tolerating protected cells."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Sequence

from .config import ColumnsConfig
from .errors import ProtectedCellError
from .models import CellWrite, FeedbackUpdate, UpdateIssue, WriteOutcome

LOGGER = logging.getLogger(__name__)

ReadFeedback = Callable[[str, int, int], Sequence[str]]
WriteCells = Callable[[Sequence[CellWrite]], None]

APPROVED_CLEARED = "FALSE"
JOB_URL_MARKER = "- Job Url"
SKIP_REASON = "Already marked as duplicate with Job Url"


class FeedbackWriter:
    """Apply feedback updates: clear the approved flag and set the feedback text.

    Updates that would replace a job-url duplicate annotation with an
    applied-url one are skipped, whether the job-url text is already in the
    sheet or comes from another update in the same call. The surviving
    updates are written in one batch; when the batch is refused because of
    protected cells, each update is retried on its own, one cell at a time,
    so that every protected cell is reported against its row.
    """

    def __init__(
        self,
        read_feedback: ReadFeedback,
        write_cells: WriteCells,
        columns: ColumnsConfig | None = None,
    ) -> None:
        self._read_feedback = read_feedback
        self._write_cells = write_cells
        self._columns = columns or ColumnsConfig()

    def apply_feedback(self, updates: Sequence[FeedbackUpdate]) -> WriteOutcome:
        outcome = WriteOutcome()
        if not updates:
            return outcome

        existing = self._existing_feedback(updates)
        # Rows that receive Job Url feedback in this same batch.
        job_url_rows = {
            (update.partition_name, update.row_index)
            for update in updates
            if not update.is_applied_url
        }
        pending: List[FeedbackUpdate] = []
        for update in updates:
            row_key = (update.partition_name, update.row_index)
            current = existing.get(row_key, "")
            if update.is_applied_url and (JOB_URL_MARKER in current or row_key in job_url_rows):
                LOGGER.warning(
                    "Skipping feedback update for %s row %s: already has Job Url duplicate feedback",
                    update.partition_name,
                    update.row_index,
                )
                outcome.skipped.append(UpdateIssue(update=update, reason=SKIP_REASON))
                continue
            pending.append(update)

        if pending:
            self._write(pending, outcome)

        LOGGER.info("%s", outcome.summary())
        return outcome

    # Precedence ----------------------------------------------------------------
    def _existing_feedback(
        self, updates: Sequence[FeedbackUpdate]
    ) -> Dict[tuple[str, int], str]:
        rows_by_partition: Dict[str, List[int]] = {}
        for update in updates:
            rows_by_partition.setdefault(update.partition_name, []).append(update.row_index)

        existing: Dict[tuple[str, int], str] = {}
        for partition_name, rows in rows_by_partition.items():
            first_row = min(rows)
            last_row = max(rows)
            try:
                cells = self._read_feedback(partition_name, first_row, last_row)
            except Exception as exc:
                LOGGER.warning(
                    "Error reading feedback for tab %s; writing without precedence check: %s",
                    partition_name,
                    exc,
                )
                continue
            for row in rows:
                offset = row - first_row
                value = cells[offset] if offset < len(cells) else ""
                existing[(partition_name, row)] = (value or "").strip()
        return existing

    # Writing -------------------------------------------------------------------
    def _approved_cell(self, update: FeedbackUpdate) -> CellWrite:
        return CellWrite(
            partition_name=update.partition_name,
            cell_ref=f"{self._columns.approved}{update.row_index}",
            value=APPROVED_CLEARED,
        )

    def _feedback_cell(self, update: FeedbackUpdate) -> CellWrite:
        return CellWrite(
            partition_name=update.partition_name,
            cell_ref=f"{self._columns.feedback}{update.row_index}",
            value=update.feedback_text,
        )

    def _write(self, pending: List[FeedbackUpdate], outcome: WriteOutcome) -> None:
        batch: List[CellWrite] = []
        for update in pending:
            batch.append(self._approved_cell(update))
            batch.append(self._feedback_cell(update))

        try:
            self._write_cells(batch)
        except ProtectedCellError as exc:
            LOGGER.warning(
                "Batch write of %s cells refused (%s); retrying cell by cell",
                len(batch),
                exc,
            )
            self._write_individually(pending, outcome)
            return
        outcome.succeeded.extend(pending)

    def _write_individually(self, pending: List[FeedbackUpdate], outcome: WriteOutcome) -> None:
        cells = (
            (self._approved_cell, "Approved"),
            (self._feedback_cell, "Feedback"),
        )
        for update in pending:
            failure: str | None = None
            for build_cell, label in cells:
                cell = build_cell(update)
                try:
                    self._write_cells([cell])
                except ProtectedCellError:
                    column = cell.cell_ref.rstrip("0123456789")
                    failure = (
                        f"Column {column} ({label}) is protected at row {update.row_index}"
                    )
                    break
            if failure is None:
                outcome.succeeded.append(update)
                continue
            LOGGER.warning("%s: %s", update.partition_name, failure)
            outcome.failed.append(UpdateIssue(update=update, reason=failure))


__all__ = ["APPROVED_CLEARED", "FeedbackWriter", "ReadFeedback", "SKIP_REASON", "WriteCells"]
