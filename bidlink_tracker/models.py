from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterator, List, NamedTuple, Optional


class SourceColumn(str, Enum):
    """Which URL-bearing column of a row an entry was read from."""

    PRIMARY = "F"
    SECONDARY = "G"

    @property
    def letter(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return "Job Url" if self is SourceColumn.PRIMARY else "Applied Url"


class ScopeKey(NamedTuple):
    """Identity of the data a fetch belongs to (spreadsheet, profile)."""

    source_key: str
    scope_key: str


@dataclass(frozen=True, slots=True)
class JobLinkEntry:
    """One occurrence of a URL in one spreadsheet tab."""

    url: str
    partition_name: str
    row_index: int  # spreadsheet 1-based row number (including header)
    position: str = ""
    date: str = ""
    sequence_no: str = ""
    company_name: str = ""
    source_column: SourceColumn = SourceColumn.PRIMARY


@dataclass(frozen=True, slots=True)
class PartitionRange:
    """Date window parsed from a tab name such as ``12/15/2025-12/21/2025``."""

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(slots=True)
class DuplicateGroup:
    """Entries sharing a normalized URL; index 0 is the canonical original."""

    key: str
    entries: List[JobLinkEntry]

    def __post_init__(self) -> None:
        if len(self.entries) < 2:
            msg = f"A duplicate group needs at least 2 entries; received {len(self.entries)}"
            raise ValueError(msg)

    @property
    def original(self) -> JobLinkEntry:
        return self.entries[0]

    @property
    def duplicates(self) -> List[JobLinkEntry]:
        return self.entries[1:]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[JobLinkEntry]:
        return iter(self.entries)


@dataclass(frozen=True, slots=True)
class FeedbackUpdate:
    """Intended write: clear the approved flag and set feedback on one row."""

    partition_name: str
    row_index: int
    feedback_text: str
    source_column: SourceColumn = SourceColumn.PRIMARY

    @property
    def is_applied_url(self) -> bool:
        return (
            self.source_column is SourceColumn.SECONDARY
            or "- Applied Url" in self.feedback_text
        )


@dataclass(frozen=True, slots=True)
class CellWrite:
    """A single cell value destined for ``partition_name!cell_ref``."""

    partition_name: str
    cell_ref: str
    value: str

    @property
    def range_ref(self) -> str:
        escaped = self.partition_name.replace("'", "''")
        return f"'{escaped}'!{self.cell_ref}"


@dataclass(frozen=True, slots=True)
class UpdateIssue:
    update: FeedbackUpdate
    reason: str

    def describe(self) -> str:
        return f"{self.update.partition_name} row {self.update.row_index}: {self.reason}"


@dataclass(slots=True)
class WriteOutcome:
    """Result of one feedback write cycle."""

    succeeded: List[FeedbackUpdate] = field(default_factory=list)
    skipped: List[UpdateIssue] = field(default_factory=list)
    failed: List[UpdateIssue] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed)

    @property
    def has_skipped(self) -> bool:
        return bool(self.skipped)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.skipped) + len(self.failed)

    def summary(self) -> str:
        message = f"Updated {len(self.succeeded)} of {self.total} entries"
        if self.skipped:
            message += (
                f". {len(self.skipped)} skipped (already marked as duplicate with Job Url)"
            )
        if self.failed:
            message += f". {len(self.failed)} failed (protected cells)"
        return message


@dataclass(frozen=True, slots=True)
class LinkCheck:
    """Outcome of checking one submitted link against existing entries."""

    url: str
    is_duplicate: bool
    match: Optional[JobLinkEntry] = None


@dataclass(slots=True)
class FetchResult:
    """Entries gathered from a set of tabs, with per-tab failure bookkeeping."""

    entries: List[JobLinkEntry]
    partitions: List[str]
    failed_partitions: List[str] = field(default_factory=list)
    data_elsewhere: Optional[bool] = None  # set only when other tabs were probed
    from_cache: bool = False

    @property
    def no_data_found(self) -> bool:
        return bool(self.partitions) and not self.entries


@dataclass(slots=True)
class DuplicateReport:
    """Result of a bulk duplicate check across a set of tabs."""

    groups: dict[str, DuplicateGroup]
    checked_partitions: List[str]
    total_urls: int

    @property
    def job_url_duplicate_count(self) -> int:
        return _count_extra_entries(self.groups, SourceColumn.PRIMARY)

    @property
    def applied_url_duplicate_count(self) -> int:
        return _count_extra_entries(self.groups, SourceColumn.SECONDARY)

    @property
    def total_duplicates(self) -> int:
        return self.job_url_duplicate_count + self.applied_url_duplicate_count

    @property
    def available_links(self) -> int:
        return self.total_urls - self.total_duplicates


def _count_extra_entries(groups: dict[str, DuplicateGroup], column: SourceColumn) -> int:
    total = 0
    for group in groups.values():
        matching = sum(1 for entry in group if entry.source_column is column)
        if matching > 1:
            total += matching - 1
    return total


@dataclass(slots=True)
class LinkCheckReport:
    """Result of checking submitted links against the recent tabs."""

    checks: List[LinkCheck]
    fetch: FetchResult
    outcome: Optional[WriteOutcome] = None

    @property
    def duplicates(self) -> List[LinkCheck]:
        return [check for check in self.checks if check.is_duplicate]

    @property
    def available(self) -> List[LinkCheck]:
        return [check for check in self.checks if not check.is_duplicate]
