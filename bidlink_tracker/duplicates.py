"""Group spreadsheet entries by normalized URL and build feedback for duplicates."""

from __future__ import annotations

import logging
from datetime import date
from functools import cmp_to_key
from typing import Callable, Collection, Dict, Iterable, List, Optional, Sequence

from .models import (
    DuplicateGroup,
    FeedbackUpdate,
    JobLinkEntry,
    LinkCheck,
    PartitionRange,
    SourceColumn,
)
from .tabs import parse_range
from .urls import normalize

LOGGER = logging.getLogger(__name__)

_MISSING = "N/A"


def _entry_comparator(today: date | None) -> Callable[[JobLinkEntry, JobLinkEntry], int]:
    ranges: Dict[str, Optional[PartitionRange]] = {}

    def _range(name: str) -> Optional[PartitionRange]:
        if name not in ranges:
            ranges[name] = parse_range(name, today=today)
        return ranges[name]

    def _compare(first: JobLinkEntry, second: JobLinkEntry) -> int:
        range_a = _range(first.partition_name)
        range_b = _range(second.partition_name)
        if range_a is not None and range_b is not None:
            day_diff = (range_a.start - range_b.start).days
            if day_diff:
                return day_diff
        return first.row_index - second.row_index

    return _compare


def find_duplicates(
    entries: Iterable[JobLinkEntry],
    *,
    today: date | None = None,
) -> Dict[str, DuplicateGroup]:
    """Return duplicate groups keyed by normalized URL.

    Within a group the earliest tab (then the lowest row) comes first and is
    treated as the original. Keys seen only once are not returned.
    """

    buckets: Dict[str, List[JobLinkEntry]] = {}
    for entry in entries:
        key = normalize(entry.url)
        if not key:
            continue
        buckets.setdefault(key, []).append(entry)

    compare = cmp_to_key(_entry_comparator(today))
    groups: Dict[str, DuplicateGroup] = {}
    for key, bucket in buckets.items():
        if len(bucket) < 2:
            continue
        groups[key] = DuplicateGroup(key=key, entries=sorted(bucket, key=compare))

    LOGGER.debug(
        "Grouped %s distinct URLs into %s duplicate groups",
        len(buckets),
        len(groups),
    )
    return groups


def check_url(url: str, existing: Iterable[JobLinkEntry]) -> LinkCheck:
    """Check one link against existing entries, returning the first match seen."""

    key = normalize(url)
    if key:
        for entry in existing:
            if normalize(entry.url) == key:
                return LinkCheck(url=url, is_duplicate=True, match=entry)
    return LinkCheck(url=url, is_duplicate=False)


def check_links(links: Iterable[str], existing: Sequence[JobLinkEntry]) -> List[LinkCheck]:
    """Run :func:`check_url` for each non-blank line of input."""

    cleaned = [link.strip() for link in links if link and link.strip()]
    return [check_url(link, existing) for link in cleaned]


def format_feedback(original: JobLinkEntry, source_column: SourceColumn) -> str:
    """Feedback text pointing a duplicate row back at ``original``."""

    return (
        f"Duplicated of Sheet - {original.date or _MISSING} "
        f"in [{original.partition_name or _MISSING}] "
        f"Tab- No.{original.sequence_no or _MISSING} "
        f"- {original.position or _MISSING} - {source_column.label}"
    )


def feedback_for_groups(
    groups: Dict[str, DuplicateGroup],
    checked_partitions: Optional[Collection[str]] = None,
) -> List[FeedbackUpdate]:
    """Build feedback updates for every non-original entry of each group.

    When ``checked_partitions`` is given, only entries living in those tabs
    are annotated; the original may sit anywhere.
    """

    updates: List[FeedbackUpdate] = []
    for group in groups.values():
        original = group.original
        for entry in group.duplicates:
            if checked_partitions is not None and entry.partition_name not in checked_partitions:
                continue
            updates.append(
                FeedbackUpdate(
                    partition_name=entry.partition_name,
                    row_index=entry.row_index,
                    feedback_text=format_feedback(original, entry.source_column),
                    source_column=entry.source_column,
                )
            )
    return updates


def feedback_for_matches(checks: Iterable[LinkCheck]) -> List[FeedbackUpdate]:
    """Build feedback updates for the existing rows matched by submitted links."""

    updates: List[FeedbackUpdate] = []
    for check in checks:
        match = check.match
        if not check.is_duplicate or match is None:
            continue
        if not match.partition_name or match.row_index < 1:
            continue
        updates.append(
            FeedbackUpdate(
                partition_name=match.partition_name,
                row_index=match.row_index,
                feedback_text=format_feedback(match, match.source_column),
                source_column=match.source_column,
            )
        )
    return updates


def split_by_source(
    groups: Dict[str, DuplicateGroup],
) -> tuple[Dict[str, DuplicateGroup], Dict[str, DuplicateGroup]]:
    """Split groups into job-url-only and applied-url-only groups."""

    job_groups: Dict[str, DuplicateGroup] = {}
    applied_groups: Dict[str, DuplicateGroup] = {}
    for key, group in groups.items():
        job_entries = [e for e in group if e.source_column is SourceColumn.PRIMARY]
        applied_entries = [e for e in group if e.source_column is SourceColumn.SECONDARY]
        if len(job_entries) > 1:
            job_groups[f"job-{key}"] = DuplicateGroup(key=key, entries=job_entries)
        if len(applied_entries) > 1:
            applied_groups[f"applied-{key}"] = DuplicateGroup(key=key, entries=applied_entries)
    return job_groups, applied_groups


__all__ = [
    "check_links",
    "check_url",
    "feedback_for_groups",
    "feedback_for_matches",
    "find_duplicates",
    "format_feedback",
    "split_by_source",
]
