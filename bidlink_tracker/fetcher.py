"""Parallel reading of weekly tabs into job link entries using ThreadPoolExecutor."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Sequence

from .cache import MISS, ReadCache
from .config import ColumnsConfig
from .errors import NoPartitionsError
from .models import FetchResult, JobLinkEntry, ScopeKey, SourceColumn
from .tabs import recent_tabs

LOGGER = logging.getLogger(__name__)

ReadRows = Callable[[str], Sequence[Sequence[str]]]
ListPartitions = Callable[[], Sequence[str]]


def _cell(row: Sequence[str], idx: int) -> str:
    if idx < len(row) and row[idx] is not None:
        return str(row[idx]).strip()
    return ""


def entries_from_rows(
    partition_name: str,
    rows: Sequence[Sequence[str]],
    columns: ColumnsConfig | None = None,
) -> List[JobLinkEntry]:
    """Extract job-url and applied-url entries from the raw rows of one tab.

    The first row is the header. An applied url equal to the job url on the
    same row is not reported twice.
    """

    columns = columns or ColumnsConfig()
    date_idx = columns.index("date")
    no_idx = columns.index("sequence_no")
    company_idx = columns.index("company")
    position_idx = columns.index("position")
    job_idx = columns.index("job_url")
    applied_idx = columns.index("applied_url")

    entries: List[JobLinkEntry] = []
    for absolute_idx in range(1, len(rows)):
        row = rows[absolute_idx]
        if not row:
            continue

        job_url = _cell(row, job_idx)
        applied_url = _cell(row, applied_idx)
        if not job_url and not applied_url:
            continue

        common = {
            "partition_name": partition_name,
            "row_index": absolute_idx + 1,
            "position": _cell(row, position_idx),
            "date": _cell(row, date_idx),
            "sequence_no": _cell(row, no_idx),
            "company_name": _cell(row, company_idx),
        }
        if job_url:
            entries.append(
                JobLinkEntry(url=job_url, source_column=SourceColumn.PRIMARY, **common)
            )
        if applied_url and applied_url != job_url:
            entries.append(
                JobLinkEntry(url=applied_url, source_column=SourceColumn.SECONDARY, **common)
            )
    return entries


class PartitionFetcher:
    """Read many tabs concurrently, tolerating failures of individual tabs."""

    def __init__(
        self,
        read_rows: ReadRows,
        *,
        list_partitions: Optional[ListPartitions] = None,
        columns: ColumnsConfig | None = None,
        max_workers: int = 8,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be 1 or greater")
        self._read_rows = read_rows
        self._list_partitions = list_partitions
        self._columns = columns or ColumnsConfig()
        self._max_workers = max_workers

    def _fetch_one(self, partition_name: str) -> List[JobLinkEntry]:
        rows = self._read_rows(partition_name) or []
        LOGGER.debug("Tab '%s': found %s rows (including header)", partition_name, len(rows))
        entries = entries_from_rows(partition_name, rows, self._columns)
        LOGGER.debug("Tab '%s': extracted %s URLs", partition_name, len(entries))
        return entries

    def fetch_entries(self, partitions: Sequence[str]) -> FetchResult:
        """Fetch every tab in parallel and flatten the entries in tab order."""

        partitions = list(partitions)
        if not partitions:
            return FetchResult(entries=[], partitions=[])

        start_time = time.time()
        per_partition: Dict[int, List[JobLinkEntry]] = {}
        failed: List[str] = []
        workers = min(self._max_workers, len(partitions))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tab-reader") as executor:
            future_to_index = {
                executor.submit(self._fetch_one, name): idx
                for idx, name in enumerate(partitions)
            }
            for future in as_completed(future_to_index):
                idx = future_to_index[future]
                name = partitions[idx]
                try:
                    per_partition[idx] = future.result()
                except Exception as exc:
                    LOGGER.warning("Error reading tab '%s': %s", name, exc)
                    failed.append(name)
                    per_partition[idx] = []

        entries: List[JobLinkEntry] = []
        for idx in range(len(partitions)):
            entries.extend(per_partition.get(idx, []))

        LOGGER.info(
            "Fetched %s URLs from %s tab(s) in %.2fs (%s failed)",
            len(entries),
            len(partitions),
            time.time() - start_time,
            len(failed),
        )
        failed.sort(key=partitions.index)
        result = FetchResult(entries=entries, partitions=partitions, failed_partitions=failed)
        if result.no_data_found:
            LOGGER.warning(
                "No URLs found in tabs %s; they may be empty or hold no URLs in columns %s/%s",
                ", ".join(partitions),
                self._columns.job_url,
                self._columns.applied_url,
            )
        return result

    def list_partitions(self, source_key: str = "") -> List[str]:
        if self._list_partitions is None:
            raise RuntimeError("No tab listing collaborator configured")
        partitions = list(self._list_partitions())
        if not partitions:
            raise NoPartitionsError(source_key)
        return partitions

    def load_recent_entries(
        self,
        scope: ScopeKey,
        *,
        cache: ReadCache | None = None,
        tab_count: int | None = 4,
        force_refresh: bool = False,
    ) -> FetchResult:
        """Entries from the most recent tabs, reusing the cache while it is fresh.

        When the recent tabs hold nothing but older tabs exist, the older
        tabs are probed so the caller can suggest widening the scope.
        """

        if cache is not None:
            cache.switch_scope(scope.source_key, scope.scope_key)
            if not force_refresh:
                cached = cache.get(scope.source_key, scope.scope_key)
                if cached is not MISS:
                    current = cache.current
                    partitions = current.partitions if current is not None else []
                    return FetchResult(
                        entries=list(cached),
                        partitions=list(partitions),
                        from_cache=True,
                    )

        all_partitions = self.list_partitions(scope.source_key)
        selected = recent_tabs(all_partitions, tab_count)
        LOGGER.info(
            "Checking %s of %s tab(s): %s",
            len(selected),
            len(all_partitions),
            ", ".join(selected),
        )
        result = self.fetch_entries(selected)

        if result.no_data_found and len(all_partitions) > len(selected):
            LOGGER.info("Probing all %s tabs for URLs", len(all_partitions))
            probe = self.fetch_entries(all_partitions)
            result.data_elsewhere = bool(probe.entries)
            if result.data_elsewhere:
                LOGGER.warning(
                    "URLs exist in other tabs, but not in the last %s tab(s)",
                    len(selected),
                )

        if cache is not None:
            cache.put(scope.source_key, scope.scope_key, result.entries, partitions=selected)
        return result


__all__ = ["ListPartitions", "PartitionFetcher", "ReadRows", "entries_from_rows"]
