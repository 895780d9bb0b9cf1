from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .cache import ReadCache
from .duplicates import check_links, feedback_for_groups, feedback_for_matches, find_duplicates
from .errors import BidLinkError
from .fetcher import PartitionFetcher
from .models import DuplicateReport, LinkCheck, LinkCheckReport, ScopeKey, WriteOutcome
from .tabs import find_tab_for_date, format_date, recent_tabs
from .writer import FeedbackWriter

LOGGER = logging.getLogger("bidlink_tracker.pipeline")

AppendLinks = Callable[[str, Sequence[Tuple[str, str]]], int]


def check_sheet(
    fetcher: PartitionFetcher,
    *,
    source_key: str = "",
    tab_count: Optional[int] = None,
    today: date | None = None,
) -> DuplicateReport:
    """Find duplicates across the last ``tab_count`` tabs (all tabs when None)."""

    all_partitions = fetcher.list_partitions(source_key)
    selected = recent_tabs(all_partitions, tab_count)
    label = "ALL" if tab_count is None else f"last {tab_count}"
    LOGGER.info(
        "Checking duplicates in %s tabs (%s of %s): %s",
        label,
        len(selected),
        len(all_partitions),
        ", ".join(selected),
    )

    fetched = fetcher.fetch_entries(selected)
    groups = find_duplicates(fetched.entries, today=today)
    report = DuplicateReport(
        groups=groups,
        checked_partitions=selected,
        total_urls=len(fetched.entries),
    )
    LOGGER.info(
        "Found %s duplicate groups, %s duplicate entries among %s URLs",
        len(groups),
        report.total_duplicates,
        report.total_urls,
    )
    return report


def mark_duplicates(report: DuplicateReport, writer: FeedbackWriter) -> WriteOutcome:
    """Write feedback for every duplicate found in the checked tabs."""

    updates = feedback_for_groups(report.groups, report.checked_partitions)
    if not updates:
        LOGGER.info("No duplicates to mark in the selected tabs")
        return WriteOutcome()
    tabs = sorted({update.partition_name for update in updates})
    LOGGER.info(
        "Marking %s duplicate entries from %s groups in tabs: %s",
        len(updates),
        len(report.groups),
        ", ".join(tabs),
    )
    return writer.apply_feedback(updates)


def check_submitted_links(
    links: Iterable[str],
    fetcher: PartitionFetcher,
    scope: ScopeKey,
    *,
    cache: ReadCache | None = None,
    writer: FeedbackWriter | None = None,
    tab_count: Optional[int] = 4,
    force_refresh: bool = False,
) -> LinkCheckReport:
    """Check links against the recent tabs and annotate the rows they match.

    When the recent tabs hold no URLs at all, nothing is checked and the
    returned report carries ``fetch.no_data_found``.
    """

    cleaned = [link.strip() for link in links if link and link.strip()]
    if not cleaned:
        raise BidLinkError("Please enter at least one job link")

    fetched = fetcher.load_recent_entries(
        scope,
        cache=cache,
        tab_count=tab_count,
        force_refresh=force_refresh,
    )
    if fetched.no_data_found:
        return LinkCheckReport(checks=[], fetch=fetched)

    checks = check_links(cleaned, fetched.entries)
    report = LinkCheckReport(checks=checks, fetch=fetched)
    LOGGER.info(
        "Checked %s links: %s duplicate, %s available",
        len(checks),
        len(report.duplicates),
        len(report.available),
    )

    if writer is not None:
        updates = feedback_for_matches(checks)
        if updates:
            report.outcome = writer.apply_feedback(updates)
    return report


def submit_links(
    links: Iterable[str],
    fetcher: PartitionFetcher,
    scope: ScopeKey,
    append_links: AppendLinks,
    *,
    cache: ReadCache | None = None,
    day: date | None = None,
    tab_count: Optional[int] = 4,
) -> Tuple[LinkCheckReport, Optional[str]]:
    """Append the links that are not duplicates to the tab covering ``day``.

    Returns the check report and the tab written to (None when every link
    was a duplicate).
    """

    day = day or date.today()
    links = list(links)
    report = check_submitted_links(
        links,
        fetcher,
        scope,
        cache=cache,
        tab_count=tab_count,
    )
    if report.fetch.no_data_found:
        available: List[LinkCheck] = [
            LinkCheck(url=link.strip(), is_duplicate=False)
            for link in links
            if link and link.strip()
        ]
        report.checks = available
    else:
        available = report.available
    if not available:
        LOGGER.info("All submitted links are duplicates; nothing to add")
        return report, None

    tab = find_tab_for_date(day, fetcher.list_partitions(scope.source_key))
    if tab is None:
        raise BidLinkError(f"No tab covers {format_date(day)}; create the week's tab first")

    append_links(tab, [(format_date(day), check.url) for check in available])
    if cache is not None:
        cache.invalidate()
    return report, tab


def diagnose(
    fetcher: PartitionFetcher,
    scope: ScopeKey,
    *,
    tab_count: Optional[int] = 4,
) -> List[str]:
    """Build a plain-text connection report for the active spreadsheet."""

    lines = [
        "=== Connection Test Results ===",
        f"Spreadsheet ID: {scope.source_key}",
        f"Profile: {scope.scope_key}",
    ]
    all_partitions = fetcher.list_partitions(scope.source_key)
    lines.append(f"Total tabs found: {len(all_partitions)}")
    lines.append(f"Tab names: {', '.join(all_partitions)}")

    selected = recent_tabs(all_partitions, tab_count)
    lines.append(f"Checking last {len(selected)} tab(s): {', '.join(selected)}")

    total = 0
    for name in selected:
        result = fetcher.fetch_entries([name])
        if result.failed_partitions:
            lines.append(f'Tab "{name}": ERROR - could not be read')
            continue
        total += len(result.entries)
        lines.append(f'Tab "{name}": {len(result.entries)} URL(s) found')
        for idx, entry in enumerate(result.entries[:3], start=1):
            url = entry.url if len(entry.url) <= 60 else f"{entry.url[:60]}..."
            lines.append(f"    {idx}. {url}")

    lines.append(f"Total URLs in last {len(selected)} tab(s): {total}")
    if total == 0:
        everything = fetcher.fetch_entries(all_partitions)
        lines.append(f"Total URLs across ALL tabs: {len(everything.entries)}")
        if everything.entries:
            lines.append(
                f"URLs exist in other tabs, but not in the last {len(selected)} tab(s). "
                "Consider using tabs that contain data."
            )
    else:
        lines.append("Connection successful! URLs are available for duplicate checking.")
    return lines
