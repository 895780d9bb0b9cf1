from __future__ import annotations

import itertools
from datetime import date

import pytest

from bidlink_tracker.duplicates import (
    check_links,
    check_url,
    feedback_for_groups,
    feedback_for_matches,
    find_duplicates,
    format_feedback,
    split_by_source,
)
from bidlink_tracker.models import DuplicateGroup, DuplicateReport, JobLinkEntry, SourceColumn
from bidlink_tracker.urls import normalize

TODAY = date(2025, 6, 1)
URL = "https://example.com/jobs/42"


def entry(
    url: str = URL,
    tab: str = "01/05/2025-01/11/2025",
    row: int = 2,
    column: SourceColumn = SourceColumn.PRIMARY,
    **extra: str,
) -> JobLinkEntry:
    return JobLinkEntry(url=url, partition_name=tab, row_index=row, source_column=column, **extra)


@pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
def test_find_duplicates_original_is_earliest_tab(order) -> None:
    entries = [
        entry(tab="01/01/2025-01/07/2025", row=5),
        entry(url=f"{URL}/?utm_source=x", tab="01/08/2025-01/14/2025", row=3),
        entry(url=URL.upper().replace("HTTPS", "https"), tab="01/15/2025-01/21/2025", row=9),
    ]
    groups = find_duplicates([entries[i] for i in order], today=TODAY)

    assert list(groups) == [normalize(URL)]
    group = groups[normalize(URL)]
    assert [e.partition_name for e in group] == [
        "01/01/2025-01/07/2025",
        "01/08/2025-01/14/2025",
        "01/15/2025-01/21/2025",
    ]
    assert group.original.row_index == 5


def test_find_duplicates_same_unparsable_tab_uses_row_order() -> None:
    entries = [entry(tab="Archive", row=7), entry(tab="Archive", row=4)]
    group = find_duplicates(entries)[normalize(URL)]
    assert [e.row_index for e in group] == [4, 7]


def test_find_duplicates_same_tab_uses_row_order() -> None:
    entries = [entry(row=12), entry(row=3), entry(row=8)]
    group = find_duplicates(entries, today=TODAY)[normalize(URL)]
    assert [e.row_index for e in group] == [3, 8, 12]


def test_find_duplicates_mixed_parsable_and_unparsable_falls_back_to_rows() -> None:
    entries = [entry(tab="01/08/2025-01/14/2025", row=9), entry(tab="Archive", row=2)]
    group = find_duplicates(entries, today=TODAY)[normalize(URL)]
    assert group.original.partition_name == "Archive"


def test_find_duplicates_same_row_keeps_encounter_order() -> None:
    primary = entry(row=4, column=SourceColumn.PRIMARY)
    secondary = entry(row=4, column=SourceColumn.SECONDARY)
    group = find_duplicates([secondary, primary], today=TODAY)[normalize(URL)]
    assert list(group) == [secondary, primary]


def test_find_duplicates_skips_singletons_and_empty_urls() -> None:
    entries = [
        entry(url="https://example.com/only-once"),
        entry(url="", row=3),
        entry(url="   ", row=4),
        entry(url="https://example.com/twice", row=5),
        entry(url="https://example.com/twice/", row=6),
    ]
    groups = find_duplicates(entries, today=TODAY)
    assert list(groups) == ["https://example.com/twice"]
    assert all(len(group) >= 2 for group in groups.values())


def test_duplicate_group_requires_two_entries() -> None:
    with pytest.raises(ValueError):
        DuplicateGroup(key="k", entries=[entry()])


def test_check_url_returns_first_match_in_list_order() -> None:
    later = entry(tab="01/15/2025-01/21/2025", row=9)
    earlier = entry(tab="01/01/2025-01/07/2025", row=2)
    result = check_url(f"{URL}?utm_campaign=x", [later, earlier])
    assert result.is_duplicate
    assert result.match is later


def test_check_url_differs_from_bulk_original() -> None:
    later = entry(tab="01/15/2025-01/21/2025", row=9)
    earlier = entry(tab="01/01/2025-01/07/2025", row=2)
    bulk = find_duplicates([later, earlier], today=TODAY)[normalize(URL)]
    single = check_url(URL, [later, earlier])
    assert bulk.original is earlier
    assert single.match is later


def test_check_url_without_match() -> None:
    result = check_url("https://other.example.com/job", [entry()])
    assert not result.is_duplicate
    assert result.match is None


def test_check_url_empty_input_never_matches() -> None:
    assert not check_url("", [entry(url="")]).is_duplicate


def test_check_links_skips_blank_lines() -> None:
    checks = check_links(["  " + URL + "  ", "", "   ", "https://new.example.com/1"], [entry()])
    assert [c.url for c in checks] == [URL, "https://new.example.com/1"]
    assert [c.is_duplicate for c in checks] == [True, False]


def test_format_feedback() -> None:
    original = entry(date="01/06/2025", sequence_no="14", position="Backend Engineer")
    assert format_feedback(original, SourceColumn.PRIMARY) == (
        "Duplicated of Sheet - 01/06/2025 in [01/05/2025-01/11/2025] Tab- No.14 "
        "- Backend Engineer - Job Url"
    )
    assert format_feedback(entry(), SourceColumn.SECONDARY) == (
        "Duplicated of Sheet - N/A in [01/05/2025-01/11/2025] Tab- No.N/A - N/A - Applied Url"
    )


def test_feedback_for_groups_only_marks_checked_tabs() -> None:
    entries = [
        entry(tab="01/01/2025-01/07/2025", row=2, position="Original"),
        entry(tab="01/08/2025-01/14/2025", row=3, column=SourceColumn.SECONDARY),
        entry(tab="01/15/2025-01/21/2025", row=4),
    ]
    groups = find_duplicates(entries, today=TODAY)

    updates = feedback_for_groups(groups, ["01/15/2025-01/21/2025"])
    assert [(u.partition_name, u.row_index) for u in updates] == [("01/15/2025-01/21/2025", 4)]
    assert "[01/01/2025-01/07/2025]" in updates[0].feedback_text
    assert updates[0].feedback_text.endswith("Original - Job Url")

    all_updates = feedback_for_groups(groups)
    assert [u.source_column for u in all_updates] == [SourceColumn.SECONDARY, SourceColumn.PRIMARY]
    assert all_updates[0].feedback_text.endswith("- Applied Url")


def test_feedback_for_matches_annotates_matched_rows() -> None:
    match = entry(row=6, column=SourceColumn.SECONDARY, date="01/07/2025", sequence_no="3")
    checks = check_links([URL, "https://new.example.com"], [match])
    updates = feedback_for_matches(checks)
    assert len(updates) == 1
    assert updates[0].row_index == 6
    assert updates[0].source_column is SourceColumn.SECONDARY
    assert updates[0].feedback_text.endswith("Applied Url")


def test_split_by_source_and_report_counts() -> None:
    entries = [
        entry(row=2),
        entry(row=3),
        entry(row=4, column=SourceColumn.SECONDARY),
        entry(url="https://example.com/applied", row=5, column=SourceColumn.SECONDARY),
        entry(url="https://example.com/applied", row=6, column=SourceColumn.SECONDARY),
        entry(url="https://example.com/single", row=7),
    ]
    groups = find_duplicates(entries, today=TODAY)
    job_groups, applied_groups = split_by_source(groups)
    assert list(job_groups) == [f"job-{normalize(URL)}"]
    assert list(applied_groups) == ["applied-https://example.com/applied"]

    report = DuplicateReport(groups=groups, checked_partitions=["x"], total_urls=len(entries))
    assert report.job_url_duplicate_count == 1
    assert report.applied_url_duplicate_count == 1
    assert report.total_duplicates == 2
    assert report.available_links == 4
