"""Weekly tab names: parsing, ordering and date lookup."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from functools import cmp_to_key
from typing import Iterable, List, Optional, Sequence

from .models import PartitionRange

DATE_FORMAT = "%m/%d/%Y"

_YEAR_SUFFIX = re.compile(r"\d{4}$")
_DATE_SHAPE = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def format_date(day: date) -> str:
    return day.strftime(DATE_FORMAT)


def is_valid_date_format(text: str) -> bool:
    """Return True for strings shaped exactly like ``MM/DD/YYYY`` that are real dates."""

    if not _DATE_SHAPE.match(text):
        return False
    try:
        datetime.strptime(text, DATE_FORMAT)
    except ValueError:
        return False
    return True


def _parse_part(part: str, year: int) -> date | None:
    text = part.strip()
    if not _YEAR_SUFFIX.search(text):
        text = f"{text}/{year}"
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError:
        return None


def parse_range(name: str, *, today: date | None = None) -> Optional[PartitionRange]:
    """Parse ``MM/DD[/YYYY]-MM/DD[/YYYY]`` into a date range.

    Parts without a year take the current year. Returns None for anything
    that does not parse. Inverted ranges are returned as-is.
    """

    if not isinstance(name, str):
        return None
    parts = name.split("-")
    if len(parts) != 2:
        return None

    year = (today or date.today()).year
    start = _parse_part(parts[0], year)
    end = _parse_part(parts[1], year)
    if start is None or end is None:
        return None
    return PartitionRange(start=start, end=end)


def is_valid(name: str) -> bool:
    return parse_range(name) is not None


def sort_by_start_date(names: Iterable[str]) -> List[str]:
    """Return tab names ordered by start date.

    Names that cannot be parsed compare equal to every other name, so the
    stable sort leaves them where the pairwise comparison puts them.
    """

    ordered = list(names)
    ranges = {name: parse_range(name) for name in ordered}

    def _compare(first: str, second: str) -> int:
        range_a = ranges[first]
        range_b = ranges[second]
        if range_a is None or range_b is None:
            return 0
        return (range_a.start - range_b.start).days

    return sorted(ordered, key=cmp_to_key(_compare))


def tab_name_for_date(day: date) -> str:
    """Name of the Sunday-to-Saturday week containing ``day``."""

    week_start = day - timedelta(days=(day.weekday() + 1) % 7)
    week_end = week_start + timedelta(days=6)
    return f"{format_date(week_start)}-{format_date(week_end)}"


def find_tab_for_date(day: date, tabs: Sequence[str]) -> Optional[str]:
    """Return the tab holding ``day``: exact week name first, then any range containing it."""

    target = tab_name_for_date(day)
    if target in tabs:
        return target

    for name in tabs:
        tab_range = parse_range(name, today=day)
        if tab_range is not None and tab_range.contains(day):
            return name
    return None


def recent_tabs(tabs: Sequence[str], count: int | None) -> List[str]:
    """Last ``count`` tabs in storage order; all of them when ``count`` is None."""

    if count is None or count >= len(tabs):
        return list(tabs)
    if count <= 0:
        return []
    return list(tabs[-count:])


__all__ = [
    "DATE_FORMAT",
    "find_tab_for_date",
    "format_date",
    "is_valid",
    "is_valid_date_format",
    "parse_range",
    "recent_tabs",
    "sort_by_start_date",
    "tab_name_for_date",
]
