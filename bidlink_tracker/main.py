from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Callable, List, Sequence

from dotenv import find_dotenv, load_dotenv

from .cache import ReadCache
from .config import AppConfig, load_config
from .duplicates import split_by_source
from .errors import BidLinkError
from .fetcher import PartitionFetcher
from .google_sheets import GoogleSheetsClient
from .models import DuplicateReport, LinkCheckReport, ScopeKey, WriteOutcome
from .pipeline import check_sheet, check_submitted_links, diagnose, mark_duplicates, submit_links
from .writer import FeedbackWriter

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2

_PROTECTION_HELP = (
    "To fix this: open the spreadsheet, go to Data > Protect sheets and ranges and remove "
    "protection from the Approved and Feedback columns, or share the spreadsheet with edit "
    "permissions for the service account."
)


LOGGER = logging.getLogger("bidlink_tracker")


def _load_env_files(config_path: Path) -> None:
    """Load .env files from the working directory and next to the config file.

    Variables already set in the environment win over both files.
    """

    if load_dotenv(find_dotenv(usecwd=True), override=False):
        LOGGER.debug("Loaded .env from the working directory")

    config_env = config_path.parent / ".env"
    if config_env.exists() and load_dotenv(dotenv_path=config_env, override=False):
        LOGGER.debug("Loaded %s", config_env)


def _parse_day(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}'; expected YYYY-MM-DD") from exc


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Find and mark duplicate job links across weekly spreadsheet tabs"
    )
    parser.add_argument("--config", required=True, help="Path to the YAML configuration file")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sheet = commands.add_parser("check-sheet", help="Find duplicates across tabs")
    sheet.add_argument(
        "--tabs",
        type=int,
        default=None,
        help="Only check the last N tabs (default: all tabs)",
    )
    sheet.add_argument(
        "--mark",
        action="store_true",
        help="Write feedback for every duplicate found in the checked tabs",
    )
    sheet.add_argument(
        "--links",
        action="store_true",
        help="Print a direct link to the original row of each duplicate group",
    )

    links = commands.add_parser("check-links", help="Check new links against recent tabs")
    links.add_argument("links", nargs="*", help="Links to check")
    links.add_argument("--file", type=Path, default=None, help="File with one link per line")
    links.add_argument(
        "--no-feedback",
        action="store_true",
        help="Do not write feedback to the rows that already hold a submitted link",
    )
    links.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore cached entries and re-read the tabs",
    )

    submit = commands.add_parser("submit", help="Add links that are not duplicates")
    submit.add_argument("links", nargs="*", help="Links to submit")
    submit.add_argument("--file", type=Path, default=None, help="File with one link per line")
    submit.add_argument(
        "--date",
        type=_parse_day,
        default=None,
        help="Application date (YYYY-MM-DD, default: today)",
    )

    commands.add_parser("diagnose", help="Test the connection and report URLs per tab")
    return parser.parse_args(argv)


def _read_links(args: argparse.Namespace) -> List[str]:
    links = list(args.links or [])
    if args.file is not None:
        links.extend(args.file.read_text(encoding="utf-8").splitlines())
    return [link.strip() for link in links if link.strip()]


def _build_client(config: AppConfig) -> GoogleSheetsClient:
    return GoogleSheetsClient(config.sheets, config.columns)


def _row_linker(client: GoogleSheetsClient) -> Callable[[str, int], str]:
    gids = client.partition_ids()

    def _row_url(partition_name: str, row_number: int) -> str:
        return client.build_row_url(row_number, gids.get(partition_name))

    return _row_url


def _report_outcome(outcome: WriteOutcome) -> int:
    print(outcome.summary())
    for issue in outcome.skipped:
        print(f"  skipped: {issue.describe()}")
    for issue in outcome.failed:
        print(f"  failed: {issue.describe()}")
    if outcome.is_partial:
        print(_PROTECTION_HELP)
        return EXIT_PARTIAL
    return EXIT_OK


def _print_duplicate_report(
    report: DuplicateReport, row_url: Callable[[str, int], str] | None = None
) -> None:
    job_groups, applied_groups = split_by_source(report.groups)
    print(f"Checked {len(report.checked_partitions)} tab(s): {', '.join(report.checked_partitions)}")
    print(
        f"Total URLs: {report.total_urls}, duplicates: {report.total_duplicates} "
        f"({report.job_url_duplicate_count} Job Url, {report.applied_url_duplicate_count} Applied Url), "
        f"available: {report.available_links}"
    )
    for title, groups in (("Job Url duplicates", job_groups), ("Applied Url duplicates", applied_groups)):
        if not groups:
            continue
        print(f"\n{title}:")
        for group in groups.values():
            original = group.original
            print(f"  {original.url}")
            print(f"    original: [{original.partition_name}] row {original.row_index}")
            if row_url is not None:
                print(f"      {row_url(original.partition_name, original.row_index)}")
            for entry in group.duplicates:
                print(f"    duplicate: [{entry.partition_name}] row {entry.row_index}")


def _print_link_report(report: LinkCheckReport) -> None:
    for check in report.duplicates:
        match = check.match
        where = f"{match.partition_name} - {match.position}" if match else ""
        print(f"DUPLICATE  {check.url}  ({where})")
    for check in report.available:
        print(f"AVAILABLE  {check.url}")
    print(
        f"Total: {len(report.checks)}, available: {len(report.available)}, "
        f"duplicates: {len(report.duplicates)}"
    )


def _print_no_data(report: LinkCheckReport, scope: ScopeKey) -> None:
    fetched = report.fetch
    print(
        f"No existing URLs found in the last {len(fetched.partitions)} tabs of "
        f"spreadsheet \"{scope.source_key}\"."
    )
    if fetched.data_elsewhere:
        print("URLs exist in older tabs; consider checking more tabs (recent_tab_count).")
    print("Run the 'diagnose' command for detailed information.")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config_path = Path(args.config).expanduser().resolve()
    _load_env_files(config_path)
    try:
        config = load_config(config_path)
    except (FileNotFoundError, BidLinkError) as exc:
        LOGGER.error("%s", exc)
        return EXIT_FAILURE

    client = _build_client(config)
    scope = ScopeKey(source_key=client.spreadsheet_id, scope_key=config.profile_name)
    fetcher = PartitionFetcher(
        client.read_rows,
        list_partitions=client.list_partitions,
        columns=config.columns,
        max_workers=config.max_workers,
    )
    writer = FeedbackWriter(client.read_feedback, client.write_cells, config.columns)
    cache = ReadCache(ttl=config.cache_ttl_seconds)

    try:
        if args.command == "check-sheet":
            report = check_sheet(fetcher, source_key=scope.source_key, tab_count=args.tabs)
            row_url = _row_linker(client) if args.links else None
            _print_duplicate_report(report, row_url)
            if args.mark and report.groups:
                return _report_outcome(mark_duplicates(report, writer))
            return EXIT_OK

        if args.command == "check-links":
            links = _read_links(args)
            link_report = check_submitted_links(
                links,
                fetcher,
                scope,
                cache=cache,
                writer=None if args.no_feedback else writer,
                tab_count=config.recent_tab_count,
                force_refresh=args.refresh,
            )
            if link_report.fetch.no_data_found:
                _print_no_data(link_report, scope)
                return EXIT_FAILURE
            _print_link_report(link_report)
            if link_report.outcome is not None:
                return _report_outcome(link_report.outcome)
            return EXIT_OK

        if args.command == "submit":
            links = _read_links(args)
            link_report, tab = submit_links(
                links,
                fetcher,
                scope,
                client.append_job_links,
                cache=cache,
                day=args.date,
                tab_count=config.recent_tab_count,
            )
            _print_link_report(link_report)
            if tab is not None:
                print(f"Added {len(link_report.available)} link(s) to tab {tab}")
            return EXIT_OK

        if args.command == "diagnose":
            for line in diagnose(fetcher, scope, tab_count=config.recent_tab_count):
                print(line)
            return EXIT_OK
    except BidLinkError as exc:
        LOGGER.error("%s", exc)
        return EXIT_FAILURE

    return EXIT_FAILURE  # pragma: no cover - argparse enforces a command


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
