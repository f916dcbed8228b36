"""
Main entry point for the court auction scraper.

Example:
  python main.py --court 부산지방법원 --from 2025-01-01 --to 2025-01-31 --output data/busan.json
"""
import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from courtauction.config import load_settings
from courtauction.errors import FatalScraperError
from courtauction.models import RunOutcome, RunResult, SearchCriteria
from courtauction.scrapers.court_auction_scraper import CourtAuctionScraper
from courtauction.scrapers.session import new_run_id
from courtauction.services.export import RecordExporter
from courtauction.utils.logging_config import configure_logger

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_SEARCH_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Court auction listing scraper")
    parser.add_argument("--court", required=True, help="Court name exactly as listed (e.g. 부산지방법원)")
    parser.add_argument("--from", dest="date_from", required=True, help="First sale date (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", required=True, help="Last sale date (YYYY-MM-DD)")
    parser.add_argument("--max-pages", type=int, default=None,
                        help="Result page cap (default MAX_PAGES env or 50)")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--output", type=str, default=None, help="Write the run as JSON to this path")
    parser.add_argument("--csv", type=str, default=None, help="Write records as CSV to this path")
    parser.add_argument("--no-network", action="store_true", help="Do not record API network traffic")
    return parser


async def handle_run(scraper: CourtAuctionScraper, criteria: SearchCriteria, run_id: str) -> RunResult:
    return await scraper.run(criteria, run_id=run_id)


def exit_code_for(result: RunResult) -> int:
    if result.outcome is RunOutcome.SEARCH_FAILED:
        return EXIT_SEARCH_FAILED
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    run_id = new_run_id()
    configure_logger(run_id=run_id)

    try:
        criteria = SearchCriteria(
            court=args.court,
            date_from=date.fromisoformat(args.date_from),
            date_to=date.fromisoformat(args.date_to),
            page_cap=args.max_pages,
        )
        settings = load_settings()
    except (ValueError, ValidationError) as e:
        logger.error(f"Invalid arguments: {e}")
        return EXIT_FATAL

    overrides = {}
    if args.headed:
        overrides["headless"] = False
    if args.no_network:
        overrides["capture_network"] = False
    if overrides:
        settings = settings.model_copy(update=overrides)

    scraper = CourtAuctionScraper(settings=settings)
    try:
        result = asyncio.run(handle_run(scraper, criteria, run_id))
    except FatalScraperError as e:
        logger.error(f"Run aborted ({e.kind}): {e}")
        return EXIT_FATAL

    exporter = RecordExporter()
    if args.output:
        exporter.to_json(result, Path(args.output))
    if args.csv:
        exporter.to_csv(result.records, Path(args.csv))

    logger.success(
        f"{criteria.describe()}: {result.outcome.value}, {len(result.records)} records, "
        f"{len(result.parse_failures)} parse failures, {result.pages_visited} pages"
    )
    if result.diagnostics is not None:
        logger.info(f"Diagnostics written to {result.diagnostics.directory}")
    return exit_code_for(result)


if __name__ == "__main__":
    sys.exit(main())
