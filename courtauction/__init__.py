"""Court auction (법원경매) listing acquisition."""

from courtauction.models import PropertyRecord, RunOutcome, RunResult, SearchCriteria
from courtauction.scrapers.court_auction_scraper import CourtAuctionScraper

__all__ = ["CourtAuctionScraper", "PropertyRecord", "RunOutcome", "RunResult", "SearchCriteria"]
