"""Scraping strategies for remote repository listings."""

from whitelist_discovery.scrape.base import (
    BaseScraper,
    CrawlError,
    DetectionResult,
    RemoteServerProfile,
    ScrapeResult,
)
from whitelist_discovery.scrape.chain import ScraperChain
from whitelist_discovery.scrape.context import ScrapeContext
from whitelist_discovery.scrape.generated_index import (
    BodyContainsCheck,
    GeneratedIndexScraper,
    HeaderPrefixCheck,
    ParentDirectoryMarker,
)
from whitelist_discovery.scrape.nexus import NexusScraper
from whitelist_discovery.scrape.registry import ScraperRegistry

__all__ = [
    "BaseScraper",
    "BodyContainsCheck",
    "CrawlError",
    "DetectionResult",
    "GeneratedIndexScraper",
    "HeaderPrefixCheck",
    "NexusScraper",
    "ParentDirectoryMarker",
    "RemoteServerProfile",
    "ScrapeContext",
    "ScrapeResult",
    "ScraperChain",
    "ScraperRegistry",
]
