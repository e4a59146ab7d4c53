"""Registry of scraping strategies."""

from whitelist_discovery.scrape.base import BaseScraper, RemoteServerProfile
from whitelist_discovery.scrape.generated_index import (
    BodyContainsCheck,
    GeneratedIndexScraper,
    HeaderPrefixCheck,
    ParentDirectoryMarker,
)
from whitelist_discovery.scrape.nexus import NexusScraper

NEXUS_SCRAPER = NexusScraper()

HTTPD_INDEX_SCRAPER = GeneratedIndexScraper(
    profile=RemoteServerProfile(
        id="httpd-index",
        priority=2000,
        display_name="Apache HTTPD Index Page",
    ),
    marker=ParentDirectoryMarker(text="Parent Directory", hrefs=("{parent}", "../")),
    checks=[HeaderPrefixCheck(header="Server", prefix="Apache")],
)

LIGHTTPD_INDEX_SCRAPER = GeneratedIndexScraper(
    profile=RemoteServerProfile(
        id="lighttpd-index",
        priority=4000,
        display_name="Lighttpd Index Page",
    ),
    marker=ParentDirectoryMarker(text="Parent Directory", hrefs=("../",)),
    checks=[HeaderPrefixCheck(header="Server", prefix="lighttpd")],
)

NGINX_INDEX_SCRAPER = GeneratedIndexScraper(
    profile=RemoteServerProfile(
        id="nginx-index",
        priority=5000,
        display_name="Nginx Index Page",
    ),
    marker=ParentDirectoryMarker(text="../", hrefs=("../",)),
    checks=[HeaderPrefixCheck(header="Server", prefix="nginx/")],
)

# Catch-all for autoindex pages from servers without a dedicated scraper
GENERIC_INDEX_SCRAPER = GeneratedIndexScraper(
    profile=RemoteServerProfile(
        id="generic-index",
        priority=9000,
        display_name="Generic Index Page",
    ),
    marker=ParentDirectoryMarker(text=None, hrefs=("../",)),
    checks=[BodyContainsCheck(text="Index of")],
)


class ScraperRegistry:
    """Registry of known scrapers, keyed by profile id."""

    _scrapers: dict[str, BaseScraper] = {
        scraper.id: scraper
        for scraper in (
            NEXUS_SCRAPER,
            HTTPD_INDEX_SCRAPER,
            LIGHTTPD_INDEX_SCRAPER,
            NGINX_INDEX_SCRAPER,
            GENERIC_INDEX_SCRAPER,
        )
    }

    @classmethod
    def register(cls, scraper: BaseScraper) -> None:
        """Register a new scraper, replacing any with the same id."""
        cls._scrapers[scraper.id] = scraper

    @classmethod
    def get(cls, scraper_id: str) -> BaseScraper | None:
        """Get a scraper by id."""
        return cls._scrapers.get(scraper_id)

    @classmethod
    def list_scrapers(cls) -> list[BaseScraper]:
        """List all registered scrapers in the order they are tried."""
        return sorted(cls._scrapers.values(), key=lambda s: (s.priority, s.id))

    @classmethod
    def list_profiles(cls) -> list[RemoteServerProfile]:
        return [scraper.profile for scraper in cls.list_scrapers()]
