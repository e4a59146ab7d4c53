"""Detection of remotes that are themselves Nexus repository managers."""

from whitelist_discovery.models import PrefixEntry
from whitelist_discovery.scrape.base import (
    BaseScraper,
    CrawlError,
    DetectionResult,
    RemoteServerProfile,
)
from whitelist_discovery.scrape.context import ScrapeContext


class NexusScraper(BaseScraper):
    """Claims Nexus remotes and opts them out of scraping.

    A Nexus publishes its own prefix data, so crawling its generated pages
    would only duplicate it at a much higher request cost.
    """

    SERVER_PREFIX = "Nexus/"

    def __init__(self, profile: RemoteServerProfile | None = None):
        super().__init__(
            profile or RemoteServerProfile(id="nexus", priority=1000, display_name="Sonatype Nexus")
        )

    async def detect(self, context: ScrapeContext) -> DetectionResult:
        page = await context.root_page()
        if page.status_code == 0:
            return DetectionResult.UNRECOGNIZED

        server = page.header("server")
        if server and server.startswith(self.SERVER_PREFIX):
            context.remark(f"Remote is {server}, not scraping")
            return DetectionResult.RECOGNIZED_SHOULD_NOT_BE_SCRAPED
        return DetectionResult.UNRECOGNIZED

    async def crawl(self, context: ScrapeContext) -> set[PrefixEntry]:
        raise CrawlError("Nexus remotes are never crawled")
