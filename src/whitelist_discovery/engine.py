"""Wiring of the discovery components from one AppConfig."""

import logging

import httpx

from whitelist_discovery.config import AppConfig
from whitelist_discovery.coordinator import DiscoveryCoordinator
from whitelist_discovery.fetcher import HttpFetcher
from whitelist_discovery.request_filter import RequestFilter
from whitelist_discovery.scheduler import DiscoveryScheduler
from whitelist_discovery.scrape import ScrapeContext, ScrapeResult, ScraperChain
from whitelist_discovery.store import WhitelistStore
from whitelist_discovery.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """Owns the shared fetcher and the components that use it.

    Use as an async context manager: entering opens the HTTP client, loads
    persisted records and registers the configured repositories; leaving
    stops the scheduler and closes the client.
    """

    def __init__(
        self,
        config: AppConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = utcnow,
    ):
        self.config = config
        self.fetcher = HttpFetcher(config.fetcher, transport=transport)
        self.store = WhitelistStore(config.store.path)
        self.chain = ScraperChain.from_registry(config.scrape.disabled_scrapers)
        self.coordinator = DiscoveryCoordinator(
            self.store, self.chain, self.fetcher, config.scrape, clock=clock
        )
        self.scheduler = DiscoveryScheduler(self.coordinator, config.scheduler, clock=clock)
        self.request_filter = RequestFilter(self.store)

    async def __aenter__(self):
        await self.fetcher.__aenter__()
        loaded = await self.store.load()
        configured = {repo.id for repo in self.config.repositories}
        for repository_id in self.store.ids():
            if repository_id not in configured:
                logger.info("Dropping record of unconfigured repository %s", repository_id)
                await self.store.remove(repository_id)
        for repo in self.config.repositories:
            await self.coordinator.register(repo)
        logger.debug(
            "Engine ready: %d repositories, %d persisted records",
            len(configured),
            loaded,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.scheduler.stop()
        await self.fetcher.__aexit__(exc_type, exc_val, exc_tb)

    def may_exist(self, repository_id: str, request_path: str) -> bool:
        return self.request_filter.may_exist(repository_id, request_path)

    async def scrape_url(self, url: str) -> ScrapeResult:
        """Run the scraper chain once against a URL without touching the store."""
        context = ScrapeContext(url, self.fetcher, self.config.scrape)
        return await self.chain.scrape_within_budget(context)
