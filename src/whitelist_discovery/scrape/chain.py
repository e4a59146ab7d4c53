"""Priority-ordered chain of scrapers."""

import asyncio
import logging
from collections.abc import Iterable

from whitelist_discovery.models import ScrapeOutcome
from whitelist_discovery.scrape.base import (
    BaseScraper,
    CrawlError,
    DetectionResult,
    ScrapeResult,
)
from whitelist_discovery.scrape.context import ScrapeContext
from whitelist_discovery.scrape.crawler import describe_failure
from whitelist_discovery.scrape.registry import ScraperRegistry

logger = logging.getLogger(__name__)


class ScraperChain:
    """Try scrapers in ascending priority until one claims the remote.

    A more specific scraper must get the chance to claim a remote before a
    broader one misclassifies it, so order is always ``(priority, id)``.
    """

    def __init__(self, scrapers: Iterable[BaseScraper]):
        self._scrapers = tuple(sorted(scrapers, key=lambda s: (s.priority, s.id)))

    @classmethod
    def from_registry(cls, disabled: Iterable[str] = ()) -> "ScraperChain":
        """Build a chain from every registered scraper except the disabled ids."""
        skip = set(disabled)
        return cls(s for s in ScraperRegistry.list_scrapers() if s.id not in skip)

    async def scrape_within_budget(self, context: ScrapeContext) -> ScrapeResult:
        """Like ``scrape`` but bounded by the context's run_timeout_seconds."""
        budget = context.config.run_timeout_seconds
        try:
            async with asyncio.timeout(budget):
                return await self.scrape(context)
        except TimeoutError:
            message = f"Discovery exceeded {budget:g}s"
            context.remark(message)
            return self._result(context, ScrapeOutcome.TIMED_OUT, message=message)

    @property
    def scrapers(self) -> tuple[BaseScraper, ...]:
        return self._scrapers

    async def scrape(self, context: ScrapeContext) -> ScrapeResult:
        """Run detection down the chain and crawl with the first scraper that recognizes the remote."""
        root = await context.root_page()
        if root.unavailable:
            message = f"Remote root {context.base_url} unavailable: {describe_failure(root)}"
            context.remark(message)
            return self._result(context, ScrapeOutcome.ROOT_UNREACHABLE, message=message)

        for scraper in self._scrapers:
            detection = await self._detect(scraper, context)

            if detection == DetectionResult.RECOGNIZED_SHOULD_BE_SCRAPED:
                try:
                    prefixes = await scraper.crawl(context)
                except CrawlError as e:
                    context.remark(f"{scraper.id}: crawl failed, {e}")
                    return self._result(
                        context, ScrapeOutcome.CRAWL_FAILED, scraper_id=scraper.id, message=str(e)
                    )
                except Exception as e:
                    logger.debug("Scraper %s crashed while crawling", scraper.id, exc_info=True)
                    message = f"{type(e).__name__}: {e}"
                    context.remark(f"{scraper.id}: crawl failed, {message}")
                    return self._result(
                        context, ScrapeOutcome.CRAWL_FAILED, scraper_id=scraper.id, message=message
                    )
                context.remark(f"{scraper.id}: found {len(prefixes)} entries")
                return self._result(
                    context, ScrapeOutcome.SCRAPED, prefixes=prefixes, scraper_id=scraper.id
                )

            if detection == DetectionResult.RECOGNIZED_SHOULD_NOT_BE_SCRAPED:
                return self._result(
                    context,
                    ScrapeOutcome.OPTED_OUT,
                    scraper_id=scraper.id,
                    message=f"Remote recognized by {scraper.id} and should not be scraped",
                )

        context.remark("No scraper recognized the remote")
        return self._result(context, ScrapeOutcome.EXHAUSTED)

    async def _detect(self, scraper: BaseScraper, context: ScrapeContext) -> DetectionResult:
        try:
            detection = await scraper.detect(context)
        except Exception:
            logger.debug("Scraper %s failed during detection", scraper.id, exc_info=True)
            context.remark(f"{scraper.id}: detection error, treated as unrecognized")
            return DetectionResult.UNRECOGNIZED
        logger.debug("Scraper %s on %s: %s", scraper.id, context.base_url, detection.value)
        return detection

    @staticmethod
    def _result(context: ScrapeContext, outcome: ScrapeOutcome, **kwargs) -> ScrapeResult:
        return ScrapeResult(outcome=outcome, remarks=list(context.remarks), **kwargs)
