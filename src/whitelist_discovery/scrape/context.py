"""Per-attempt scraping context."""

import logging
from datetime import datetime, timezone

from whitelist_discovery.config import ScrapeConfig
from whitelist_discovery.fetcher.base import BaseFetcher, FetchResult
from whitelist_discovery.utils.rate_limiter import RateLimiter
from whitelist_discovery.utils.url_utils import ensure_trailing_slash

logger = logging.getLogger(__name__)


class ScrapeContext:
    """Parameters and diagnostics for a single scraping attempt.

    The fetcher is borrowed from the caller and is not closed here. The root
    page is fetched at most once and shared by every scraper in the chain.
    """

    def __init__(
        self,
        base_url: str,
        fetcher: BaseFetcher,
        config: ScrapeConfig | None = None,
        started_at: datetime | None = None,
    ):
        self.base_url = ensure_trailing_slash(base_url)
        self.fetcher = fetcher
        self.config = config or ScrapeConfig()
        self.started_at = started_at or datetime.now(timezone.utc)
        self.remarks: list[str] = []
        self.requests_made = 0
        self.rate_limiter = RateLimiter(self.config.delay_seconds)
        self._root_page: FetchResult | None = None

    def remark(self, message: str) -> None:
        """Record a human-readable diagnostic for this attempt."""
        self.remarks.append(message)
        logger.debug("[%s] %s", self.base_url, message)

    @property
    def budget_left(self) -> int:
        return max(self.config.max_requests - self.requests_made, 0)

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a URL through the borrowed fetcher, counting it against the budget."""
        self.requests_made += 1
        async with self.rate_limiter:
            page = await self.fetcher.fetch(url)

        if page.status_code == 429:
            self.rate_limiter.back_off()
            self.remark(f"Throttled by remote, delay now {self.rate_limiter.delay_seconds:.1f}s")
        elif page.success:
            self.rate_limiter.ease_off()
        return page

    async def root_page(self) -> FetchResult:
        """Fetch the remote root listing once per attempt."""
        if self._root_page is None:
            self._root_page = await self.fetch(self.base_url)
        return self._root_page
