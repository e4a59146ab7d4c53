"""Tests for request pacing."""

from time import monotonic

from whitelist_discovery.config import ScrapeConfig
from whitelist_discovery.scrape import ScrapeContext
from whitelist_discovery.scrape.crawler import IndexCrawler
from whitelist_discovery.utils.rate_limiter import RateLimiter

from conftest import BASE_URL, nginx_listing, serve_nginx_repo


class TestRateLimiter:
    async def test_first_request_starts_immediately(self):
        limiter = RateLimiter(delay_seconds=5.0)

        start = monotonic()
        async with limiter:
            pass

        assert monotonic() - start < 1.0

    async def test_spaces_request_starts(self):
        limiter = RateLimiter(delay_seconds=0.05)

        start = monotonic()
        for _ in range(3):
            async with limiter:
                pass

        assert monotonic() - start >= 0.1

    def test_back_off_doubles_then_eases(self):
        limiter = RateLimiter(delay_seconds=0.5)

        limiter.back_off()
        limiter.back_off()
        assert limiter.delay_seconds == 2.0
        assert limiter.is_throttled
        assert limiter.backoff_count == 2

        limiter.ease_off()
        limiter.ease_off()
        limiter.ease_off()
        assert limiter.delay_seconds == 0.5
        assert not limiter.is_throttled

    def test_back_off_is_capped(self):
        limiter = RateLimiter(delay_seconds=20.0)

        limiter.back_off()
        limiter.back_off()

        assert limiter.delay_seconds == 30.0

    def test_back_off_from_zero_delay(self):
        limiter = RateLimiter(delay_seconds=0.0)

        limiter.back_off()

        assert limiter.delay_seconds > 0


async def test_crawl_is_paced(remote, fetcher):
    serve_nginx_repo(remote)
    context = ScrapeContext(BASE_URL, fetcher, ScrapeConfig(delay_seconds=0.05))

    start = monotonic()
    await IndexCrawler(context).crawl()

    assert context.requests_made == 3
    assert monotonic() - start >= 0.1


async def test_throttled_listing_slows_the_crawl(remote, fetcher):
    remote.add(BASE_URL, nginx_listing("/maven2/", ["lib/", "org/"]))
    remote.add(BASE_URL + "lib/", "slow down", status=429)
    remote.add(BASE_URL + "org/", nginx_listing("/maven2/org/", ["apache/"]))
    context = ScrapeContext(BASE_URL, fetcher, ScrapeConfig(delay_seconds=0.0))

    entries = await IndexCrawler(context).crawl()

    assert {e.path for e in entries} == {"lib", "org", "org/apache"}
    assert context.rate_limiter.backoff_count == 1
    assert any(r.startswith("Throttled by remote") for r in context.remarks)
