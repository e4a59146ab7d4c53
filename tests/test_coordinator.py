"""Tests for discovery runs and the records they produce."""

import asyncio

import httpx
import pytest

from whitelist_discovery.config import FetcherConfig, ProxyRepositoryConfig, ScrapeConfig
from whitelist_discovery.coordinator import (
    DiscoveryCancelled,
    DiscoveryCoordinator,
    UnknownRepositoryError,
)
from whitelist_discovery.fetcher import HttpFetcher
from whitelist_discovery.models import DiscoveryStatus, ScrapeOutcome
from whitelist_discovery.request_filter import RequestFilter
from whitelist_discovery.scrape import ScraperChain
from whitelist_discovery.store import WhitelistStore

from conftest import BASE_URL, FailingStore, nginx_listing, serve_nginx_repo

REPO = ProxyRepositoryConfig(id="central", remote_url=BASE_URL)


def make_coordinator(fetcher, clock, **scrape):
    return DiscoveryCoordinator(
        WhitelistStore(),
        ScraperChain.from_registry(),
        fetcher,
        ScrapeConfig(**scrape),
        clock=clock,
    )


@pytest.fixture
async def coordinator(fetcher, clock):
    coordinator = make_coordinator(fetcher, clock)
    await coordinator.register(REPO)
    return coordinator


async def test_register_creates_uninitialized_record(fetcher, clock):
    coordinator = make_coordinator(fetcher, clock)

    record = await coordinator.register(REPO)

    assert record.status == DiscoveryStatus.UNINITIALIZED
    assert record.remote_url == BASE_URL
    assert coordinator.store.get("central") is record


async def test_nginx_remote_is_enabled(coordinator, remote, clock):
    serve_nginx_repo(remote)

    record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.ENABLED
    assert record.last_outcome == ScrapeOutcome.SCRAPED
    assert record.top_level_segments == frozenset({"lib", "org"})
    assert {e.path for e in record.prefixes} >= {"org/apache", "lib/tools"}
    assert record.last_success_at == clock.now
    assert record.consecutive_failures == 0
    assert coordinator.store.get("central") is record

    request_filter = RequestFilter(coordinator.store)
    assert request_filter.may_exist("central", "/org/apache/maven/")
    assert not request_filter.may_exist("central", "/com/acme/")


async def test_rediscovery_of_unchanged_remote_is_stable(coordinator, remote):
    serve_nginx_repo(remote)

    first = await coordinator.discover("central")
    second = await coordinator.discover("central")

    assert second.status == first.status == DiscoveryStatus.ENABLED
    assert second.prefixes == first.prefixes


async def test_unknown_repository(coordinator):
    with pytest.raises(UnknownRepositoryError):
        await coordinator.discover("snapshots")
    with pytest.raises(UnknownRepositoryError):
        await coordinator.unregister("snapshots")
    with pytest.raises(UnknownRepositoryError):
        coordinator.status("snapshots")


async def test_unrecognized_remote_clears_whitelist(coordinator, remote):
    serve_nginx_repo(remote)
    await coordinator.discover("central")
    remote.add(BASE_URL, "<html><h1>Welcome</h1></html>", headers={"Server": "nginx/1.18.0"})

    record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.DISABLED
    assert record.last_outcome == ScrapeOutcome.EXHAUSTED
    assert record.prefixes == frozenset()
    assert RequestFilter(coordinator.store).may_exist("central", "/com/acme/")


async def test_nexus_remote_opts_out(coordinator, remote):
    remote.add(BASE_URL, "<html>Nexus Repository Manager</html>",
               headers={"Server": "Nexus/3.61.0-02 (OSS)"})

    record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.DISABLED
    assert record.last_outcome == ScrapeOutcome.OPTED_OUT
    assert record.opted_out
    assert remote.requests == [BASE_URL]


async def test_failures_keep_last_known_prefixes(coordinator, remote, clock):
    serve_nginx_repo(remote)
    enabled = await coordinator.discover("central")
    remote.fail(BASE_URL, httpx.ConnectTimeout("timed out"))

    for _ in range(3):
        clock.advance(hours=1)
        record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.UNSUPPORTED
    assert record.last_outcome == ScrapeOutcome.ROOT_UNREACHABLE
    assert record.consecutive_failures == 3
    assert record.prefixes == enabled.prefixes
    assert record.last_success_at == enabled.last_success_at
    assert record.last_attempt_at == clock.now
    assert "ConnectTimeout" in record.last_error
    # Not enabled, so nothing is filtered
    assert RequestFilter(coordinator.store).may_exist("central", "/com/acme/")


async def test_success_resets_failures(coordinator, remote):
    remote.fail(BASE_URL, httpx.ConnectError("refused"))
    await coordinator.discover("central")
    serve_nginx_repo(remote)

    record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.ENABLED
    assert record.consecutive_failures == 0
    assert record.last_error is None


async def test_disabled_repository_makes_no_requests(fetcher, clock, remote):
    coordinator = make_coordinator(fetcher, clock)
    await coordinator.register(ProxyRepositoryConfig(id="central", remote_url=BASE_URL,
                                                     discovery_enabled=False))
    serve_nginx_repo(remote)

    record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.DISABLED
    assert record.prefixes == frozenset()
    assert remote.requests == []


async def test_run_timeout_is_a_failure(fetcher, clock, remote):
    coordinator = make_coordinator(fetcher, clock, run_timeout_seconds=0.05)
    await coordinator.register(REPO)
    serve_nginx_repo(remote)
    remote.delay(BASE_URL, 5)

    record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.UNSUPPORTED
    assert record.last_outcome == ScrapeOutcome.TIMED_OUT
    assert record.consecutive_failures == 1


async def test_concurrent_discover_calls_share_one_run(coordinator, remote):
    serve_nginx_repo(remote)
    remote.delay(BASE_URL, 0.05)

    first, second = await asyncio.gather(
        coordinator.discover("central"), coordinator.discover("central")
    )

    assert first is second
    assert remote.count(BASE_URL) == 1


async def test_record_shows_discovering_while_running(coordinator, remote):
    serve_nginx_repo(remote)
    remote.delay(BASE_URL, 0.05)

    task = asyncio.create_task(coordinator.discover("central"))
    await remote.request_seen.wait()

    assert coordinator.store.get("central").status == DiscoveryStatus.DISCOVERING
    assert coordinator.status("central").running
    await task
    assert not coordinator.is_running("central")


async def test_delete_during_crawl_leaves_no_record(coordinator, remote):
    serve_nginx_repo(remote)
    remote.delay(BASE_URL, 10)

    task = asyncio.create_task(coordinator.discover("central"))
    await remote.request_seen.wait()
    await coordinator.unregister("central")

    with pytest.raises(DiscoveryCancelled):
        await task
    assert coordinator.store.get("central") is None
    assert not coordinator.is_running("central")


async def test_force_restarts_running_discovery(coordinator, remote):
    serve_nginx_repo(remote)
    remote.delay(BASE_URL, 10)

    first = asyncio.create_task(coordinator.discover("central"))
    await remote.request_seen.wait()
    remote.delays.clear()

    record = await coordinator.discover("central", force=True)

    assert record.status == DiscoveryStatus.ENABLED
    with pytest.raises(DiscoveryCancelled):
        await first
    assert remote.count(BASE_URL) == 2


async def test_changed_remote_url_resets_record(coordinator, remote):
    serve_nginx_repo(remote)
    await coordinator.discover("central")
    moved = ProxyRepositoryConfig(id="central", remote_url="http://mirror.test/maven2/")

    record = await coordinator.register(moved)

    assert record.status == DiscoveryStatus.UNINITIALIZED
    assert record.remote_url == "http://mirror.test/maven2/"
    assert record.prefixes == frozenset()
    assert coordinator.repository("central") is moved


async def test_unchanged_registration_keeps_record(coordinator, remote):
    serve_nginx_repo(remote)
    enabled = await coordinator.discover("central")

    assert await coordinator.register(REPO) is enabled


async def test_repointing_mid_run_drops_stale_result(coordinator, remote):
    serve_nginx_repo(remote)
    remote.delay(BASE_URL, 10)

    task = asyncio.create_task(coordinator.discover("central"))
    await remote.request_seen.wait()
    await coordinator.register(ProxyRepositoryConfig(id="central", remote_url="http://mirror.test/"))

    with pytest.raises(DiscoveryCancelled):
        await task
    record = coordinator.store.get("central")
    assert record.status == DiscoveryStatus.UNINITIALIZED
    assert record.remote_url == "http://mirror.test/"


async def test_status_report(coordinator, remote, clock):
    serve_nginx_repo(remote)
    await coordinator.discover("central")

    report = coordinator.status("central")

    assert report.repository_id == "central"
    assert report.status == DiscoveryStatus.ENABLED
    assert report.prefix_count == 2
    assert report.last_attempt_at == clock.now
    assert not report.running


async def test_concurrent_forced_discoveries_start_one_run(coordinator, remote):
    serve_nginx_repo(remote)
    remote.delay(BASE_URL, 10)

    first = asyncio.create_task(coordinator.discover("central"))
    await remote.request_seen.wait()
    remote.delays.clear()

    a, b = await asyncio.gather(
        coordinator.discover("central", force=True),
        coordinator.discover("central", force=True),
    )

    assert a is b
    assert remote.count(BASE_URL) == 2
    with pytest.raises(DiscoveryCancelled):
        await first


async def test_failed_write_leaves_previous_record(tmp_path, fetcher, clock, remote):
    store = FailingStore(tmp_path)
    coordinator = DiscoveryCoordinator(store, ScraperChain.from_registry(), fetcher, clock=clock)
    await coordinator.register(REPO)
    serve_nginx_repo(remote)
    store.failing = True

    with pytest.raises(OSError, match="disk full"):
        await coordinator.discover("central")

    assert store.get("central").status == DiscoveryStatus.UNINITIALIZED
    assert not coordinator.is_running("central")


async def test_truncated_root_listing_keeps_previous_whitelist(remote, clock):
    serve_nginx_repo(remote)
    async with HttpFetcher(FetcherConfig(max_body_bytes=2048), transport=remote.transport) as fetcher:
        coordinator = make_coordinator(fetcher, clock)
        await coordinator.register(REPO)
        enabled = await coordinator.discover("central")
        children = [f"group{i:04d}/" for i in range(200)]
        remote.add(BASE_URL, nginx_listing("/maven2/", children), headers={"Server": "nginx/1.18.0"})

        record = await coordinator.discover("central")

    assert record.status == DiscoveryStatus.UNSUPPORTED
    assert record.last_outcome == ScrapeOutcome.CRAWL_FAILED
    assert "exceeds 2048 bytes" in record.last_error
    assert record.prefixes == enabled.prefixes
    assert RequestFilter(coordinator.store).may_exist("central", "/group0199/x.jar")
