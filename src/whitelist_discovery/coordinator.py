"""Discovery runs for proxy repositories."""

import asyncio
import logging
from typing import assert_never

from whitelist_discovery.config import ProxyRepositoryConfig, ScrapeConfig
from whitelist_discovery.fetcher.base import BaseFetcher
from whitelist_discovery.models import (
    DiscoveryReport,
    DiscoveryStatus,
    ScrapeOutcome,
    WhitelistRecord,
)
from whitelist_discovery.scrape.base import ScrapeResult
from whitelist_discovery.scrape.chain import ScraperChain
from whitelist_discovery.scrape.context import ScrapeContext
from whitelist_discovery.store import WhitelistStore
from whitelist_discovery.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class UnknownRepositoryError(LookupError):
    """The repository id was never registered with the coordinator."""

    def __init__(self, repository_id: str):
        super().__init__(f"Unknown proxy repository: {repository_id}")
        self.repository_id = repository_id


class DiscoveryCancelled(Exception):
    """The run a caller was waiting on was cancelled by someone else."""

    def __init__(self, repository_id: str):
        super().__init__(f"Discovery for {repository_id} was cancelled")
        self.repository_id = repository_id


class DiscoveryCoordinator:
    """Runs the scraper chain for repositories and writes the outcome to the store.

    At most one run per repository is in flight. A second ``discover`` call
    joins the running one unless ``force`` is set, in which case the running
    one is cancelled first. A cancelled run writes nothing further.
    """

    def __init__(
        self,
        store: WhitelistStore,
        chain: ScraperChain,
        fetcher: BaseFetcher,
        config: ScrapeConfig | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.chain = chain
        self.fetcher = fetcher
        self.config = config or ScrapeConfig()
        self._clock = clock
        self._repositories: dict[str, ProxyRepositoryConfig] = {}
        self._inflight: dict[str, asyncio.Task[WhitelistRecord]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # Registration

    async def register(self, repo: ProxyRepositoryConfig) -> WhitelistRecord:
        """Start tracking a proxy repository, resetting its record if the remote changed."""
        self._repositories[repo.id] = repo
        record = self.store.get(repo.id)
        if record is None or record.remote_url != repo.remote_url:
            await self.cancel(repo.id)
            record = WhitelistRecord(repository_id=repo.id, remote_url=repo.remote_url)
            await self.store.put(record)
            logger.info("Registered %s -> %s", repo.id, repo.remote_url)
        return record

    async def unregister(self, repository_id: str) -> None:
        """Forget a deleted repository, cancelling any running discovery."""
        self._require(repository_id)
        del self._repositories[repository_id]
        await self.cancel(repository_id)
        await self.store.remove(repository_id)
        self._locks.pop(repository_id, None)
        logger.info("Unregistered %s", repository_id)

    def repository(self, repository_id: str) -> ProxyRepositoryConfig:
        return self._require(repository_id)

    def repositories(self) -> list[ProxyRepositoryConfig]:
        return list(self._repositories.values())

    # Runs

    def is_running(self, repository_id: str) -> bool:
        task = self._inflight.get(repository_id)
        return task is not None and not task.done()

    async def discover(self, repository_id: str, *, force: bool = False) -> WhitelistRecord:
        """Run discovery for one repository and return the resulting record.

        ``force`` restarts a run that was already in flight when the call was
        made. A run started by another caller meanwhile is joined instead.
        """
        self._require(repository_id)
        seen = self._inflight.get(repository_id)

        # Task replacement is serialised; waiting on the run happens outside the lock
        async with self._locks.setdefault(repository_id, asyncio.Lock()):
            task = self._inflight.get(repository_id)
            running = task is not None and not task.done()
            if running and force and task is seen:
                await self.cancel(repository_id)
                running = False

            if not running:
                repo = self._require(repository_id)
                task = asyncio.create_task(self._run(repo), name=f"discovery:{repository_id}")
                self._inflight[repository_id] = task
                task.add_done_callback(lambda t: self._forget(repository_id, t))

        assert task is not None
        return await self._wait(repository_id, task)

    async def cancel(self, repository_id: str) -> bool:
        """Cancel a running discovery and wait for it to stop. Returns whether one was running."""
        task = self._inflight.get(repository_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.wait([task])
        logger.info("Cancelled discovery for %s", repository_id)
        return True

    async def cancel_all(self) -> None:
        for repository_id in list(self._inflight):
            await self.cancel(repository_id)

    def status(self, repository_id: str) -> DiscoveryReport:
        """Operator view of one repository's discovery state."""
        self._require(repository_id)
        record = self.store.get(repository_id) or WhitelistRecord(repository_id=repository_id)
        return DiscoveryReport(
            repository_id=repository_id,
            status=record.status,
            last_outcome=record.last_outcome,
            last_attempt_at=record.last_attempt_at,
            last_success_at=record.last_success_at,
            last_error=record.last_error,
            prefix_count=len(record.top_level_segments),
            consecutive_failures=record.consecutive_failures,
            running=self.is_running(repository_id),
        )

    async def _wait(
        self, repository_id: str, task: asyncio.Task[WhitelistRecord]
    ) -> WhitelistRecord:
        # Shielded so that a waiter going away does not kill a run others may share
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                raise DiscoveryCancelled(repository_id) from None
            raise

    def _forget(self, repository_id: str, task: asyncio.Task[WhitelistRecord]) -> None:
        if self._inflight.get(repository_id) is task:
            del self._inflight[repository_id]

    async def _run(self, repo: ProxyRepositoryConfig) -> WhitelistRecord:
        started = self._clock()
        previous = self.store.get(repo.id) or WhitelistRecord(
            repository_id=repo.id, remote_url=repo.remote_url
        )

        if not repo.discovery_enabled:
            record = previous.replace(
                status=DiscoveryStatus.DISABLED,
                prefixes=frozenset(),
                last_outcome=None,
                last_attempt_at=started,
                last_error=None,
                consecutive_failures=0,
                remarks=("Whitelist discovery is disabled for this repository",),
            )
            await self._commit(repo, record)
            return record

        await self._commit(
            repo, previous.replace(status=DiscoveryStatus.DISCOVERING, last_attempt_at=started)
        )

        context = ScrapeContext(repo.remote_url, self.fetcher, self.config, started_at=started)
        result = await self.chain.scrape_within_budget(context)

        record = self._apply(previous, result)
        if await self._commit(repo, record):
            self._log_outcome(record, result, context)
        return record

    def _apply(self, previous: WhitelistRecord, result: ScrapeResult) -> WhitelistRecord:
        """Turn a chain result into the repository's next record."""
        now = self._clock()
        remarks = tuple(result.remarks)

        match result.outcome:
            case ScrapeOutcome.SCRAPED if result.prefixes:
                return previous.replace(
                    status=DiscoveryStatus.ENABLED,
                    prefixes=frozenset(result.prefixes),
                    last_outcome=result.outcome,
                    last_success_at=now,
                    last_error=None,
                    consecutive_failures=0,
                    remarks=remarks,
                )
            case ScrapeOutcome.SCRAPED | ScrapeOutcome.OPTED_OUT | ScrapeOutcome.EXHAUSTED:
                # An empty listing would otherwise reject every request
                return previous.replace(
                    status=DiscoveryStatus.DISABLED,
                    prefixes=frozenset(),
                    last_outcome=result.outcome,
                    last_error=None,
                    consecutive_failures=0,
                    remarks=remarks,
                )
            case (
                ScrapeOutcome.CRAWL_FAILED
                | ScrapeOutcome.ROOT_UNREACHABLE
                | ScrapeOutcome.TIMED_OUT
            ):
                # Prefixes kept: an unreachable remote says nothing about its layout
                return previous.replace(
                    status=DiscoveryStatus.UNSUPPORTED,
                    last_outcome=result.outcome,
                    last_error=result.message,
                    consecutive_failures=previous.consecutive_failures + 1,
                    remarks=remarks,
                )
            case _:
                assert_never(result.outcome)

    async def _commit(self, repo: ProxyRepositoryConfig, record: WhitelistRecord) -> bool:
        """Write a run's record unless the repository was removed or repointed meanwhile."""
        current = self._repositories.get(repo.id)
        if current is None or current.remote_url != repo.remote_url:
            logger.debug("Dropping stale discovery result for %s", repo.id)
            return False
        await self.store.put(record)
        return True

    def _log_outcome(
        self, record: WhitelistRecord, result: ScrapeResult, context: ScrapeContext
    ) -> None:
        for remark in result.remarks:
            logger.debug("[%s] %s", record.repository_id, remark)

        if record.status == DiscoveryStatus.UNSUPPORTED:
            logger.warning(
                "Discovery for %s failed (%s, %d in a row): %s",
                record.repository_id,
                result.outcome.value,
                record.consecutive_failures,
                result.message,
            )
        else:
            logger.info(
                "Discovery for %s: %s (%s, %d prefixes, %d requests)",
                record.repository_id,
                record.status.value,
                result.outcome.value,
                len(record.prefixes),
                context.requests_made,
            )

    def _require(self, repository_id: str) -> ProxyRepositoryConfig:
        repo = self._repositories.get(repository_id)
        if repo is None:
            raise UnknownRepositoryError(repository_id)
        return repo
