"""Recurring and event-driven discovery runs."""

import asyncio
import logging
from datetime import datetime, timedelta

from whitelist_discovery.config import ProxyRepositoryConfig, SchedulerConfig
from whitelist_discovery.coordinator import (
    DiscoveryCancelled,
    DiscoveryCoordinator,
    UnknownRepositoryError,
)
from whitelist_discovery.models import DiscoveryReport, DiscoveryStatus, WhitelistRecord
from whitelist_discovery.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

_MAX_BACKOFF_EXPONENT = 32


def retry_delay(failures: int, config: SchedulerConfig) -> timedelta:
    """Exponential backoff after consecutive failures, capped at retry_max_seconds."""
    exponent = min(max(failures - 1, 0), _MAX_BACKOFF_EXPONENT)
    seconds = config.retry_base_seconds * (2**exponent)
    return timedelta(seconds=min(seconds, config.retry_max_seconds))


def next_attempt_delay(record: WhitelistRecord, config: SchedulerConfig) -> timedelta:
    """How long to wait after a run that produced ``record``."""
    if record.status in (DiscoveryStatus.UNINITIALIZED, DiscoveryStatus.DISCOVERING):
        return timedelta(0)
    if record.status == DiscoveryStatus.UNSUPPORTED:
        return retry_delay(record.consecutive_failures, config)
    if record.opted_out:
        return timedelta(hours=config.opt_out_interval_hours)
    return timedelta(hours=config.interval_hours)


class DiscoveryScheduler:
    """Decides when each repository is discovered and runs it on a bounded pool.

    New repositories and remote URL changes trigger an immediate run. After
    that runs recur on ``interval_hours``; failed runs back off exponentially
    and opted-out remotes are rechecked on the longer ``opt_out_interval_hours``.
    """

    def __init__(
        self,
        coordinator: DiscoveryCoordinator,
        config: SchedulerConfig | None = None,
        clock: Clock = utcnow,
    ):
        self.coordinator = coordinator
        self.config = config or SchedulerConfig()
        self._clock = clock
        self._slots = asyncio.Semaphore(self.config.max_concurrent)
        self._next_due: dict[str, datetime] = {}
        self._pending: dict[str, asyncio.Task[WhitelistRecord | None]] = {}
        self._crashes: dict[str, int] = {}
        self._stopped = asyncio.Event()

    # Repository events

    async def repository_created(
        self, repo: ProxyRepositoryConfig
    ) -> asyncio.Task[WhitelistRecord | None]:
        await self.coordinator.register(repo)
        return self._launch(repo.id, force=False)

    async def repository_updated(
        self, repo: ProxyRepositoryConfig
    ) -> asyncio.Task[WhitelistRecord | None] | None:
        try:
            previous = self.coordinator.repository(repo.id)
        except UnknownRepositoryError:
            return await self.repository_created(repo)

        await self.coordinator.register(repo)
        if (
            previous.remote_url != repo.remote_url
            or previous.discovery_enabled != repo.discovery_enabled
        ):
            self._next_due.pop(repo.id, None)
            return self._launch(repo.id, force=True)
        return None

    async def repository_deleted(self, repository_id: str) -> None:
        self._crashes.pop(repository_id, None)
        self._next_due.pop(repository_id, None)
        pending = self._pending.pop(repository_id, None)
        if pending is not None:
            pending.cancel()
        await self.coordinator.unregister(repository_id)

    async def force_recheck(self, repository_id: str) -> asyncio.Task[WhitelistRecord | None]:
        """Run discovery now regardless of backoff. A running discovery is restarted."""
        self.coordinator.repository(repository_id)
        return self._launch(repository_id, force=True)

    # Periodic scheduling

    def next_attempt_at(self, repository_id: str) -> datetime | None:
        due = self._next_due.get(repository_id)
        if due is not None:
            return due
        record = self.coordinator.store.get(repository_id)
        if record is None:
            return None
        if record.last_attempt_at is None:
            return self._clock()
        return record.last_attempt_at + next_attempt_delay(record, self.config)

    def report(self, repository_id: str) -> DiscoveryReport:
        report = self.coordinator.status(repository_id)
        return report.model_copy(update={"next_attempt_at": self.next_attempt_at(repository_id)})

    async def tick(self) -> list[str]:
        """Launch every repository whose next attempt is due. Returns the launched ids."""
        now = self._clock()
        launched: list[str] = []
        for repo in self.coordinator.repositories():
            if repo.id in self._pending or self.coordinator.is_running(repo.id):
                continue
            due = self.next_attempt_at(repo.id)
            if due is not None and due <= now:
                self._launch(repo.id, force=False)
                launched.append(repo.id)
        return launched

    async def run_forever(self) -> None:
        """Tick until ``stop`` is called."""
        self._stopped.clear()
        logger.info(
            "Scheduler started for %d repositories", len(self.coordinator.repositories())
        )
        while not self._stopped.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.config.tick_seconds)
            except TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop ticking and cancel queued and running discoveries."""
        self._stopped.set()
        for task in list(self._pending.values()):
            task.cancel()
        await self.coordinator.cancel_all()
        await self.drain()
        logger.info("Scheduler stopped")

    async def drain(self) -> None:
        """Wait for every queued or running discovery launched by the scheduler."""
        while True:
            tasks = [t for t in self._pending.values() if not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def _launch(self, repository_id: str, force: bool) -> asyncio.Task[WhitelistRecord | None]:
        pending = self._pending.get(repository_id)
        if pending is not None and not pending.done():
            if not force:
                return pending
            pending.cancel()

        task = asyncio.create_task(
            self._work(repository_id, force), name=f"scheduled-discovery:{repository_id}"
        )
        self._pending[repository_id] = task
        task.add_done_callback(lambda t: self._forget(repository_id, t))
        return task

    def _forget(self, repository_id: str, task: asyncio.Task) -> None:
        if self._pending.get(repository_id) is task:
            del self._pending[repository_id]

    async def _work(self, repository_id: str, force: bool) -> WhitelistRecord | None:
        async with self._slots:
            try:
                record = await self.coordinator.discover(repository_id, force=force)
            except (UnknownRepositoryError, DiscoveryCancelled) as e:
                logger.debug("Scheduled discovery ended early: %s", e)
                return None
            except Exception:
                logger.exception("Discovery for %s crashed", repository_id)
                self._back_off(repository_id)
                return None

        if record.repository_id not in self.coordinator.store:
            return record
        self._crashes.pop(repository_id, None)
        delay = next_attempt_delay(record, self.config)
        self._next_due[repository_id] = self._clock() + delay
        logger.debug("Next discovery for %s in %s", repository_id, delay)
        return record

    def _back_off(self, repository_id: str) -> None:
        """Delay the next attempt after a run that raised instead of producing a record."""
        if repository_id not in self.coordinator.store:
            return
        crashes = self._crashes.get(repository_id, 0) + 1
        self._crashes[repository_id] = crashes
        delay = retry_delay(crashes, self.config)
        self._next_due[repository_id] = self._clock() + delay
        logger.warning("Retrying discovery for %s in %s", repository_id, delay)
