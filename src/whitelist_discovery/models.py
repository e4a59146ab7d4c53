"""Whitelist records and the values they are built from."""

from datetime import datetime
from enum import Enum
from functools import cached_property

from pydantic import BaseModel, ConfigDict


class DiscoveryStatus(str, Enum):
    """Discovery state of one proxy repository."""

    UNINITIALIZED = "uninitialized"
    DISCOVERING = "discovering"
    ENABLED = "enabled"
    DISABLED = "disabled"
    UNSUPPORTED = "unsupported"


class ScrapeOutcome(str, Enum):
    """How one scraping attempt ended."""

    SCRAPED = "scraped"
    OPTED_OUT = "opted_out"
    EXHAUSTED = "exhausted"
    CRAWL_FAILED = "crawl_failed"
    ROOT_UNREACHABLE = "root_unreachable"
    TIMED_OUT = "timed_out"


class PrefixEntry(BaseModel):
    """A path found on the remote listing.

    ``path`` is relative to the repository root without a leading slash
    (``org`` or ``org/apache``). Entries compare equal by path only.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    depth: int = 1
    discovered_at: datetime | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PrefixEntry):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)


class WhitelistRecord(BaseModel):
    """Everything known about one proxy repository's remote layout.

    Records are frozen; writers build a new record with ``replace`` and swap
    it into the store, so a reader holding a record never sees it change.
    """

    model_config = ConfigDict(frozen=True)

    repository_id: str
    remote_url: str | None = None
    status: DiscoveryStatus = DiscoveryStatus.UNINITIALIZED
    prefixes: frozenset[PrefixEntry] = frozenset()
    last_outcome: ScrapeOutcome | None = None
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    remarks: tuple[str, ...] = ()

    def replace(self, **changes) -> "WhitelistRecord":
        """Build a new record with some fields changed.

        Unlike ``model_copy`` this does not carry over cached derived values.
        """
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        return type(self)(**values)

    @cached_property
    def top_level_segments(self) -> frozenset[str]:
        return frozenset(entry.path for entry in self.prefixes if entry.depth == 1)

    @property
    def opted_out(self) -> bool:
        return self.status == DiscoveryStatus.DISABLED and self.last_outcome == ScrapeOutcome.OPTED_OUT


class DiscoveryReport(BaseModel):
    """Operator-facing view of a repository's discovery state."""

    repository_id: str
    status: DiscoveryStatus
    last_outcome: ScrapeOutcome | None = None
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error: str | None = None
    prefix_count: int = 0
    consecutive_failures: int = 0
    running: bool = False
    next_attempt_at: datetime | None = None
