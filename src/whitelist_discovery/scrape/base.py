"""Base class for remote scraping strategies."""

from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from whitelist_discovery.models import PrefixEntry, ScrapeOutcome
from whitelist_discovery.scrape.context import ScrapeContext


class DetectionResult(str, Enum):
    """What a scraper concluded about the remote."""

    RECOGNIZED_SHOULD_BE_SCRAPED = "recognized_should_be_scraped"
    RECOGNIZED_SHOULD_NOT_BE_SCRAPED = "recognized_should_not_be_scraped"
    UNRECOGNIZED = "unrecognized"


class RemoteServerProfile(BaseModel):
    """Identity of a scraper: lower priority is tried earlier."""

    model_config = ConfigDict(frozen=True)

    id: str
    priority: int
    display_name: str


class CrawlError(Exception):
    """A recognized remote could not be crawled."""


class ScrapeResult(BaseModel):
    """Result of running the scraper chain once."""

    outcome: ScrapeOutcome
    prefixes: frozenset[PrefixEntry] = frozenset()
    scraper_id: str | None = None
    message: str | None = None
    remarks: list[str] = Field(default_factory=list)


class BaseScraper(ABC):
    """Abstract base class for scraping strategies."""

    def __init__(self, profile: RemoteServerProfile):
        self.profile = profile

    @property
    def id(self) -> str:
        return self.profile.id

    @property
    def priority(self) -> int:
        return self.profile.priority

    @abstractmethod
    async def detect(self, context: ScrapeContext) -> DetectionResult:
        """Decide whether this scraper handles the remote. Must not raise for I/O problems."""
        ...

    @abstractmethod
    async def crawl(self, context: ScrapeContext) -> set[PrefixEntry]:
        """Collect the remote's paths. Raises CrawlError on failure."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.profile.id!r}, priority={self.profile.priority})"
