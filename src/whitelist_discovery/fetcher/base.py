"""Base class for page fetchers."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from whitelist_discovery.config import FetcherConfig

# Statuses meaning the remote is there but refuses or cannot answer right now
UNAVAILABLE_STATUSES = frozenset({401, 403, 407, 429})


class FetchResult(BaseModel):
    """Result of fetching a page."""

    url: str
    final_url: str  # After same-origin redirects
    html: str
    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)  # Lower-cased names
    error: str | None = None
    truncated: bool = False

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300 and not self.error

    @property
    def unavailable(self) -> bool:
        """Whether the remote could not be reached or refused to answer."""
        if self.status_code == 0:
            return True
        return self.status_code in UNAVAILABLE_STATUSES or self.status_code >= 500

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def is_html(self) -> bool:
        content_type = self.header("content-type")
        # Many autoindex modules omit the header entirely
        return content_type is None or "html" in content_type.lower()


class BaseFetcher(ABC):
    """Abstract base class for page fetchers."""

    def __init__(self, config: FetcherConfig):
        self.config = config

    @abstractmethod
    async def fetch(self, url: str) -> FetchResult:
        """Fetch a page. Network failures are reported in the result, never raised."""
        pass

    @abstractmethod
    async def __aenter__(self):
        """Async context manager entry."""
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        pass
