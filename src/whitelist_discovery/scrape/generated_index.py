"""Scrapers for server-generated directory index pages."""

import logging
from collections.abc import Sequence
from typing import Protocol

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict

from whitelist_discovery.fetcher.base import FetchResult
from whitelist_discovery.models import PrefixEntry
from whitelist_discovery.scrape.base import (
    BaseScraper,
    DetectionResult,
    RemoteServerProfile,
)
from whitelist_discovery.scrape.context import ScrapeContext
from whitelist_discovery.scrape.crawler import IndexCrawler, describe_failure
from whitelist_discovery.utils.url_utils import parent_path

logger = logging.getLogger(__name__)


class ParentDirectoryMarker(BaseModel):
    """The "parent directory" anchor a generated index page is expected to carry.

    ``hrefs`` may use ``{parent}`` for the path of the directory above the
    scraped URL. ``text=None`` accepts any anchor text.
    """

    model_config = ConfigDict(frozen=True)

    text: str | None = None
    hrefs: tuple[str, ...] = ("../",)

    def found_in(self, soup: BeautifulSoup, base_url: str) -> bool:
        accepted = {href.format(parent=parent_path(base_url)) for href in self.hrefs}
        for a in soup.find_all("a", href=True):
            if a["href"].strip() not in accepted:
                continue
            if self.text is None or a.get_text(strip=True) == self.text:
                return True
        return False


class PageCheck(Protocol):
    """A refinement that may veto a positive detection."""

    def __call__(self, page: FetchResult) -> bool: ...

    def describe(self) -> str: ...


class HeaderPrefixCheck(BaseModel):
    """Passes when a response header starts with the given prefix."""

    model_config = ConfigDict(frozen=True)

    header: str
    prefix: str

    def __call__(self, page: FetchResult) -> bool:
        value = page.header(self.header)
        return value is not None and value.startswith(self.prefix)

    def describe(self) -> str:
        return f"{self.header} header starts with {self.prefix!r}"


class BodyContainsCheck(BaseModel):
    """Passes when the (bounded) body contains the given text."""

    model_config = ConfigDict(frozen=True)

    text: str

    def __call__(self, page: FetchResult) -> bool:
        return self.text in page.html

    def describe(self) -> str:
        return f"body contains {self.text!r}"


class GeneratedIndexScraper(BaseScraper):
    """Recognize and crawl a machine-generated directory listing.

    Detection starts optimistic: a 2xx HTML root page that carries the
    expected parent directory anchor is taken as scrapable. Each check in
    ``checks`` then runs in order and any failing one turns the result into
    UNRECOGNIZED. A page without the marker is a custom landing page.
    """

    def __init__(
        self,
        profile: RemoteServerProfile,
        marker: ParentDirectoryMarker,
        checks: Sequence[PageCheck] = (),
    ):
        super().__init__(profile)
        self.marker = marker
        self.checks = tuple(checks)

    @property
    def targeted_server(self) -> str:
        return self.profile.display_name

    async def detect(self, context: ScrapeContext) -> DetectionResult:
        page = await context.root_page()
        if not page.success:
            context.remark(f"{self.targeted_server}: root not available ({describe_failure(page)})")
            return DetectionResult.UNRECOGNIZED
        if not page.is_html:
            context.remark(f"{self.targeted_server}: root is not HTML")
            return DetectionResult.UNRECOGNIZED
        return self.detect_page(context, page)

    def detect_page(self, context: ScrapeContext, page: FetchResult) -> DetectionResult:
        """Run the marker lookup and every refinement check against a fetched root page."""
        soup = BeautifulSoup(page.html, "lxml")
        if not self.marker.found_in(soup, context.base_url):
            context.remark(f"{self.targeted_server}: no parent directory link, custom page")
            return DetectionResult.UNRECOGNIZED

        for check in self.checks:
            if not check(page):
                context.remark(f"{self.targeted_server}: failed check, {check.describe()}")
                return DetectionResult.UNRECOGNIZED

        context.remark(f"Remote recognized as {self.targeted_server}")
        return DetectionResult.RECOGNIZED_SHOULD_BE_SCRAPED

    async def crawl(self, context: ScrapeContext) -> set[PrefixEntry]:
        return await IndexCrawler(context).crawl()
