"""Breadth-first crawl of generated directory listings."""

import logging
from collections import deque

from bs4 import BeautifulSoup

from whitelist_discovery.fetcher.base import FetchResult
from whitelist_discovery.models import PrefixEntry
from whitelist_discovery.scrape.base import CrawlError
from whitelist_discovery.scrape.context import ScrapeContext
from whitelist_discovery.utils.url_utils import (
    make_absolute,
    normalize_url,
    relative_child,
    segment_name,
)

logger = logging.getLogger(__name__)


def describe_failure(page: FetchResult) -> str:
    """Short description of why a fetch did not succeed."""
    if page.error:
        return page.error
    return f"HTTP {page.status_code}"


def extract_child_links(html: str) -> list[str]:
    """Return the hrefs of anchors that point at direct children, in page order."""
    soup = BeautifulSoup(html, "lxml")
    links: list[str] = []
    seen: set[str] = set()
    for a in soup.find_all("a", href=True):
        child = relative_child(a["href"])
        if child is not None and child not in seen:
            seen.add(child)
            links.append(child)
    return links


class IndexCrawler:
    """Walk a directory listing breadth-first from the context's root page.

    Every child found at depth 1 becomes a PrefixEntry; below that only
    directories are recorded. Directories are followed while the next level
    is within ``max_depth`` and the request budget lasts.
    """

    def __init__(self, context: ScrapeContext):
        self.context = context

    async def crawl(self) -> set[PrefixEntry]:
        context = self.context
        max_depth = context.config.max_depth

        root = await context.root_page()
        if not root.success:
            raise CrawlError(f"Root listing {context.base_url} unavailable: {describe_failure(root)}")
        if root.truncated:
            # A partial top level would reject paths that do exist
            raise CrawlError(
                f"Root listing {context.base_url} exceeds {context.fetcher.config.max_body_bytes} bytes"
            )

        found: dict[str, PrefixEntry] = {}
        visited = {normalize_url(context.base_url)}
        # (relative path prefix, listing url, depth of the listing, page if already fetched)
        queue: deque[tuple[str, str, int, FetchResult | None]] = deque(
            [("", context.base_url, 0, root)]
        )

        while queue:
            prefix, url, depth, page = queue.popleft()

            if page is None:
                if context.budget_left == 0:
                    context.remark(
                        f"Request budget of {context.config.max_requests} exhausted, "
                        f"{len(queue) + 1} listings not visited"
                    )
                    break
                page = await context.fetch(url)
                if not page.success:
                    context.remark(f"Skipping {url}: {describe_failure(page)}")
                    continue
                if not page.is_html:
                    context.remark(f"Skipping {url}: not an HTML listing")
                    continue
                if page.truncated:
                    context.remark(f"Listing {url} truncated, some entries below it are missing")

            child_depth = depth + 1
            for href in extract_child_links(page.html):
                is_dir = href.endswith("/")
                if not is_dir and child_depth > 1:
                    continue

                path = prefix + segment_name(href)
                if path not in found:
                    found[path] = PrefixEntry(
                        path=path, depth=child_depth, discovered_at=context.started_at
                    )

                if is_dir and child_depth < max_depth:
                    child_url = make_absolute(url, href)
                    normalized = normalize_url(child_url)
                    if normalized not in visited:
                        visited.add(normalized)
                        queue.append((path + "/", child_url, child_depth, None))

        logger.debug(
            "Crawled %s: %d entries using %d requests",
            context.base_url,
            len(found),
            context.requests_made,
        )
        return set(found.values())
