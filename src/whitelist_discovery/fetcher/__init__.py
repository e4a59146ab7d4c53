"""Page fetching for remote repository listings."""

from whitelist_discovery.fetcher.base import BaseFetcher, FetchResult
from whitelist_discovery.fetcher.http_fetcher import HttpFetcher

__all__ = [
    "BaseFetcher",
    "FetchResult",
    "HttpFetcher",
]
