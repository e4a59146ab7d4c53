"""HTTP fetcher for remote repository listings."""

import logging

import httpx

from whitelist_discovery.config import FetcherConfig
from whitelist_discovery.fetcher.base import BaseFetcher, FetchResult
from whitelist_discovery.utils.url_utils import is_same_origin, make_absolute

logger = logging.getLogger(__name__)


class HttpFetcher(BaseFetcher):
    """Plain HTTP fetcher that only follows redirects on the same origin."""

    def __init__(self, config: FetcherConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(config)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        """Initialize HTTP client."""
        self._client = httpx.AsyncClient(
            headers={"User-Agent": self.config.user_agent, **self.config.headers},
            follow_redirects=False,
            timeout=self.config.timeout_ms / 1000,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a page via HTTP GET."""
        if not self._client:
            raise RuntimeError("Fetcher not initialized. Use 'async with' context manager.")

        current = url
        try:
            for _ in range(self.config.max_redirects + 1):
                async with self._client.stream("GET", current) as response:
                    if response.is_redirect:
                        location = response.headers.get("location")
                        target = make_absolute(current, location) if location else None
                        if target is None or not is_same_origin(target, url):
                            return FetchResult(
                                url=url,
                                final_url=current,
                                html="",
                                status_code=response.status_code,
                                headers=_lower_headers(response),
                                error=f"Refusing redirect off origin to {target}",
                            )
                        current = target
                        continue

                    body, truncated = await self._read_bounded(response)
                    return FetchResult(
                        url=url,
                        final_url=str(response.url),
                        html=body.decode(response.charset_encoding or "utf-8", errors="replace"),
                        status_code=response.status_code,
                        headers=_lower_headers(response),
                        truncated=truncated,
                    )

            return FetchResult(
                url=url,
                final_url=current,
                html="",
                status_code=0,
                error=f"Too many redirects (>{self.config.max_redirects})",
            )

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("GET %s failed", current, exc_info=True)
            return FetchResult(
                url=url,
                final_url=current,
                html="",
                status_code=0,
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
            )

    async def _read_bounded(self, response: httpx.Response) -> tuple[bytes, bool]:
        """Read at most max_body_bytes of the response body."""
        limit = self.config.max_body_bytes
        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) >= limit:
                return bytes(body[:limit]), True
        return bytes(body), False


def _lower_headers(response: httpx.Response) -> dict[str, str]:
    return {name.lower(): value for name, value in response.headers.items()}
