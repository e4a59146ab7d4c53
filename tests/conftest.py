"""Shared fixtures: a scripted remote served through httpx.MockTransport."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from whitelist_discovery.config import FetcherConfig
from whitelist_discovery.fetcher import HttpFetcher
from whitelist_discovery.store import WhitelistStore

BASE_URL = "http://repo.test/maven2/"


def nginx_listing(path: str, children: list[str]) -> str:
    """An nginx autoindex page for ``path`` listing ``children``."""
    rows = "\n".join(f'<a href="{c}">{c}</a>                 01-Jan-2024 00:00       -' for c in children)
    return (
        f"<html>\r\n<head><title>Index of {path}</title></head>\r\n<body>\r\n"
        f"<h1>Index of {path}</h1><hr><pre><a href=\"../\">../</a>\n{rows}\n</pre><hr></body>\r\n</html>\r\n"
    )


def httpd_listing(path: str, parent: str, children: list[str]) -> str:
    """An Apache httpd autoindex page for ``path`` listing ``children``."""
    rows = "\n".join(f'<tr><td><a href="{c}">{c}</a></td><td>-</td></tr>' for c in children)
    return (
        "<!DOCTYPE HTML PUBLIC \"-//W3C//DTD HTML 3.2 Final//EN\">\n"
        f"<html><head><title>Index of {path}</title></head><body>\n<h1>Index of {path}</h1>\n"
        '<table><tr><th><a href="?C=N;O=D">Name</a></th></tr>\n'
        f'<tr><td><a href="{parent}">Parent Directory</a></td><td>-</td></tr>\n{rows}\n'
        "</table></body></html>\n"
    )


class FakeRemote:
    """Routes GET requests to canned responses and records every request."""

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.requests: list[str] = []
        self.delays: dict[str, float] = {}
        self.request_seen = asyncio.Event()

    def add(self, url: str, body: str = "", status: int = 200, headers: dict | None = None,
            html: bool = True):
        if html:
            self.routes[url] = httpx.Response(status, html=body, headers=headers)
        else:
            self.routes[url] = httpx.Response(status, text=body, headers=headers)

    def fail(self, url: str, exc: Exception):
        self.routes[url] = exc

    def redirect(self, url: str, location: str, status: int = 302):
        self.routes[url] = httpx.Response(status, headers={"Location": location})

    def delay(self, url: str, seconds: float):
        self.delays[url] = seconds

    def count(self, url: str) -> int:
        return self.requests.count(url)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        self.request_seen.set()
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="Not Found")
        if isinstance(route, Exception):
            raise route
        # Responses are consumed on read, hand out a fresh copy each time
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FailingStore(WhitelistStore):
    """Persists normally until ``failing`` is set."""

    failing = False

    async def _write(self, record):
        if self.failing:
            raise OSError("disk full")
        await super()._write(record)


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def serve_nginx_repo(remote: FakeRemote, base_url: str = BASE_URL, server: str = "nginx/1.18.0"):
    """A small nginx-hosted repository with lib/ and org/ at the top."""
    headers = {"Server": server}
    remote.add(base_url, nginx_listing("/maven2/", ["lib/", "org/"]), headers=headers)
    remote.add(base_url + "lib/", nginx_listing("/maven2/lib/", ["tools/"]), headers=headers)
    remote.add(base_url + "org/", nginx_listing("/maven2/org/", ["apache/", "example/"]), headers=headers)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def fetcher(remote):
    async with HttpFetcher(FetcherConfig(), transport=remote.transport) as f:
        yield f
