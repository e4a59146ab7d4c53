"""Configuration management with Pydantic models."""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class FetcherConfig(BaseModel):
    """Configuration for the HTTP fetcher used while scraping."""

    timeout_ms: int = Field(default=10000, ge=1000, le=120000)
    user_agent: str = "WhitelistDiscovery/0.1 (Remote Repository Scraper)"
    max_redirects: int = Field(default=5, ge=0, le=20)
    max_body_bytes: int = Field(default=1024 * 1024, ge=1024)
    headers: dict[str, str] = Field(default_factory=dict)


class ScrapeConfig(BaseModel):
    """Limits applied to one scraping attempt."""

    max_depth: int = Field(default=2, ge=1, le=5)
    max_requests: int = Field(default=100, ge=1)
    run_timeout_seconds: float = Field(default=300.0, gt=0.0)
    delay_seconds: float = Field(default=0.1, ge=0.0, le=60.0)  # Between requests to one remote
    disabled_scrapers: list[str] = Field(default_factory=list)


class SchedulerConfig(BaseModel):
    """Configuration for recurring discovery runs."""

    interval_hours: float = Field(default=24.0, gt=0.0)
    opt_out_interval_hours: float = Field(default=168.0, gt=0.0)
    retry_base_seconds: float = Field(default=300.0, gt=0.0)
    retry_max_seconds: float = Field(default=43200.0, gt=0.0)
    max_concurrent: int = Field(default=4, ge=1, le=64)
    tick_seconds: float = Field(default=60.0, gt=0.0)


class StoreConfig(BaseModel):
    """Configuration for the whitelist store."""

    path: Path | None = None  # None = in-memory only


class ProxyRepositoryConfig(BaseModel):
    """A proxy repository whose remote should be scraped."""

    id: str = Field(min_length=1)
    remote_url: str
    discovery_enabled: bool = True

    @field_validator("remote_url")
    @classmethod
    def _require_http(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"remote_url must be an http(s) URL: {value}")
        return value


class AppConfig(BaseModel):
    """Main application configuration."""

    repositories: list[ProxyRepositoryConfig] = Field(default_factory=list)
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    verbose: bool = False

    @field_validator("repositories")
    @classmethod
    def _unique_ids(cls, value: list[ProxyRepositoryConfig]) -> list[ProxyRepositoryConfig]:
        seen: set[str] = set()
        for repo in value:
            if repo.id in seen:
                raise ValueError(f"duplicate repository id: {repo.id}")
            seen.add(repo.id)
        return value

    @classmethod
    def from_toml(cls, path: Path) -> "AppConfig":
        """Load config from a TOML file."""
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.model_validate(data)
