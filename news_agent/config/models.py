"""Pydantic models describing a news-agent run configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_DSN = "./ai-news.db"
DEFAULT_NETWORK_TIMEOUT = 8.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_MS = 250
DEFAULT_BACKOFF_MAX_MS = 2000
DEFAULT_DB_BUSY_RETRIES = 3


class Source(BaseModel):
    """A named feed endpoint."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    type: str = "rss"
    priority: int = 0

    @field_validator("name", "url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class RetryPolicy(BaseModel):
    """Exponential backoff limits, all durations in seconds."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BACKOFF_BASE_MS / 1000
    max_delay: float = DEFAULT_BACKOFF_MAX_MS / 1000
    multiplier: float = 2.0
    max_elapsed: float = DEFAULT_NETWORK_TIMEOUT * 2

    @model_validator(mode="after")
    def _validate_bounds(self) -> "RetryPolicy":
        if self.base_delay < 0 or self.max_delay < 0 or self.max_elapsed < 0:
            raise ValueError("retry delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self


class ExtractorConfig(BaseModel):
    """Reader service turning article pages into markdown text."""

    enabled: bool = True
    reader_base_url: str = "https://r.jina.ai"
    timeout: float = 60.0
    max_bytes: int = 5 << 20


class AnalyzerConfig(BaseModel):
    """Generative analysis service settings; the key itself lives in the environment."""

    enabled: bool = True
    model: str = "gemini-1.5-flash"
    api_key_env: str = "GEMINI_API_KEY"
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 60.0


def _env_number(name: str, cast: type) -> Any:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError:
        return None


def _parse_seconds(text: str) -> float | None:
    """Parse durations like ``8s``, ``500ms``, ``2m`` or a bare number of seconds."""

    raw = text.strip().lower()
    if not raw:
        return None
    units = (("ms", 0.001), ("s", 1.0), ("m", 60.0), ("h", 3600.0))
    for suffix, factor in units:
        if raw.endswith(suffix):
            try:
                return float(raw[: -len(suffix)]) * factor
            except ValueError:
                return None
    try:
        return float(raw)
    except ValueError:
        return None


def _env_seconds(name: str) -> float | None:
    return _parse_seconds(os.environ.get(name) or "")


class AppConfig(BaseModel):
    """Top-level configuration: storage, sources, network and retry budget."""

    dsn: str = DEFAULT_DSN
    sources: list[Source] = Field(default_factory=list)
    network_timeout: float = 0
    max_retries: int = 0
    backoff_base_ms: int = 0
    backoff_max_ms: int = 0
    db_busy_retries: int = 0
    log_file: Path | None = None
    workers: int = 0
    fetch_limit: int = 0
    progress_capacity: int = 64
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)

    @field_validator("network_timeout", mode="before")
    @classmethod
    def _coerce_timeout(cls, value: Any) -> Any:
        # 允许 "8s" / "500ms" 这类写法
        if isinstance(value, str):
            seconds = _parse_seconds(value)
            if seconds is None:
                raise ValueError(f"Invalid duration: {value!r}")
            return seconds
        return value

    @field_validator("log_file", mode="before")
    @classmethod
    def _coerce_log_file(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @model_validator(mode="after")
    def _apply_defaults(self) -> "AppConfig":
        if not self.dsn:
            self.dsn = DEFAULT_DSN
        if self.network_timeout <= 0:
            self.network_timeout = _env_seconds("NETWORK_TIMEOUT") or DEFAULT_NETWORK_TIMEOUT
        if self.max_retries == 0:
            self.max_retries = _env_number("MAX_RETRIES", int) or DEFAULT_MAX_RETRIES
        if self.backoff_base_ms == 0:
            self.backoff_base_ms = _env_number("BACKOFF_BASE_MS", int) or DEFAULT_BACKOFF_BASE_MS
        if self.backoff_max_ms == 0:
            self.backoff_max_ms = _env_number("BACKOFF_MAX_MS", int) or DEFAULT_BACKOFF_MAX_MS
        if self.db_busy_retries == 0:
            self.db_busy_retries = _env_number("DB_BUSY_RETRIES", int) or DEFAULT_DB_BUSY_RETRIES
        if self.log_file is None:
            env_log = os.environ.get("LOG_FILE")
            self.log_file = (
                Path(env_log).expanduser() if env_log else Path.home() / ".ainews" / "agent.log"
            )
        if self.fetch_limit < 0:
            raise ValueError("fetch_limit must be >= 0")
        if self.progress_capacity < 1:
            raise ValueError("progress_capacity must be >= 1")
        names = [source.name for source in self.sources]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source names: {', '.join(duplicates)}")
        return self

    def retry_policy(self) -> RetryPolicy:
        base = self.backoff_base_ms / 1000
        return RetryPolicy(
            max_attempts=self.max_retries,
            base_delay=base,
            max_delay=max(base, self.backoff_max_ms / 1000),
            multiplier=2.0,
            max_elapsed=self.network_timeout * 2,
        )

    def storage_retry_policy(self) -> RetryPolicy:
        """Policy for store calls: same backoff, attempts bounded by ``db_busy_retries``."""

        return self.retry_policy().model_copy(update={"max_attempts": self.db_busy_retries})

    def source(self, name: str) -> Source:
        for source in self.sources:
            if source.name == name:
                return source
        raise KeyError(f"Unknown source: {name}")


__all__ = [
    "AnalyzerConfig",
    "AppConfig",
    "ExtractorConfig",
    "RetryPolicy",
    "Source",
]
