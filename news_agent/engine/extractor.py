"""Article content extraction through a markdown reader service."""

from __future__ import annotations

from typing import Protocol

import httpx

from ..config import ExtractorConfig
from ..errors import ExtractionStatusError
from .context import RunContext
from .feed_reader import validate_http_url


class ContentExtractor(Protocol):
    """Capability: fetch readable text for an article link."""

    def extract(self, link: str, ctx: RunContext) -> str:
        ...


class ReaderExtractor:
    """Fetch ``<reader_base_url>/<link>`` and return the markdown body."""

    def __init__(self, config: ExtractorConfig | None = None, client: httpx.Client | None = None) -> None:
        self.config = config or ExtractorConfig()
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True)

    def reader_url(self, link: str) -> str:
        return f"{self.config.reader_base_url.rstrip('/')}/{link}"

    def extract(self, link: str, ctx: RunContext) -> str:
        validate_http_url(link)
        ctx.check()
        limit = self.config.max_bytes
        chunks: list[bytes] = []
        size = 0
        try:
            with self._client.stream(
                "GET",
                self.reader_url(link),
                headers={"Accept": "text/markdown"},
                timeout=ctx.bounded_timeout(self.config.timeout),
            ) as response:
                if response.status_code != 200:
                    raise ExtractionStatusError(response.status_code, link)
                for chunk in response.iter_bytes():
                    ctx.check()
                    chunks.append(chunk)
                    size += len(chunk)
                    if size >= limit:
                        break
        except httpx.HTTPError:
            ctx.check()
            raise
        ctx.check()
        return b"".join(chunks)[:limit].decode("utf-8", errors="replace")

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


__all__ = ["ContentExtractor", "ReaderExtractor"]
