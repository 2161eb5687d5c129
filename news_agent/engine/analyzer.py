"""Structured AI analysis of extracted article text."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ..config import AnalyzerConfig
from ..errors import AnalysisResponseError, AnalysisServiceError, MissingAPIKeyError
from .context import RunContext

ANALYSIS_PROMPT = """Analyze this AI news article and return a JSON response with the following structure:
{
  "summary": "• Bullet point summary\\n• Key points\\n• Important details",
  "entities": {
    "organizations": ["Company1", "Company2"],
    "products": ["Product1", "Model1"],
    "people": ["Person1", "Person2"]
  },
  "topics": ["Topic1", "Topic2"],
  "content_type": "Research Paper|Product Launch|News Article|Opinion Piece|Tutorial"
}

Article content:
"""


@dataclass(slots=True)
class AnalysisResult:
    summary: str
    entities: dict[str, list[str]] = field(default_factory=dict)
    topics: list[str] = field(default_factory=list)
    content_type: str = ""
    story_group_id: str = ""


class Analyzer(Protocol):
    """Capability: turn article text into an :class:`AnalysisResult`."""

    def analyze(self, text: str, ctx: RunContext) -> AnalysisResult:
        ...


def story_group_id(content: str) -> str:
    """Stable grouping key: first 16 hex chars of the content's SHA-256."""

    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def _strip_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def parse_analysis(reply: str, content: str) -> AnalysisResult:
    """Decode the model's JSON reply; ``content`` seeds the story group id."""

    try:
        payload = json.loads(_strip_fences(reply))
    except json.JSONDecodeError as exc:
        raise AnalysisResponseError(f"failed to parse analysis response: {exc}") from exc
    if not isinstance(payload, dict):
        raise AnalysisResponseError("failed to parse analysis response: expected an object")

    raw_entities = payload.get("entities") or {}
    entities: dict[str, list[str]] = {}
    if isinstance(raw_entities, dict):
        for key, values in raw_entities.items():
            if isinstance(values, list):
                entities[str(key)] = [str(value) for value in values]
    topics = payload.get("topics") or []
    return AnalysisResult(
        summary=str(payload.get("summary") or ""),
        entities=entities,
        topics=[str(topic) for topic in topics] if isinstance(topics, list) else [],
        content_type=str(payload.get("content_type") or ""),
        story_group_id=story_group_id(content),
    )


class GeminiAnalyzer:
    """Call the Generative Language ``generateContent`` endpoint over httpx."""

    def __init__(
        self,
        config: AnalyzerConfig | None = None,
        api_key: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config or AnalyzerConfig()
        key = api_key if api_key is not None else os.environ.get(self.config.api_key_env, "")
        if not key:
            raise MissingAPIKeyError(self.config.api_key_env)
        self._api_key = key
        self._owns_client = client is None
        self._client = client or httpx.Client()

    @property
    def url(self) -> str:
        return f"{self.config.endpoint.rstrip('/')}/models/{self.config.model}:generateContent"

    def analyze(self, text: str, ctx: RunContext) -> AnalysisResult:
        ctx.check()
        body: dict[str, Any] = {
            "contents": [{"parts": [{"text": ANALYSIS_PROMPT + text}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        try:
            response = self._client.post(
                self.url,
                json=body,
                headers={"x-goog-api-key": self._api_key},
                timeout=ctx.bounded_timeout(self.config.timeout),
            )
        except httpx.HTTPError:
            ctx.check()
            raise
        ctx.check()
        if not response.is_success:
            raise AnalysisServiceError(response.status_code)
        try:
            reply = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AnalysisResponseError("no response from gemini api") from exc
        return parse_analysis(reply, text)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


__all__ = ["AnalysisResult", "Analyzer", "GeminiAnalyzer", "parse_analysis", "story_group_id"]
