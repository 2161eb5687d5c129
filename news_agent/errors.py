"""Error taxonomy, classification and user-facing messages.

Collaborators raise the typed errors declared here whenever they can say
what went wrong. Anything else (third-party exceptions, raw sqlite errors)
is classified by exception type first and by message fragments last.
"""

from __future__ import annotations

import socket
import sqlite3
from enum import Enum
from typing import Iterator, TypeVar

import httpx

E = TypeVar("E", bound=BaseException)


class ErrorKind(str, Enum):
    """Categories driving retry decisions and user messages."""

    NETWORK = "network"
    STORAGE = "storage"
    ANALYSIS = "analysis"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


class NewsAgentError(Exception):
    """Base class for errors that carry their own classification.

    ``retryable`` set to ``None`` leaves the decision to the classifier.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool | None = None


class InvalidURLError(NewsAgentError):
    kind = ErrorKind.NETWORK
    retryable = False

    def __init__(self, url: str) -> None:
        super().__init__(f"invalid url: {url!r}")
        self.url = url


class HTTPStatusFailure(NewsAgentError):
    """Non-success HTTP response from a remote collaborator."""

    label = "http"

    def __init__(self, status_code: int, url: str | None = None) -> None:
        detail = f"{self.label}: http status {status_code}"
        if status_code == 429:
            detail += " (too many requests)"
        if url:
            detail += f" for {url}"
        super().__init__(detail)
        self.status_code = status_code
        self.url = url
        if status_code == 429:
            self.kind = ErrorKind.RATE_LIMIT
            self.retryable = True
        elif status_code == 408:
            self.kind = ErrorKind.TIMEOUT
            self.retryable = True
        elif status_code >= 500:
            self.retryable = True
        else:
            self.retryable = False


class FeedStatusError(HTTPStatusFailure):
    kind = ErrorKind.NETWORK
    label = "feed"


class FeedParseError(NewsAgentError):
    kind = ErrorKind.VALIDATION
    retryable = False


class ExtractionStatusError(HTTPStatusFailure):
    kind = ErrorKind.NETWORK
    label = "extractor"


class AnalysisServiceError(HTTPStatusFailure):
    kind = ErrorKind.ANALYSIS
    label = "analysis service"

    def __init__(self, status_code: int, url: str | None = None) -> None:
        super().__init__(status_code, url)
        # 限流仍归类为分析服务错误，方便给出专门的提示
        self.kind = ErrorKind.ANALYSIS


class AnalysisResponseError(NewsAgentError):
    kind = ErrorKind.ANALYSIS
    retryable = False


class MissingAPIKeyError(NewsAgentError):
    kind = ErrorKind.ANALYSIS
    retryable = False

    def __init__(self, env_var: str) -> None:
        super().__init__(f"api key missing: {env_var} environment variable is not set")
        self.env_var = env_var


class DuplicateLinkError(NewsAgentError):
    """Raised by the store when a link already exists."""

    kind = ErrorKind.STORAGE
    retryable = False

    def __init__(self, link: str) -> None:
        super().__init__(f"item already stored: {link}")
        self.link = link


class RunCancelled(NewsAgentError):
    """The run context was cancelled or its deadline passed."""

    retryable = False

    def __init__(self, reason: str = "context cancelled", *, deadline: bool = False) -> None:
        super().__init__(reason)
        self.deadline = deadline
        self.kind = ErrorKind.TIMEOUT if deadline else ErrorKind.UNKNOWN


class AppError(NewsAgentError):
    """An external-call failure annotated with the operation that produced it."""

    def __init__(
        self,
        operation: str,
        error: BaseException,
        kind: ErrorKind,
        retryable: bool,
    ) -> None:
        super().__init__(f"{operation}: {error}")
        self.operation = operation
        self.error = error
        self.kind = kind
        self.retryable = retryable
        self.__cause__ = error


# ----------------------------------------------------------------------
# Message fragments used when an error carries no structural signal
# ----------------------------------------------------------------------
_NETWORK_FRAGMENTS = (
    "connection refused",
    "connection reset",
    "connection timeout",
    "no such host",
    "name or service not known",
    "network unreachable",
    "network is unreachable",
    "timeout",
    "temporary failure",
)
_STORAGE_FRAGMENTS = ("database", "sqlite", "sql", "constraint", "locked", "busy")
_ANALYSIS_FRAGMENTS = (
    "gemini",
    "api key",
    "api_key",
    "quota",
    "rate limit",
    "generate content",
    "generative",
)
_TRANSIENT_ANALYSIS_FRAGMENTS = (
    "rate limit",
    "quota exceeded",
    "server error",
    "service unavailable",
    "timeout",
    "temporary",
)
_VALIDATION_FRAGMENTS = ("invalid url", "malformed", "parse error", "validation")
_TIMEOUT_FRAGMENTS = ("timeout", "timed out", "deadline exceeded")
_RATE_LIMIT_FRAGMENTS = ("rate limit", "too many requests")


def iter_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` followed by its explicit causes."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


def find(exc: BaseException, error_type: type[E]) -> E | None:
    """Return the first error of ``error_type`` in the cause chain."""

    for candidate in iter_chain(exc):
        if isinstance(candidate, error_type):
            return candidate
    return None


def _typed(exc: BaseException) -> NewsAgentError | None:
    for candidate in iter_chain(exc):
        if isinstance(candidate, NewsAgentError) and not isinstance(candidate, AppError):
            return candidate
    return None


def _text(exc: BaseException) -> str:
    return str(exc).lower()


def _contains(exc: BaseException, fragments: tuple[str, ...]) -> bool:
    text = _text(exc)
    return any(fragment in text for fragment in fragments)


def is_invalid_url(exc: BaseException) -> bool:
    for candidate in iter_chain(exc):
        if isinstance(candidate, (InvalidURLError, httpx.InvalidURL, httpx.UnsupportedProtocol)):
            return True
    return _contains(exc, ("invalid url",))


def is_db_busy(exc: BaseException) -> bool:
    text = _text(exc)
    return "database is locked" in text or "database is busy" in text


def is_transient_analysis(exc: BaseException) -> bool:
    typed = _typed(exc)
    if typed is not None and typed.retryable is not None:
        return typed.retryable
    return _contains(exc, _TRANSIENT_ANALYSIS_FRAGMENTS)


def is_rate_limit(exc: BaseException) -> bool:
    for candidate in iter_chain(exc):
        if getattr(candidate, "status_code", None) == 429:
            return True
    return _contains(exc, _RATE_LIMIT_FRAGMENTS)


def _structural_kind(exc: BaseException) -> ErrorKind | None:
    for candidate in iter_chain(exc):
        if isinstance(candidate, NewsAgentError):
            return candidate.kind
        if isinstance(candidate, httpx.TimeoutException):
            return ErrorKind.TIMEOUT
        if isinstance(candidate, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
            return ErrorKind.NETWORK
        if isinstance(candidate, httpx.HTTPStatusError):
            code = candidate.response.status_code
            if code == 429:
                return ErrorKind.RATE_LIMIT
            return ErrorKind.TIMEOUT if code == 408 else ErrorKind.NETWORK
        if isinstance(candidate, (httpx.TransportError, ConnectionError, socket.gaierror)):
            return ErrorKind.NETWORK
        if isinstance(candidate, TimeoutError):
            return ErrorKind.TIMEOUT
        if isinstance(candidate, sqlite3.Error):
            return ErrorKind.STORAGE
    return None


def _textual_kind(exc: BaseException) -> ErrorKind:
    if _contains(exc, _NETWORK_FRAGMENTS):
        return ErrorKind.NETWORK
    if _contains(exc, _STORAGE_FRAGMENTS):
        return ErrorKind.STORAGE
    if _contains(exc, _ANALYSIS_FRAGMENTS):
        return ErrorKind.ANALYSIS
    if _contains(exc, _VALIDATION_FRAGMENTS):
        return ErrorKind.VALIDATION
    if _contains(exc, _TIMEOUT_FRAGMENTS):
        return ErrorKind.TIMEOUT
    if _contains(exc, _RATE_LIMIT_FRAGMENTS):
        return ErrorKind.RATE_LIMIT
    return ErrorKind.UNKNOWN


def classify(exc: BaseException) -> ErrorKind:
    """Classify an error, preferring typed signals over message matching."""

    kind = _structural_kind(exc)
    if kind is not None:
        return kind
    return _textual_kind(exc)


def is_retryable_kind(kind: ErrorKind, exc: BaseException) -> bool:
    typed = _typed(exc)
    if typed is not None and typed.retryable is not None:
        return typed.retryable
    if kind is ErrorKind.NETWORK:
        return not is_invalid_url(exc)
    if kind is ErrorKind.STORAGE:
        return is_db_busy(exc)
    if kind is ErrorKind.ANALYSIS:
        return is_transient_analysis(exc)
    return kind in (ErrorKind.TIMEOUT, ErrorKind.RATE_LIMIT)


def wrap(operation: str, exc: BaseException) -> AppError:
    """Annotate ``exc`` with ``operation`` and attach its classification."""

    if isinstance(exc, AppError):
        return AppError(operation, exc, exc.kind, exc.retryable)
    kind = classify(exc)
    return AppError(operation, exc, kind, is_retryable_kind(kind, exc))


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RunCancelled):
        return False
    if isinstance(exc, AppError):
        return exc.retryable
    return is_retryable_kind(classify(exc), exc)


def user_friendly_message(exc: BaseException | None) -> str:
    """Render a human readable explanation for ``exc``."""

    if exc is None:
        return ""
    cancelled = find(exc, RunCancelled)
    if cancelled is not None:
        if cancelled.deadline:
            return "Operation timed out. Please try again or check your network connection."
        return "Operation was cancelled before it completed."
    app_error = find(exc, AppError)
    if app_error is None:
        return f"An unexpected error occurred: {exc}"
    kind = app_error.kind
    if kind is ErrorKind.NETWORK:
        if is_invalid_url(exc):
            return "Invalid URL provided. Please check the URL format."
        return "Network connection failed. Please check your internet connection and try again."
    if kind is ErrorKind.STORAGE:
        if is_db_busy(exc):
            return "Database is temporarily busy. The operation will be retried automatically."
        return "Database error occurred. Please check file permissions and disk space."
    if kind is ErrorKind.ANALYSIS:
        if is_rate_limit(exc):
            return "AI service rate limit reached. Please wait a moment and try again."
        if find(exc, MissingAPIKeyError) is not None or _contains(exc, ("api key", "api_key")):
            return "AI API key is missing or invalid. Please set the GEMINI_API_KEY environment variable."
        return "AI processing failed. The article will be saved without analysis."
    if kind is ErrorKind.VALIDATION:
        return "Invalid input provided. Please check your configuration."
    if kind is ErrorKind.TIMEOUT:
        return "Operation timed out. Please try again or check your network connection."
    if kind is ErrorKind.RATE_LIMIT:
        return "Rate limit exceeded. Please wait a moment before trying again."
    return f"An error occurred: {app_error.error}"


__all__ = [
    "AnalysisResponseError",
    "AnalysisServiceError",
    "AppError",
    "DuplicateLinkError",
    "ErrorKind",
    "ExtractionStatusError",
    "FeedParseError",
    "FeedStatusError",
    "HTTPStatusFailure",
    "InvalidURLError",
    "MissingAPIKeyError",
    "NewsAgentError",
    "RunCancelled",
    "classify",
    "find",
    "is_db_busy",
    "is_invalid_url",
    "is_rate_limit",
    "is_retryable",
    "iter_chain",
    "user_friendly_message",
    "wrap",
]
