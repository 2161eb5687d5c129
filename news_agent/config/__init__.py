"""Configuration package exports."""

from .loader import ConfigRepository
from .models import AnalyzerConfig, AppConfig, ExtractorConfig, RetryPolicy, Source

__all__ = [
    "AnalyzerConfig",
    "AppConfig",
    "ConfigRepository",
    "ExtractorConfig",
    "RetryPolicy",
    "Source",
]
