"""User interaction helpers."""

from .progress import MultiSourceProgress, render_summary

__all__ = ["MultiSourceProgress", "render_summary"]
