"""Deduplication gate checking candidate links against the item store."""

from __future__ import annotations

from ..config import RetryPolicy
from ..infra.storage import ItemStore
from .context import RunContext
from .retry import RetryCallback, retry_call


class DeduplicationGate:
    """Decide whether a link still needs processing.

    Lookups are retried per the policy; the skip decision itself never is.
    A positive answer is advisory: concurrent runs may still race to insert
    the same link, which the store's unique constraint settles.
    """

    def __init__(self, store: ItemStore, policy: RetryPolicy) -> None:
        self.store = store
        self.policy = policy

    def is_new(self, link: str, ctx: RunContext, on_retry: RetryCallback | None = None) -> bool:
        existing = retry_call(
            lambda: self.store.find_by_link(link),
            self.policy,
            ctx,
            "check item exists",
            on_retry=on_retry,
        )
        return existing is None


__all__ = ["DeduplicationGate"]
