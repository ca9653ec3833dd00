"""
Core Module - Subscription Handles.

Shared registration record for the event channel and the state store.
"""

from dataclasses import dataclass, field
from typing import Any, Callable
import itertools


Unsubscribe = Callable[[], bool]
"""Capability returned by every subscribe call. Returns True if it removed something."""

_ids = itertools.count(1)


@dataclass(eq=False)
class Subscription:
    """One registered callback under one key (topic or state path)."""

    key: str
    callback: Callable[..., Any]
    once: bool = False
    active: bool = True
    subscription_id: int = field(default_factory=lambda: next(_ids))

    @property
    def name(self) -> str:
        """Readable callback name for log lines."""
        return getattr(self.callback, "__qualname__", None) or repr(self.callback)


__all__ = [
    "Subscription",
    "Unsubscribe",
]
