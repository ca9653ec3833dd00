"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines runtime-wide constants.

- Reserved topics and sentinels
- Default history and persistence settings
- Lifecycle event topic names

============================================================
"""

from typing import Tuple


# ============================================================
# SUBSCRIPTION SENTINELS
# ============================================================

WILDCARD = "*"
"""Subscription key matching every topic / every state path."""

PATH_SEPARATOR = "."
"""Separator between state path segments."""

STATE_TOPIC_PREFIX = "state:"
"""Namespace of events mirrored from store notifications."""


# ============================================================
# STORE DEFAULTS
# ============================================================

DEFAULT_HISTORY_LIMIT = 50
"""Maximum number of snapshots kept for undo."""

DEFAULT_STORAGE_KEY = "runtime_state"
"""Key of the persisted snapshot slot."""

DEFAULT_PERSISTED_BRANCHES: Tuple[str, ...] = ("ui", "config")
"""Top-level branches written to the persistence slot."""


# ============================================================
# LIFECYCLE EVENTS
# ============================================================

class Events:
    """Topics published by the runtime itself."""

    MODULE_LOADED = "module:loaded"
    MODULE_ERROR = "module:error"
    MODULE_DESTROYED = "module:destroyed"

    @staticmethod
    def state(path: str) -> str:
        """Topic of the mirrored notification for a state path."""
        return f"{STATE_TOPIC_PREFIX}{path}"


__all__ = [
    "WILDCARD",
    "PATH_SEPARATOR",
    "STATE_TOPIC_PREFIX",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_STORAGE_KEY",
    "DEFAULT_PERSISTED_BRANCHES",
    "Events",
]
