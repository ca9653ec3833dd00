"""
Core Module Package.

This package contains the runtime primitives that every module
depends on.

Components:
- event_channel: Topic publish/subscribe
- reactive_store: Path-addressed reactive state with undo/redo
- paths: State paths and the subscription trie
- history: Undo/redo snapshot stack
- persistence: Persisted-branch slot and backends
- state_schema: Typed branches of the reference state tree
- config: Runtime configuration
- clock: Injectable clock
- exceptions: Custom exception hierarchy
- constants: Runtime-wide constants
"""

from .constants import WILDCARD, Events
from .event_channel import ChannelEvent, EventChannel
from .reactive_store import ReactiveStore, StateChange
from .persistence import (
    JsonFileBackend,
    MemoryBackend,
    PersistenceBackend,
    StatePersistence,
)
from .config import RuntimeConfig

__all__ = [
    "WILDCARD",
    "Events",
    "ChannelEvent",
    "EventChannel",
    "ReactiveStore",
    "StateChange",
    "PersistenceBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "StatePersistence",
    "RuntimeConfig",
]
