"""
Core Module - Reactive Store.

============================================================
RESPONSIBILITY
============================================================
Canonical application state with reactive notification and
time travel.

- Dot-path get/set over a nested mapping
- Atomic batch updates with one history entry
- Linear undo/redo over full-tree snapshots
- Best-effort persistence of selected branches
- Every cascade is mirrored on the EventChannel as "state:<path>"

============================================================
NOTIFICATION CASCADE
============================================================
On a write to P:
1. Exact subscribers of P      -> (new_value, old_value, P)
2. Ancestors of P, nearest first -> (value_at_ancestor, None, P)
3. Wildcard subscribers        -> (whole_tree, old_value, P)
4. EventChannel.publish("state:P", StateChange(...))

undo/redo/reset notify wildcard subscribers only, with P = "*".

============================================================
OWNERSHIP
============================================================
The tree never leaves the store by reference: values are deep
copied on the way in and on the way out. History snapshots are
taken before a mutation is applied.

============================================================
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
import copy
import logging

from .constants import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_PERSISTED_BRANCHES,
    DEFAULT_STORAGE_KEY,
    WILDCARD,
    Events,
)
from .event_channel import EventChannel
from .exceptions import InvalidPathError, SubscriptionError
from .history import HistoryStack
from .paths import (
    StatePath,
    SubscriptionIndex,
    check_writable,
    read_path,
    write_path,
)
from .persistence import PersistenceBackend, StatePersistence
from .state_schema import default_initial_state
from .subscription import Subscription, Unsubscribe


StateCallback = Callable[[Any, Any, str], Any]


@dataclass(frozen=True)
class StateChange:
    """Payload of the mirrored ``state:<path>`` event."""

    path: str
    new_value: Any
    old_value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "new_value": self.new_value,
            "old_value": self.old_value,
        }


# ============================================================
# REACTIVE STORE
# ============================================================

class ReactiveStore:
    """
    Hierarchical key-path state container.

    Constructed once by the composition root; modules receive it
    by injection.
    """

    def __init__(
        self,
        events: Optional[EventChannel] = None,
        initial_state: Callable[[], Dict[str, Any]] = default_initial_state,
        backend: Optional[PersistenceBackend] = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        persisted_branches: Sequence[str] = DEFAULT_PERSISTED_BRANCHES,
        max_history: int = DEFAULT_HISTORY_LIMIT,
        persist_enabled: bool = True,
    ):
        """
        Initialize the store and merge any persisted branches.

        Args:
            events: Channel receiving mirrored "state:<path>" events
            initial_state: Factory returning the default tree
            backend: Slot for persisted branches (None disables persistence)
            storage_key: Key of the persisted slot
            persisted_branches: Top-level branches written to the slot
            max_history: Undo capacity
            persist_enabled: Master switch for persistence writes and reads
        """
        self._events = events
        self._initial_state = initial_state
        self._index = SubscriptionIndex()
        self._history = HistoryStack(max_history)
        self._persistence = StatePersistence(
            backend=backend,
            storage_key=storage_key,
            branches=persisted_branches,
            enabled=persist_enabled,
        )
        self._logger = logging.getLogger(__name__)

        self._state: Dict[str, Any] = self._fresh_state()
        self._persistence.restore_into(self._state)

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def history_size(self) -> int:
        return len(self._history)

    @property
    def history_index(self) -> int:
        return self._history.index

    @property
    def persistence(self) -> StatePersistence:
        return self._persistence

    # --------------------------------------------------------
    # Reads
    # --------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        """
        Value at ``path``, or ``default`` if any segment is absent or None.

        Never raises; a malformed path also yields ``default``.
        """
        try:
            parsed = StatePath.parse(path)
        except InvalidPathError:
            return default
        found, value = read_path(self._state, parsed.segments)
        if not found or value is None:
            return default
        return copy.deepcopy(value)

    def get_state(self) -> Dict[str, Any]:
        """Deep snapshot of the whole tree."""
        return copy.deepcopy(self._state)

    # --------------------------------------------------------
    # Writes
    # --------------------------------------------------------

    def set(self, path: str, value: Any, notify: bool = True) -> None:
        """
        Write ``value`` at ``path``, replacing whatever was there.

        Raises:
            InvalidPathError: Malformed path
            PathConflictError: Path descends through a scalar
        """
        parsed = StatePath.parse(path)
        check_writable(self._state, parsed)

        snapshot = copy.deepcopy(self._state)
        stored = copy.deepcopy(value)
        old_value = write_path(self._state, parsed, stored)

        self._history.record(snapshot)
        self._persistence.save(self._state)

        self._logger.debug(f"State set | path={parsed.raw}")

        if notify:
            self._notify(parsed, stored, old_value)

    def batch_update(self, updates: Mapping[str, Any]) -> None:
        """
        Apply several writes as one mutation.

        All writes land before the first notification; one history
        entry and one persistence write cover the whole batch. If any
        write is invalid, nothing is applied.
        """
        if not updates:
            return

        parsed = [(StatePath.parse(path), value) for path, value in updates.items()]

        snapshot = copy.deepcopy(self._state)
        working = copy.deepcopy(snapshot)
        changes: List[Tuple[StatePath, Any, Any]] = []
        for path, value in parsed:
            check_writable(working, path)
            stored = copy.deepcopy(value)
            write_path(working, path, stored)
            # Old values are relative to the tree before the batch
            _, old_value = read_path(snapshot, path.segments)
            changes.append((path, stored, old_value))

        self._state = working
        self._history.record(snapshot)
        self._persistence.save(self._state)

        self._logger.debug(f"State batch update | paths={[p.raw for p, _, _ in changes]}")

        for path, new_value, old_value in changes:
            self._notify(path, new_value, old_value)

    # --------------------------------------------------------
    # Subscriptions
    # --------------------------------------------------------

    def subscribe(self, path: str, callback: StateCallback) -> Unsubscribe:
        """
        Register ``callback(new_value, old_value, changed_path)`` on ``path``.

        ``"*"`` subscribes to every change, including undo/redo/reset.

        Raises:
            InvalidPathError: Malformed path
            SubscriptionError: Callback not callable
        """
        parsed = None if path == WILDCARD else StatePath.parse(path)
        if not callable(callback):
            raise SubscriptionError(
                message=f"Callback for state path {path!r} is not callable",
                context={"path": str(path), "callback_type": type(callback).__name__},
            )

        sub = Subscription(key=path, callback=callback)
        self._index.add(parsed, sub)

        def unsubscribe() -> bool:
            if not sub.active:
                return False
            sub.active = False
            return self._index.remove(parsed, sub)

        return unsubscribe

    def subscriber_count(self, path: str) -> int:
        parsed = None if path == WILDCARD else StatePath.parse(path)
        return self._index.count(parsed)

    # --------------------------------------------------------
    # History
    # --------------------------------------------------------

    def undo(self) -> bool:
        """Restore the previous snapshot. False at the start of history."""
        previous = self._history.undo(self._state)
        if previous is None:
            return False
        self._replace_tree(previous, reason="undo")
        return True

    def redo(self) -> bool:
        """Re-apply the next snapshot. False if nothing was undone."""
        following = self._history.redo()
        if following is None:
            return False
        self._replace_tree(following, reason="redo")
        return True

    def reset(self) -> None:
        """Back to the initial tree; history and persisted slot are cleared."""
        old_state = self._state
        self._state = self._fresh_state()
        self._history.clear()
        self._persistence.clear()
        self._logger.info("State reset to initial shape")
        self._notify_wildcard(old_state)

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    def _fresh_state(self) -> Dict[str, Any]:
        return copy.deepcopy(self._initial_state())

    def _replace_tree(self, tree: Dict[str, Any], reason: str) -> None:
        old_state = self._state
        self._state = tree
        self._persistence.save(self._state)
        self._logger.debug(f"State {reason} | history_index={self._history.index}")
        self._notify_wildcard(old_state)

    def _notify(self, path: StatePath, new_value: Any, old_value: Any) -> None:
        changed = path.raw

        exact = self._index.exact(path)
        if exact:
            self._dispatch(exact, new_value, old_value, changed)

        for ancestor, subs in self._index.ancestors(path):
            _, ancestor_value = read_path(self._state, ancestor.segments)
            self._dispatch(subs, ancestor_value, None, changed)

        wildcard = self._index.wildcard()
        if wildcard:
            self._dispatch(wildcard, self._state, old_value, changed)

        self._mirror(changed, new_value, old_value)

    def _notify_wildcard(self, old_state: Dict[str, Any]) -> None:
        wildcard = self._index.wildcard()
        if wildcard:
            self._dispatch(wildcard, self._state, old_state, WILDCARD)
        self._mirror(WILDCARD, self._state, old_state)

    def _dispatch(
        self,
        subs: List[Subscription],
        new_value: Any,
        old_value: Any,
        changed_path: str,
    ) -> None:
        """Each callback gets its own copies; none can reach the tree or a sibling."""
        for sub in subs:
            if not sub.active:
                continue
            try:
                sub.callback(copy.deepcopy(new_value), copy.deepcopy(old_value), changed_path)
            except Exception as e:
                self._logger.error(
                    f"State subscriber error | path={sub.key} | changed={changed_path} | "
                    f"handler={sub.name}: {e}",
                    exc_info=True,
                )

    def _mirror(self, changed_path: str, new_value: Any, old_value: Any) -> None:
        if self._events is None:
            return
        self._events.publish(
            Events.state(changed_path),
            StateChange(
                path=changed_path,
                new_value=copy.deepcopy(new_value),
                old_value=copy.deepcopy(old_value),
            ),
        )


__all__ = [
    "StateCallback",
    "StateChange",
    "ReactiveStore",
]
