"""
Core Module - History Stack.

============================================================
RESPONSIBILITY
============================================================
Linear undo/redo bookkeeping over full-tree snapshots.

============================================================
CURSOR RULES
============================================================
- ``index`` points at the last snapshot taken before the most
  recently applied mutation, or -1 before any mutation
- record() discards every entry after the cursor (redo branch)
- The first undo from the tip also stores the current tree as a
  head entry, so redo can return to the post-mutation state
- Exceeding the limit drops the oldest entry and moves the
  cursor back by one

============================================================
"""

from typing import Any, Dict, List, Optional
import copy

from .constants import DEFAULT_HISTORY_LIMIT


Snapshot = Dict[str, Any]


class HistoryStack:
    """Bounded snapshot history with a cursor."""

    def __init__(self, max_length: int = DEFAULT_HISTORY_LIMIT):
        if max_length < 1:
            raise ValueError("max_length must be at least 1")
        self._entries: List[Snapshot] = []
        self._index = -1
        self._max_length = max_length

    @property
    def index(self) -> int:
        return self._index

    @property
    def max_length(self) -> int:
        return self._max_length

    @property
    def can_undo(self) -> bool:
        return self._index >= 0

    @property
    def can_redo(self) -> bool:
        return self._index + 2 <= len(self._entries) - 1

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, snapshot: Snapshot) -> None:
        """Push a pre-mutation snapshot, discarding any redo branch."""
        if self._index < len(self._entries) - 1:
            del self._entries[self._index + 1:]

        self._entries.append(snapshot)
        self._index += 1

        if len(self._entries) > self._max_length:
            self._entries.pop(0)
            self._index -= 1

    def undo(self, current: Snapshot) -> Optional[Snapshot]:
        """
        Step back one entry.

        Args:
            current: The live tree, kept as head entry on the first undo

        Returns:
            Copy of the snapshot to restore, or None at the boundary
        """
        if self._index < 0:
            return None

        if self._index == len(self._entries) - 1:
            self._entries.append(copy.deepcopy(current))

        snapshot = self._entries[self._index]
        self._index -= 1
        return copy.deepcopy(snapshot)

    def redo(self) -> Optional[Snapshot]:
        """Step forward one entry; None if nothing was undone."""
        if not self.can_redo:
            return None
        self._index += 1
        return copy.deepcopy(self._entries[self._index + 1])

    def clear(self) -> None:
        self._entries.clear()
        self._index = -1


__all__ = [
    "HistoryStack",
    "Snapshot",
]
