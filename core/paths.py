"""
Core Module - State Paths.

============================================================
RESPONSIBILITY
============================================================
Addressing and subscription indexing for the state tree.

- StatePath parses a dot path once into segments
- read_path / check_writable / write_path walk the nested tree
- SubscriptionIndex is a segment trie mapping path prefixes to
  subscribers, so the ancestor cascade is a single walk down
  the trie rather than string splitting on every write

============================================================
"""

from typing import Any, Dict, Iterator, List, MutableMapping, Optional, Tuple

from .constants import PATH_SEPARATOR, WILDCARD
from .exceptions import InvalidPathError, PathConflictError
from .subscription import Subscription


_MISSING = object()


# ============================================================
# STATE PATH
# ============================================================

class StatePath:
    """Immutable, pre-split dot path."""

    __slots__ = ("raw", "segments")

    def __init__(self, raw: str, segments: Tuple[str, ...]):
        self.raw = raw
        self.segments = segments

    @classmethod
    def parse(cls, raw: Any) -> "StatePath":
        """
        Parse a dot path.

        Raises:
            InvalidPathError: For non-strings, empty paths, empty segments
                or the wildcard sentinel
        """
        if isinstance(raw, StatePath):
            return raw
        if not isinstance(raw, str) or not raw:
            raise InvalidPathError(raw, "path must be a non-empty string")
        if raw == WILDCARD:
            raise InvalidPathError(raw, "the wildcard is not an addressable path")
        segments = tuple(raw.split(PATH_SEPARATOR))
        if any(not segment for segment in segments):
            raise InvalidPathError(raw, "path contains an empty segment")
        return cls(raw, segments)

    @property
    def depth(self) -> int:
        return len(self.segments)

    def ancestors(self) -> List["StatePath"]:
        """Strict ancestors, nearest first."""
        return [
            StatePath(PATH_SEPARATOR.join(self.segments[:i]), self.segments[:i])
            for i in range(len(self.segments) - 1, 0, -1)
        ]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StatePath) and other.segments == self.segments

    def __hash__(self) -> int:
        return hash(self.segments)

    def __repr__(self) -> str:
        return f"StatePath({self.raw!r})"

    def __str__(self) -> str:
        return self.raw


# ============================================================
# TREE WALKING
# ============================================================

def _index(container: list, segment: str) -> Optional[int]:
    if segment.isdigit():
        position = int(segment)
        if position < len(container):
            return position
    return None


def _child(node: Any, segment: str) -> Any:
    if isinstance(node, MutableMapping):
        return node.get(segment, _MISSING)
    if isinstance(node, list):
        position = _index(node, segment)
        return _MISSING if position is None else node[position]
    return _MISSING


def read_path(tree: Any, segments: Tuple[str, ...]) -> Tuple[bool, Any]:
    """
    Walk ``segments`` from ``tree``.

    Returns:
        (found, value) - found is False if any segment is absent
        or an intermediate value is None
    """
    node = tree
    for segment in segments:
        if node is None:
            return False, None
        node = _child(node, segment)
        if node is _MISSING:
            return False, None
    return True, node


def check_writable(tree: Any, path: StatePath) -> None:
    """
    Verify ``path`` can be written without mutating anything.

    Raises:
        PathConflictError: If an existing segment is a scalar, or a
            sequence is indexed by a non-index / out-of-range segment
    """
    node = tree
    for segment in path.segments[:-1]:
        child = _child(node, segment)
        if child is _MISSING or child is None:
            if isinstance(node, list):
                raise PathConflictError(path.raw, segment, "list")
            # remaining segments are created on write
            return
        if not isinstance(child, (MutableMapping, list)):
            raise PathConflictError(path.raw, segment, type(child).__name__)
        node = child

    leaf = path.segments[-1]
    if isinstance(node, list) and _index(node, leaf) is None:
        raise PathConflictError(path.raw, leaf, "list")


def write_path(tree: MutableMapping, path: StatePath, value: Any) -> Any:
    """
    Write ``value`` at ``path``, creating intermediate mappings.

    Call ``check_writable`` first; this function assumes it passed.

    Returns:
        Previous value at the path, or None
    """
    node: Any = tree
    for segment in path.segments[:-1]:
        child = _child(node, segment)
        if child is _MISSING or child is None:
            child = {}
            node[segment] = child
        node = child

    leaf = path.segments[-1]
    if isinstance(node, list):
        position = _index(node, leaf)
        old_value = node[position]
        node[position] = value
        return old_value

    old_value = node.get(leaf)
    node[leaf] = value
    return old_value


# ============================================================
# SUBSCRIPTION TRIE
# ============================================================

class _TrieNode:
    __slots__ = ("children", "subscribers")

    def __init__(self):
        self.children: Dict[str, "_TrieNode"] = {}
        self.subscribers: Dict[int, Subscription] = {}

    def is_empty(self) -> bool:
        return not self.children and not self.subscribers


class SubscriptionIndex:
    """
    Segment trie of state subscriptions.

    Each node corresponds to a path prefix. Wildcard subscriptions
    are kept apart from the trie.
    """

    def __init__(self):
        self._root = _TrieNode()
        self._wildcard: Dict[int, Subscription] = {}

    def add(self, path: Optional[StatePath], sub: Subscription) -> None:
        """Register ``sub`` at ``path`` (None means wildcard)."""
        if path is None:
            self._wildcard[sub.subscription_id] = sub
            return
        node = self._root
        for segment in path.segments:
            node = node.children.setdefault(segment, _TrieNode())
        node.subscribers[sub.subscription_id] = sub

    def remove(self, path: Optional[StatePath], sub: Subscription) -> bool:
        """Remove ``sub`` and prune trie nodes left empty."""
        if path is None:
            return self._wildcard.pop(sub.subscription_id, None) is not None

        trail: List[Tuple[_TrieNode, str]] = []
        node = self._root
        for segment in path.segments:
            child = node.children.get(segment)
            if child is None:
                return False
            trail.append((node, segment))
            node = child

        removed = node.subscribers.pop(sub.subscription_id, None) is not None
        for parent, segment in reversed(trail):
            if not parent.children[segment].is_empty():
                break
            del parent.children[segment]
        return removed

    def exact(self, path: StatePath) -> List[Subscription]:
        node = self._find(path.segments)
        return list(node.subscribers.values()) if node else []

    def ancestors(self, path: StatePath) -> List[Tuple[StatePath, List[Subscription]]]:
        """
        Subscribed strict ancestors of ``path``, nearest first.

        Only prefixes that hold subscribers are returned.
        """
        found: List[Tuple[StatePath, List[Subscription]]] = []
        node = self._root
        for depth, segment in enumerate(path.segments[:-1], start=1):
            node = node.children.get(segment)
            if node is None:
                break
            if node.subscribers:
                prefix = path.segments[:depth]
                found.append(
                    (StatePath(PATH_SEPARATOR.join(prefix), prefix), list(node.subscribers.values()))
                )
        found.reverse()
        return found

    def wildcard(self) -> List[Subscription]:
        return list(self._wildcard.values())

    def count(self, path: Optional[StatePath] = None) -> int:
        """Subscriber count at ``path``, wildcard if None."""
        if path is None:
            return len(self._wildcard)
        node = self._find(path.segments)
        return len(node.subscribers) if node else 0

    def __iter__(self) -> Iterator[Subscription]:
        yield from self._wildcard.values()
        stack = [self._root]
        while stack:
            node = stack.pop()
            yield from node.subscribers.values()
            stack.extend(node.children.values())

    def _find(self, segments: Tuple[str, ...]) -> Optional[_TrieNode]:
        node = self._root
        for segment in segments:
            node = node.children.get(segment)
            if node is None:
                return None
        return node


__all__ = [
    "StatePath",
    "SubscriptionIndex",
    "read_path",
    "check_writable",
    "write_path",
]
