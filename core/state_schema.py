"""
Core Module - State Schema.

============================================================
RESPONSIBILITY
============================================================
Typed view over the known top-level branches of the state tree.

- Dataclass per branch with its defaults
- default_initial_state() builds the tree the store starts from
- TypedBranch gives typed get/update/subscribe on one branch while
  the store itself stays path-addressed for cross-cutting code

============================================================
"""

from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar, TYPE_CHECKING

from .subscription import Unsubscribe

if TYPE_CHECKING:
    from .reactive_store import ReactiveStore


# ============================================================
# BRANCHES
# ============================================================

@dataclass
class AgentState:
    name: str = "OpenClaw"
    avatar: Optional[str] = None
    status: str = "idle"
    current_task: Optional[str] = None


@dataclass
class TasksState:
    completed: List[Any] = field(default_factory=list)
    pending: List[Any] = field(default_factory=list)
    in_progress: List[Any] = field(default_factory=list)


@dataclass
class LearningState:
    items: List[Any] = field(default_factory=list)


@dataclass
class ApiState:
    balances: List[Any] = field(default_factory=list)
    last_updated: Optional[str] = None


@dataclass
class ModelsState:
    current: Optional[str] = None
    fallback: Optional[str] = None


@dataclass
class UIState:
    """User interface preferences (persisted)."""

    sidebar_open: bool = True
    info_panel_open: bool = True
    expanded_task_id: Optional[str] = None
    theme: str = "dark"


@dataclass
class ConfigState:
    """Runtime tunables exposed to modules (persisted)."""

    refresh_interval: int = 30000
    balance_warning_threshold: int = 20
    balance_critical_threshold: int = 10


@dataclass
class AppState:
    """The whole reference tree."""

    agent: AgentState = field(default_factory=AgentState)
    tasks: TasksState = field(default_factory=TasksState)
    learning: LearningState = field(default_factory=LearningState)
    api: ApiState = field(default_factory=ApiState)
    models: ModelsState = field(default_factory=ModelsState)
    ui: UIState = field(default_factory=UIState)
    config: ConfigState = field(default_factory=ConfigState)


BRANCH_TYPES: Dict[str, type] = {f.name: f.default_factory for f in fields(AppState)}


def default_initial_state() -> Dict[str, Any]:
    """Fresh plain-dict tree with every branch at its defaults."""
    return asdict(AppState())


# ============================================================
# TYPED ACCESS
# ============================================================

B = TypeVar("B")


class TypedBranch(Generic[B]):
    """
    Typed accessor for one top-level branch.

    Example::

        ui = TypedBranch(store, "ui", UIState)
        ui.update(theme="light")
        assert ui.get().theme == "light"
    """

    def __init__(self, store: "ReactiveStore", name: str, branch_type: Type[B]):
        if not is_dataclass(branch_type):
            raise TypeError(f"{branch_type!r} is not a dataclass")
        self._store = store
        self._name = name
        self._type = branch_type
        self._field_names = {f.name for f in fields(branch_type)}

    @property
    def name(self) -> str:
        return self._name

    def get(self) -> B:
        """Current branch as a dataclass; unknown keys are ignored, missing ones defaulted."""
        return self._coerce(self._store.get(self._name, {}))

    def update(self, **changes: Any) -> None:
        """Write individual fields in one batch."""
        unknown = set(changes) - self._field_names
        if unknown:
            raise AttributeError(
                f"{self._type.__name__} has no field(s): {', '.join(sorted(unknown))}"
            )
        self._store.batch_update({f"{self._name}.{key}": value for key, value in changes.items()})

    def replace(self, value: B) -> None:
        """Overwrite the whole branch."""
        if not isinstance(value, self._type):
            raise TypeError(f"Expected {self._type.__name__}, got {type(value).__name__}")
        self._store.set(self._name, asdict(value))

    def subscribe(self, callback: Callable[[B, str], Any]) -> Unsubscribe:
        """Call ``callback(branch, changed_path)`` on any change inside the branch."""

        def on_change(new_value: Any, _old_value: Any, changed_path: str) -> None:
            callback(self._coerce(new_value), changed_path)

        return self._store.subscribe(self._name, on_change)

    def _coerce(self, raw: Any) -> B:
        if not isinstance(raw, dict):
            return self._type()
        return self._type(**{k: v for k, v in raw.items() if k in self._field_names})


def branch(store: "ReactiveStore", name: str) -> TypedBranch:
    """TypedBranch for one of the reference branches."""
    try:
        branch_type = BRANCH_TYPES[name]
    except KeyError:
        raise KeyError(f"Unknown state branch: {name}") from None
    return TypedBranch(store, name, branch_type)


__all__ = [
    "AgentState",
    "TasksState",
    "LearningState",
    "ApiState",
    "ModelsState",
    "UIState",
    "ConfigState",
    "AppState",
    "BRANCH_TYPES",
    "default_initial_state",
    "TypedBranch",
    "branch",
]
