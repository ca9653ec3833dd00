"""
Tests for typed state branches.
"""

import pytest

from core.reactive_store import ReactiveStore
from core.state_schema import (
    AppState,
    ConfigState,
    TypedBranch,
    UIState,
    branch,
    default_initial_state,
)


@pytest.fixture
def store():
    return ReactiveStore()


class TestDefaultState:
    """Tests for the reference tree."""

    def test_reference_branches(self):
        """Test every top-level branch is present."""
        state = default_initial_state()

        assert set(state) == {"agent", "tasks", "learning", "api", "models", "ui", "config"}
        assert state["ui"]["theme"] == "dark"
        assert state["config"]["balance_warning_threshold"] == 20
        assert state["tasks"] == {"completed": [], "pending": [], "in_progress": []}

    def test_fresh_each_call(self):
        """Test callers get independent trees."""
        first = default_initial_state()
        first["tasks"]["pending"].append(1)

        assert default_initial_state()["tasks"]["pending"] == []


class TestTypedBranch:
    """Tests for typed branch access."""

    def test_get_returns_dataclass(self, store):
        """Test reads are coerced to the branch type."""
        ui = branch(store, "ui")

        assert ui.get() == UIState()

    def test_update_fields(self, store):
        """Test update writes each field under the branch."""
        ui = branch(store, "ui")
        ui.update(theme="light", sidebar_open=False)

        assert store.get("ui.theme") == "light"
        assert ui.get().sidebar_open is False
        assert store.history_size == 1

    def test_update_unknown_field(self, store):
        """Test unknown fields are rejected before writing."""
        with pytest.raises(AttributeError):
            branch(store, "ui").update(colour="red")

        assert store.history_size == 0

    def test_replace(self, store):
        """Test replacing the whole branch."""
        config = branch(store, "config")
        config.replace(ConfigState(refresh_interval=5000))

        assert store.get("config.refresh_interval") == 5000

    def test_replace_wrong_type(self, store):
        """Test replace checks the dataclass type."""
        with pytest.raises(TypeError):
            branch(store, "config").replace(UIState())

    def test_subscribe_receives_typed_branch(self, store):
        """Test subscribers get the branch dataclass and the changed path."""
        received = []
        branch(store, "ui").subscribe(lambda value, path: received.append((value, path)))

        store.set("ui.theme", "light")

        assert received == [(UIState(theme="light"), "ui.theme")]

    def test_unknown_keys_ignored(self, store):
        """Test extra keys in the tree do not break coercion."""
        store.set("ui.experimental", True)

        assert branch(store, "ui").get() == UIState()

    def test_unknown_branch(self, store):
        """Test branch() only knows the reference branches."""
        with pytest.raises(KeyError):
            branch(store, "weather")

    def test_requires_dataclass(self, store):
        """Test TypedBranch rejects non-dataclass types."""
        with pytest.raises(TypeError):
            TypedBranch(store, "ui", dict)

    def test_app_state_defaults(self):
        """Test AppState nests the branch defaults."""
        assert AppState().ui == UIState()
