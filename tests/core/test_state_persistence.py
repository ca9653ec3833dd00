"""
Tests for persistence backends and StatePersistence.

============================================================
TEST COVERAGE
============================================================
1. MemoryBackend / JsonFileBackend slot operations
2. Branch extraction and merge
3. Failure policy (logged, never raised)
============================================================
"""

import json
import logging
from unittest.mock import MagicMock

import pytest

from core.persistence import JsonFileBackend, MemoryBackend, StatePersistence
from core.reactive_store import ReactiveStore


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def state():
    return {
        "agent": {"status": "idle"},
        "ui": {"theme": "dark", "sidebar_open": True},
        "config": {"refresh_interval": 30000},
    }


# ============================================================
# BACKENDS
# ============================================================

class TestMemoryBackend:
    """Tests for the in-process slot."""

    def test_save_load_remove(self):
        """Test slot lifecycle."""
        backend = MemoryBackend()
        backend.save("k", "data")

        assert backend.load("k") == "data"
        assert backend.keys() == ["k"]

        backend.remove("k")
        assert backend.load("k") is None
        backend.remove("k")


class TestJsonFileBackend:
    """Tests for the JSON file slot."""

    def test_save_and_reload(self, tmp_path):
        """Test data survives a new backend on the same file."""
        path = tmp_path / "state" / "slots.json"
        JsonFileBackend(path).save("runtime_state", '{"ui": {}}')

        assert JsonFileBackend(path).load("runtime_state") == '{"ui": {}}'
        assert json.loads(path.read_text()) == {"runtime_state": '{"ui": {}}'}

    def test_missing_file(self, tmp_path):
        """Test a missing file is an empty slot."""
        assert JsonFileBackend(tmp_path / "none.json").load("k") is None

    def test_remove_keeps_other_keys(self, tmp_path):
        """Test removing one key leaves the others."""
        backend = JsonFileBackend(tmp_path / "slots.json")
        backend.save("a", "1")
        backend.save("b", "2")

        backend.remove("a")

        assert backend.load("a") is None
        assert backend.load("b") == "2"

    def test_corrupt_file_is_empty_slot(self, tmp_path, caplog):
        """Test an unparseable file loads as empty and logs a warning."""
        path = tmp_path / "slots.json"
        path.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="core.persistence"):
            assert JsonFileBackend(path).load("runtime_state") is None

        assert "Ignoring corrupt persistence file" in caplog.text

    def test_non_object_file_overwritten_on_save(self, tmp_path):
        """Test a JSON array file is treated as empty and replaced on save."""
        path = tmp_path / "slots.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        backend = JsonFileBackend(path)

        assert backend.load("k") is None

        backend.save("k", "data")
        assert json.loads(path.read_text()) == {"k": "data"}

    def test_store_recovers_corrupt_file(self, tmp_path):
        """Test a store on a corrupt file persists again after the next write."""
        path = tmp_path / "slots.json"
        path.write_text("{not json", encoding="utf-8")

        store = ReactiveStore(backend=JsonFileBackend(path))
        store.set("ui.theme", "light")

        document = json.loads(path.read_text())
        assert json.loads(document["runtime_state"])["ui"]["theme"] == "light"
        assert ReactiveStore(backend=JsonFileBackend(path)).get("ui.theme") == "light"


# ============================================================
# STATE PERSISTENCE
# ============================================================

class TestStatePersistence:
    """Tests for branch extraction, save and restore."""

    def test_extract_designated_branches(self, state):
        """Test only configured branches are extracted."""
        persistence = StatePersistence(MemoryBackend(), branches=("ui", "config"))

        assert persistence.extract(state) == {
            "ui": state["ui"],
            "config": state["config"],
        }

    def test_save_then_restore(self, state):
        """Test a saved slot merges back into a fresh tree."""
        backend = MemoryBackend()
        persistence = StatePersistence(backend, storage_key="slot")
        state["ui"]["theme"] = "light"

        assert persistence.save(state) is True

        fresh = {"ui": {"theme": "dark", "sidebar_open": True, "new_flag": 1}}
        assert persistence.restore_into(fresh) is True
        assert fresh["ui"] == {"theme": "light", "sidebar_open": True, "new_flag": 1}

    def test_non_object_branch_ignored(self, caplog):
        """Test a persisted scalar does not replace a mapping branch."""
        backend = MemoryBackend({"runtime_state": json.dumps({"ui": "oops"})})
        persistence = StatePersistence(backend)
        tree = {"ui": {"theme": "dark"}}

        with caplog.at_level(logging.WARNING, logger="core.persistence"):
            persistence.restore_into(tree)

        assert tree == {"ui": {"theme": "dark"}}
        assert "Ignoring persisted branch" in caplog.text

    def test_non_object_payload_ignored(self):
        """Test a JSON array payload means no prior state."""
        backend = MemoryBackend({"runtime_state": "[1, 2]"})

        assert StatePersistence(backend).load() is None

    def test_save_failure_logged(self, state, caplog):
        """Test backend errors are logged, not raised."""
        backend = MagicMock()
        backend.save.side_effect = OSError("read-only")
        persistence = StatePersistence(backend)

        with caplog.at_level(logging.WARNING, logger="core.persistence"):
            assert persistence.save(state) is False

        assert "read-only" in caplog.text

    def test_unserializable_state_logged(self, state):
        """Test values JSON cannot encode fail softly."""
        state["ui"]["callback"] = object()

        assert StatePersistence(MemoryBackend()).save(state) is False

    def test_clear_failure_logged(self, caplog):
        """Test clear errors are logged, not raised."""
        backend = MagicMock()
        backend.remove.side_effect = OSError("gone")

        with caplog.at_level(logging.WARNING, logger="core.persistence"):
            StatePersistence(backend).clear()

        assert "gone" in caplog.text

    def test_inactive_without_backend(self, state):
        """Test no backend means nothing is saved or loaded."""
        persistence = StatePersistence(None)

        assert persistence.active is False
        assert persistence.save(state) is False
        assert persistence.restore_into(state) is False

    def test_disabled(self, state):
        """Test the enabled switch."""
        backend = MemoryBackend()
        persistence = StatePersistence(backend, enabled=False)

        assert persistence.save(state) is False
        assert backend.keys() == []
