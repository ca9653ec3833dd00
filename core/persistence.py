"""
Core Module - State Persistence.

============================================================
RESPONSIBILITY
============================================================
Best-effort persistence of selected state branches.

- PersistenceBackend is a single-slot key/value contract
- MemoryBackend and JsonFileBackend ship here; the SQLAlchemy
  backend lives in ``database.slot_backend``
- StatePersistence extracts the designated branches, serializes
  them as JSON and merges them back on startup

============================================================
FAILURE POLICY
============================================================
Every failure is logged and swallowed here. A failed save leaves
the runtime in memory-only mode for that cycle; corrupt or missing
data on load means "no prior state".

============================================================
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional, Sequence, Tuple, Union
import json
import logging

from .constants import DEFAULT_PERSISTED_BRANCHES, DEFAULT_STORAGE_KEY


logger = logging.getLogger(__name__)


# ============================================================
# BACKENDS
# ============================================================

class PersistenceBackend(ABC):
    """Key/value slot holding serialized snapshots."""

    @abstractmethod
    def load(self, key: str) -> Optional[str]:
        """Return the stored string, or None if absent."""
        pass

    @abstractmethod
    def save(self, key: str, data: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class MemoryBackend(PersistenceBackend):
    """In-process slot; survives store re-creation, not the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, data: str) -> None:
        self._data[key] = data

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileBackend(PersistenceBackend):
    """
    Slots stored in one JSON document on disk.

    The file maps storage keys to serialized snapshots.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def save(self, key: str, data: str) -> None:
        document = self._read()
        document[key] = data
        self._write(document)

    def remove(self, key: str) -> None:
        document = self._read()
        if key in document:
            del document[key]
            self._write(document)

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except ValueError as e:
            logger.warning(f"Ignoring corrupt persistence file | path={self._path}: {e}")
            return {}
        if not isinstance(document, dict):
            logger.warning(
                f"Ignoring persistence file | path={self._path} | "
                f"reason=expected object, got {type(document).__name__}"
            )
            return {}
        return document

    def _write(self, document: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        tmp_path.replace(self._path)


# ============================================================
# STATE PERSISTENCE
# ============================================================

class StatePersistence:
    """Moves the designated branches between the state tree and a backend."""

    def __init__(
        self,
        backend: Optional[PersistenceBackend] = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        branches: Sequence[str] = DEFAULT_PERSISTED_BRANCHES,
        enabled: bool = True,
    ):
        self._backend = backend
        self._storage_key = storage_key
        self._branches: Tuple[str, ...] = tuple(branches)
        self.enabled = enabled

    @property
    def backend(self) -> Optional[PersistenceBackend]:
        return self._backend

    @property
    def branches(self) -> Tuple[str, ...]:
        return self._branches

    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def active(self) -> bool:
        return self.enabled and self._backend is not None

    def extract(self, state: MutableMapping[str, Any]) -> Dict[str, Any]:
        """Payload written to the slot: only the designated branches."""
        return {branch: state[branch] for branch in self._branches if branch in state}

    def save(self, state: MutableMapping[str, Any]) -> bool:
        """Serialize the designated branches; False on any failure."""
        if not self.active:
            return False
        try:
            data = json.dumps(self.extract(state))
            self._backend.save(self._storage_key, data)
            return True
        except Exception as e:
            logger.warning(f"Failed to persist state | key={self._storage_key}: {e}")
            return False

    def load(self) -> Optional[Dict[str, Any]]:
        """Read the slot; None if missing, unreadable or not a JSON object."""
        if self._backend is None:
            return None
        try:
            raw = self._backend.load(self._storage_key)
            if raw is None:
                return None
            payload = json.loads(raw)
        except Exception as e:
            logger.warning(f"Failed to load persisted state | key={self._storage_key}: {e}")
            return None

        if not isinstance(payload, dict):
            logger.warning(
                f"Ignoring persisted state | key={self._storage_key} | "
                f"reason=expected object, got {type(payload).__name__}"
            )
            return None
        return payload

    def apply(self, state: MutableMapping[str, Any], payload: Dict[str, Any]) -> None:
        """Shallow-merge each persisted branch into the matching branch of ``state``."""
        for branch in self._branches:
            if branch not in payload:
                continue
            saved = payload[branch]
            current = state.get(branch)
            if isinstance(current, dict) and isinstance(saved, dict):
                state[branch] = {**current, **saved}
            elif current is None or not isinstance(current, dict):
                state[branch] = saved
            else:
                logger.warning(
                    f"Ignoring persisted branch | branch={branch} | "
                    f"reason=expected object, got {type(saved).__name__}"
                )

    def restore_into(self, state: MutableMapping[str, Any]) -> bool:
        """Load the slot and merge it into ``state``; True if anything was applied."""
        if not self.enabled:
            return False
        payload = self.load()
        if payload is None:
            return False
        self.apply(state, payload)
        logger.info(f"Persisted state restored | key={self._storage_key} | branches={sorted(payload)}")
        return True

    def clear(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.remove(self._storage_key)
        except Exception as e:
            logger.warning(f"Failed to clear persisted state | key={self._storage_key}: {e}")


__all__ = [
    "PersistenceBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "StatePersistence",
]
