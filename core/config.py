"""
Core Module - Runtime Configuration.

============================================================
RESPONSIBILITY
============================================================
Holds every tunable of the runtime in one dataclass.

- Loaded from environment variables (and a .env file if present)
- Validated before the runtime is composed

============================================================
"""

from dataclasses import dataclass, field
from typing import List, Tuple
import os

from dotenv import load_dotenv

from .constants import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_PERSISTED_BRANCHES,
    DEFAULT_STORAGE_KEY,
)


PERSISTENCE_BACKENDS = ("memory", "file", "database")
LOG_FORMATS = ("text", "json")


def _parse_branches(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


# ============================================================
# RUNTIME CONFIGURATION
# ============================================================

@dataclass
class RuntimeConfig:
    """Configuration for the runtime composition root."""

    # Logging
    log_level: str = "INFO"
    """Logging level."""

    log_format: str = "text"
    """Log output format (text or json)."""

    # History
    history_limit: int = DEFAULT_HISTORY_LIMIT
    """Maximum number of undo snapshots."""

    # Persistence
    persistence_enabled: bool = True
    """Write the persisted branches after every mutation."""

    persistence_backend: str = "memory"
    """Backend for the persisted slot: memory, file or database."""

    persistence_path: str = ".runtime_state.json"
    """File used by the file backend."""

    database_url: str = "sqlite:///runtime_state.db"
    """SQLAlchemy URL used by the database backend."""

    storage_key: str = DEFAULT_STORAGE_KEY
    """Key of the persisted slot."""

    persisted_branches: Tuple[str, ...] = field(
        default_factory=lambda: tuple(DEFAULT_PERSISTED_BRANCHES)
    )
    """Top-level state branches written to the slot."""

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        return cls(
            log_level=os.getenv("RUNTIME_LOG_LEVEL", "INFO"),
            log_format=os.getenv("RUNTIME_LOG_FORMAT", "text"),
            history_limit=int(os.getenv("STATE_HISTORY_LIMIT", str(DEFAULT_HISTORY_LIMIT))),
            persistence_enabled=os.getenv("STATE_PERSISTENCE_ENABLED", "true").lower() == "true",
            persistence_backend=os.getenv("STATE_PERSISTENCE_BACKEND", "memory").lower(),
            persistence_path=os.getenv("STATE_PERSISTENCE_PATH", ".runtime_state.json"),
            database_url=os.getenv("RUNTIME_DATABASE_URL", "sqlite:///runtime_state.db"),
            storage_key=os.getenv("STATE_STORAGE_KEY", DEFAULT_STORAGE_KEY),
            persisted_branches=_parse_branches(
                os.getenv("STATE_PERSISTED_BRANCHES", ",".join(DEFAULT_PERSISTED_BRANCHES))
            ),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.history_limit < 1:
            errors.append("history_limit must be at least 1")

        if self.persistence_backend not in PERSISTENCE_BACKENDS:
            errors.append(
                f"persistence_backend must be one of {', '.join(PERSISTENCE_BACKENDS)}"
            )

        if self.log_format not in LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(LOG_FORMATS)}")

        if not self.storage_key:
            errors.append("storage_key must not be empty")

        if self.persistence_backend == "file" and not self.persistence_path:
            errors.append("persistence_path required for file backend")

        if self.persistence_backend == "database" and not self.database_url:
            errors.append("database_url required for database backend")

        return errors


__all__ = [
    "RuntimeConfig",
    "PERSISTENCE_BACKENDS",
    "LOG_FORMATS",
]
