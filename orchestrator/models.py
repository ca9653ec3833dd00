"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Defines data models for the module orchestrator.

- Module configuration and status
- Module records (definition + live instance + bookkeeping)
- Lifecycle event payloads and init reports

============================================================
"""

from enum import Enum
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from core.exceptions import InvalidConfigError


# ============================================================
# MODULE STATUS
# ============================================================

class ModuleStatus(Enum):
    """Module lifecycle status."""

    REGISTERED = "registered"
    """Blueprint stored, never instantiated."""

    INITIALIZING = "initializing"
    """Instance created, hooks running."""

    INITIALIZED = "initialized"
    """Instance live."""

    FAILED = "failed"
    """Last bring-up failed; no live instance."""

    DESTROYED = "destroyed"
    """Torn down; may be initialized again."""

    DISABLED = "disabled"
    """Disabled by configuration."""

    @property
    def is_live(self) -> bool:
        """Check if module has a live instance."""
        return self == ModuleStatus.INITIALIZED


# ============================================================
# MODULE CONFIGURATION
# ============================================================

@dataclass
class ModuleConfig:
    """Configuration of one registered module."""

    id: str
    """Unique module id."""

    name: str = ""
    """Display name (defaults to the id)."""

    container: Optional[str] = None
    """Mount point handed to the renderer."""

    dependencies: List[str] = field(default_factory=list)
    """Ids of modules that must be initialized first."""

    enabled: bool = True
    """Whether module is enabled."""

    priority: int = 0
    """Higher priorities initialize first in init_all."""

    options: Dict[str, Any] = field(default_factory=dict)
    """Module specific options."""

    def __post_init__(self):
        if not self.name:
            self.name = self.id
        self.dependencies = list(self.dependencies or [])
        self.options = dict(self.options or {})

    @classmethod
    def from_mapping(cls, module_id: str, raw: Optional[Mapping[str, Any]] = None) -> "ModuleConfig":
        """Build a config from a plain mapping, rejecting unknown keys."""
        raw = dict(raw or {})
        raw.pop("id", None)
        unknown = set(raw) - cls.field_names()
        if unknown:
            raise InvalidConfigError(
                key=f"{module_id}.{sorted(unknown)[0]}",
                value=sorted(unknown),
                reason="unknown module config field",
            )
        config = cls(id=module_id, **raw)
        config.validate()
        return config

    @classmethod
    def field_names(cls) -> set:
        return {f.name for f in fields(cls)} - {"id"}

    def validate(self) -> None:
        """Raise InvalidConfigError on malformed values."""
        if not isinstance(self.priority, (int, float)) or isinstance(self.priority, bool):
            raise InvalidConfigError(f"{self.id}.priority", self.priority, "must be a number")
        if not isinstance(self.enabled, bool):
            raise InvalidConfigError(f"{self.id}.enabled", self.enabled, "must be a boolean")
        for dependency in self.dependencies:
            if not isinstance(dependency, str) or not dependency:
                raise InvalidConfigError(
                    f"{self.id}.dependencies", dependency, "must be non-empty module ids"
                )
        if self.id in self.dependencies:
            raise InvalidConfigError(
                f"{self.id}.dependencies", self.id, "module cannot depend on itself"
            )

    def copy(self) -> "ModuleConfig":
        return replace(
            self,
            dependencies=list(self.dependencies),
            options=dict(self.options),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "container": self.container,
            "dependencies": list(self.dependencies),
            "enabled": self.enabled,
            "priority": self.priority,
            "options": dict(self.options),
        }


ModuleConfigInput = Union[ModuleConfig, Mapping[str, Any], None]


# ============================================================
# MODULE RECORD
# ============================================================

@dataclass
class ModuleRecord:
    """Registry entry of a module."""

    definition: Any
    """Factory (class or callable) or prototype instance."""

    config: ModuleConfig
    registration_index: int
    status: ModuleStatus = ModuleStatus.REGISTERED
    instance: Any = None
    rendered: Any = None
    error: Optional[str] = None
    init_sequence: Optional[int] = None
    initialized_at: Optional[datetime] = None
    destroyed_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def is_initialized(self) -> bool:
        return self.status.is_live


@dataclass(frozen=True)
class ModuleInfo:
    """Read-only row returned by ``ModuleOrchestrator.list()``."""

    id: str
    config: ModuleConfig
    initialized: bool
    status: ModuleStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "config": self.config.to_dict(),
            "initialized": self.initialized,
            "status": self.status.value,
        }


# ============================================================
# LIFECYCLE EVENTS
# ============================================================

@dataclass(frozen=True)
class ModuleEvent:
    """Payload of module:loaded / module:error / module:destroyed."""

    id: str
    config: Optional[ModuleConfig] = None
    error: Optional[BaseException] = None
    phase: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "config": self.config.to_dict() if self.config else None,
            "error": str(self.error) if self.error else None,
            "phase": self.phase,
        }


# ============================================================
# INIT REPORT
# ============================================================

@dataclass
class InitReport:
    """Outcome of one ``init_all`` pass."""

    order: List[str] = field(default_factory=list)
    initialized: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": list(self.order),
            "initialized": list(self.initialized),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
            "errors": {k: str(v) for k, v in self.errors.items()},
        }


__all__ = [
    "ModuleStatus",
    "ModuleConfig",
    "ModuleConfigInput",
    "ModuleRecord",
    "ModuleInfo",
    "ModuleEvent",
    "InitReport",
]
