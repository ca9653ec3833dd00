"""
Orchestrator Package - Module Lifecycle Layer.

============================================================
PACKAGE OVERVIEW
============================================================
Registers modules, resolves their dependencies and drives their
lifecycle. The composition root (Runtime) wires the module
orchestrator to the EventChannel and the ReactiveStore.

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                       Runtime                       |
    |-----------------------------------------------------|
    |  EventChannel        |  topic pub/sub               |
    |  ReactiveStore       |  path-addressed state        |
    |  ModuleOrchestrator  |  module lifecycle            |
    |  ModuleFactory       |  dependency injection        |
    +-----------------------------------------------------+

============================================================
MODULE LIFECYCLE
============================================================
register -> init (deps first) -> render -> after_mount
         -> update* -> destroy (dependents first)

============================================================
"""

from .models import (
    InitReport,
    ModuleConfig,
    ModuleEvent,
    ModuleInfo,
    ModuleRecord,
    ModuleStatus,
)
from .registry import (
    BaseModule,
    DependencyGraph,
    ModuleFactory,
    ModuleOrchestrator,
    ModuleProtocol,
)
from .core import (
    Runtime,
    create_backend,
    create_runtime,
    setup_logging,
)

__all__ = [
    "InitReport",
    "ModuleConfig",
    "ModuleEvent",
    "ModuleInfo",
    "ModuleRecord",
    "ModuleStatus",
    "BaseModule",
    "DependencyGraph",
    "ModuleFactory",
    "ModuleOrchestrator",
    "ModuleProtocol",
    "Runtime",
    "create_backend",
    "create_runtime",
    "setup_logging",
]
