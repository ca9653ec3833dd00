"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Composition root of the runtime.

- Builds one EventChannel, one ReactiveStore and one
  ModuleOrchestrator and wires them by injection
- Chooses the persistence backend from configuration
- Controls startup and shutdown of the module set

============================================================
ARCHITECTURAL POSITION
============================================================
- No process-wide singletons: every collaborator is owned here
- Modules receive events/store through the ModuleFactory
- Logging is configured by create_runtime, never at import time

============================================================
"""

import json
import logging
import sys
from typing import Any, Callable, Dict, Optional

from core.clock import ClockProtocol, SystemClock
from core.config import RuntimeConfig
from core.event_channel import EventChannel
from core.exceptions import InvalidConfigError
from core.persistence import JsonFileBackend, MemoryBackend, PersistenceBackend
from core.reactive_store import ReactiveStore
from core.state_schema import default_initial_state

from .models import InitReport
from .registry import ModuleFactory, ModuleOrchestrator, Renderer


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("orchestrator")


# ============================================================
# PERSISTENCE BACKEND
# ============================================================

def create_backend(config: RuntimeConfig) -> PersistenceBackend:
    """Backend named by ``config.persistence_backend``."""
    if config.persistence_backend == "file":
        return JsonFileBackend(config.persistence_path)

    if config.persistence_backend == "database":
        from database.slot_backend import DatabaseBackend

        return DatabaseBackend.from_url(config.database_url)

    return MemoryBackend()


# ============================================================
# RUNTIME
# ============================================================

class Runtime:
    """
    Owns the three runtime services.

    Usage::

        runtime = create_runtime()
        runtime.modules.register("clock", ClockWidget, {"container": "header"})
        await runtime.start()
        ...
        await runtime.shutdown()
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        backend: Optional[PersistenceBackend] = None,
        renderer: Optional[Renderer] = None,
        clock: Optional[ClockProtocol] = None,
        initial_state: Callable[[], Dict[str, Any]] = default_initial_state,
    ):
        """
        Initialize runtime.

        Args:
            config: Runtime configuration (defaults if None)
            backend: Persistence backend (built from config if None)
            renderer: Receives (container, output) of render hooks
            clock: Clock for lifecycle timestamps
            initial_state: Factory of the default state tree

        Raises:
            InvalidConfigError: Configuration does not validate
        """
        self._config = config or RuntimeConfig()

        errors = self._config.validate()
        if errors:
            raise InvalidConfigError(
                key="runtime",
                value=errors,
                reason="; ".join(errors),
            )

        self._clock = clock or SystemClock()
        self._events = EventChannel()
        self._store = ReactiveStore(
            events=self._events,
            initial_state=initial_state,
            backend=backend if backend is not None else create_backend(self._config),
            storage_key=self._config.storage_key,
            persisted_branches=self._config.persisted_branches,
            max_history=self._config.history_limit,
            persist_enabled=self._config.persistence_enabled,
        )
        self._factory = ModuleFactory({
            "events": self._events,
            "store": self._store,
            "clock": self._clock,
        })
        self._modules = ModuleOrchestrator(
            events=self._events,
            factory=self._factory,
            renderer=renderer,
            clock=self._clock,
        )
        self._factory.add_shared_dependency("modules", self._modules)

        self._running = False
        self._logger = logging.getLogger(__name__)

        self._logger.info(
            f"Runtime initialized | persistence={self._config.persistence_backend} | "
            f"history_limit={self._config.history_limit}"
        )

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def store(self) -> ReactiveStore:
        return self._store

    @property
    def modules(self) -> ModuleOrchestrator:
        return self._modules

    @property
    def factory(self) -> ModuleFactory:
        return self._factory

    @property
    def is_running(self) -> bool:
        return self._running

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start(self) -> InitReport:
        """
        Start every enabled module, then run after_mount hooks.

        Returns:
            Report of the init_all pass
        """
        if self._running:
            self._logger.warning("Runtime already running")
            return InitReport()

        self._logger.info("=== RUNTIME STARTUP SEQUENCE ===")
        report = await self._modules.init_all()
        await self._modules.after_mount_all()
        self._running = True

        self._logger.info(
            f"=== RUNTIME STARTED === | initialized={len(report.initialized)} | "
            f"failed={len(report.failed)}"
        )
        return report

    async def shutdown(self) -> None:
        """Destroy every live module and drop all channel subscriptions."""
        self._logger.info("=== RUNTIME SHUTDOWN SEQUENCE ===")
        destroyed = await self._modules.destroy_all()
        self._events.unsubscribe_topic()
        self._running = False
        self._logger.info(f"=== RUNTIME STOPPED === | destroyed={len(destroyed)}")

    async def __aenter__(self) -> "Runtime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()


def create_runtime(
    config: Optional[RuntimeConfig] = None,
    **kwargs: Any,
) -> Runtime:
    """
    Configure logging and compose a Runtime.

    Args:
        config: Configuration (loaded from the environment if None)
        **kwargs: Forwarded to Runtime (backend, renderer, clock, initial_state)
    """
    config = config or RuntimeConfig.from_env()

    errors = config.validate()
    if errors:
        raise InvalidConfigError(key="runtime", value=errors, reason="; ".join(errors))

    setup_logging(level=config.log_level, log_format=config.log_format)
    return Runtime(config=config, **kwargs)


__all__ = [
    "setup_logging",
    "create_backend",
    "Runtime",
    "create_runtime",
]
