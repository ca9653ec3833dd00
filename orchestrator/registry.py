"""
Orchestrator - Module Registry.

============================================================
RESPONSIBILITY
============================================================
Manages module registration, dependency resolution, and lifecycle.

- Register module blueprints with dependencies and priorities
- Resolve one topological order per bring-up (cycle detection)
- Initialize / render / tear down modules in that order
- Isolate failures per module during init_all / destroy_all

============================================================
LIFECYCLE
============================================================
registered -> initializing -> initialized -> destroyed
initializing -> failed
Any state -> disabled when the config is toggled off.

destroy(id) tears down live dependents first (reverse init order).

============================================================
"""

import asyncio
import copy
import functools
import inspect
import itertools
import logging
from dataclasses import replace
from types import SimpleNamespace
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Set,
    Union,
)

from core.clock import ClockProtocol, SystemClock
from core.constants import Events
from core.event_channel import EventChannel
from core.exceptions import (
    DependencyCycleError,
    DependencyFailedError,
    InvalidConfigError,
    ModuleDestroyError,
    ModuleError,
    ModuleInitError,
    UnknownDependencyError,
    UnknownModuleError,
    wrap_exception,
)

from .models import (
    InitReport,
    ModuleConfig,
    ModuleConfigInput,
    ModuleEvent,
    ModuleInfo,
    ModuleRecord,
    ModuleStatus,
)


Renderer = Callable[[str, Any], Union[None, Awaitable[None]]]
"""Host callback receiving (container, render_output)."""


# ============================================================
# MODULE PROTOCOL
# ============================================================

class ModuleProtocol(Protocol):
    """
    Contract a module may implement. Every hook is optional and
    may be a plain function or a coroutine function.
    """

    def init(self, config: ModuleConfig) -> Any:
        ...

    def render(self, config: ModuleConfig) -> Any:
        ...

    def after_mount(self) -> Any:
        ...

    def update(self, config: ModuleConfig) -> Any:
        ...

    def destroy(self) -> Any:
        ...


class BaseModule:
    """Base class for modules; every hook is a no-op."""

    def __init__(self, config: Optional[ModuleConfig] = None):
        self.config = config

    async def init(self, config: ModuleConfig) -> None:
        self.config = config

    def render(self, config: ModuleConfig) -> Any:
        return None

    def after_mount(self) -> None:
        pass

    def update(self, config: ModuleConfig) -> None:
        self.config = config

    def destroy(self) -> None:
        pass


async def call_hook(instance: Any, hook: str, *args: Any) -> Any:
    """Invoke an optional hook, awaiting it if it returns an awaitable."""
    method = getattr(instance, hook, None)
    if method is None or not callable(method):
        return None
    result = method(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def has_hook(instance: Any, hook: str) -> bool:
    return callable(getattr(instance, hook, None))


# ============================================================
# DEPENDENCY GRAPH
# ============================================================

class DependencyGraph:
    """
    Manages module dependencies and resolution order.

    Uses an iterative depth-first topological sort. Roots are
    visited in the order given, dependencies in declaration order.
    """

    def __init__(self):
        self._edges: Dict[str, List[str]] = {}  # node -> dependencies

    @classmethod
    def from_configs(cls, configs: Iterable[ModuleConfig]) -> "DependencyGraph":
        """Graph of registered modules; disabled modules contribute no edges."""
        graph = cls()
        for config in configs:
            graph.add_node(config.id, config.dependencies if config.enabled else [])
        return graph

    def add_node(self, name: str, dependencies: Optional[List[str]] = None) -> None:
        """Add a node with its dependencies."""
        self._edges[name] = list(dependencies or [])

    def __contains__(self, name: str) -> bool:
        return name in self._edges

    def resolve(self, roots: Iterable[str]) -> List[str]:
        """
        Linearize ``roots`` and everything they depend on.

        Returns:
            Module ids, every dependency before its dependents

        Raises:
            DependencyCycleError: With the chain closing the cycle
            UnknownDependencyError: With the chain reaching the unknown id
        """
        order: List[str] = []
        done: Set[str] = set()

        for root in roots:
            if root in done:
                continue

            path = [root]
            on_path = {root}
            stack = [(root, iter(self._edges.get(root, [])))]

            while stack:
                node, pending = stack[-1]
                dependency = next(pending, None)

                if dependency is None:
                    stack.pop()
                    path.pop()
                    on_path.discard(node)
                    done.add(node)
                    order.append(node)
                    continue

                if dependency in done:
                    continue
                if dependency in on_path:
                    start = path.index(dependency)
                    raise DependencyCycleError(path[start:] + [dependency])
                if dependency not in self._edges:
                    raise UnknownDependencyError(path + [dependency])

                path.append(dependency)
                on_path.add(dependency)
                stack.append((dependency, iter(self._edges[dependency])))

        return order

    def get_startup_order(self) -> List[str]:
        """All modules in startup order (dependencies first)."""
        return self.resolve(list(self._edges))

    def get_shutdown_order(self) -> List[str]:
        """All modules in shutdown order (reverse of startup)."""
        return list(reversed(self.get_startup_order()))

    def get_dependents(self, name: str) -> Set[str]:
        """Modules that depend directly on the given module."""
        return {node for node, deps in self._edges.items() if name in deps}

    def get_all_dependents(self, name: str) -> Set[str]:
        """Modules that depend on the given module, directly or not."""
        found: Set[str] = set()
        frontier = [name]
        while frontier:
            current = frontier.pop()
            for dependent in self.get_dependents(current):
                if dependent not in found:
                    found.add(dependent)
                    frontier.append(dependent)
        return found


# ============================================================
# MODULE FACTORY
# ============================================================

class ModuleFactory:
    """
    Factory for creating module instances.

    Handles dependency injection: a class or factory function is
    called with the module config plus whichever shared services
    (events, store, ...) its signature names.
    """

    def __init__(self, shared_dependencies: Optional[Dict[str, Any]] = None):
        """
        Initialize factory.

        Args:
            shared_dependencies: Shared services for injection
        """
        self._shared = dict(shared_dependencies or {})

    def create(self, definition: Any, config: ModuleConfig) -> Any:
        """
        Create a module instance from its definition.

        - class / function / partial: called as described above
        - mapping: hooks by name, wrapped in a namespace
        - any other object: shallow-copied prototype
        """
        if inspect.isclass(definition) or inspect.isroutine(definition) or isinstance(
            definition, functools.partial
        ):
            return self._invoke(definition, config)
        if isinstance(definition, Mapping):
            return SimpleNamespace(**definition)
        return copy.copy(definition)

    def add_shared_dependency(self, name: str, instance: Any) -> None:
        """Add a shared dependency."""
        self._shared[name] = instance

    def get_shared_dependency(self, name: str) -> Optional[Any]:
        """Get a shared dependency."""
        return self._shared.get(name)

    def _invoke(self, factory: Callable[..., Any], config: ModuleConfig) -> Any:
        try:
            signature = inspect.signature(factory)
        except (TypeError, ValueError):
            return factory(config)

        candidates = [
            ((config,), self._shared_for(signature)),
            ((config,), {}),
            ((), {}),
        ]
        for args, kwargs in candidates:
            try:
                signature.bind(*args, **kwargs)
            except TypeError:
                continue
            return factory(*args, **kwargs)

        name = getattr(factory, "__qualname__", repr(factory))
        raise TypeError(f"Cannot call module factory {name}: expected (config, **shared)")

    def _shared_for(self, signature: inspect.Signature) -> Dict[str, Any]:
        params = signature.parameters.values()
        if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params):
            return dict(self._shared)
        names = {
            p.name for p in params
            if p.kind in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
        }
        return {name: value for name, value in self._shared.items() if name in names}


# ============================================================
# MODULE ORCHESTRATOR
# ============================================================

class ModuleOrchestrator:
    """
    Central registry and lifecycle manager for all modules.

    Handles:
    - Module registration
    - Dependency resolution
    - Lifecycle management (init/render/after_mount/update/destroy)
    - Lifecycle events on the EventChannel
    """

    def __init__(
        self,
        events: Optional[EventChannel] = None,
        factory: Optional[ModuleFactory] = None,
        renderer: Optional[Renderer] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            events: Channel receiving module:* lifecycle events
            factory: Builds instances from definitions
            renderer: Receives (container, output) of render hooks
            clock: Source of lifecycle timestamps
        """
        self._events = events
        self._factory = factory or ModuleFactory()
        self._renderer = renderer
        self._clock = clock or SystemClock()

        self._records: Dict[str, ModuleRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._registration_counter = itertools.count()
        self._init_counter = itertools.count(1)
        self._is_initializing = False

        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Registration
    # --------------------------------------------------------

    def register(
        self,
        module_id: str,
        definition: Any,
        config: ModuleConfigInput = None,
    ) -> ModuleConfig:
        """
        Register a module blueprint.

        Re-registering an id overwrites its blueprint with a warning;
        a live instance of it keeps running until destroyed or reloaded.

        Args:
            module_id: Unique module id
            definition: Class, factory function, hook mapping or prototype
            config: ModuleConfig or mapping of its fields

        Returns:
            The stored configuration

        Raises:
            InvalidConfigError: Bad id, definition or config
        """
        if not isinstance(module_id, str) or not module_id:
            raise InvalidConfigError("id", module_id, "module id must be a non-empty string")
        if definition is None:
            raise InvalidConfigError(f"{module_id}.definition", None, "definition is required")

        if isinstance(config, ModuleConfig):
            module_config = replace(config.copy(), id=module_id)
            if module_config.name == config.id:
                module_config.name = module_id
            module_config.validate()
        else:
            module_config = ModuleConfig.from_mapping(module_id, config)

        existing = self._records.get(module_id)
        if existing:
            self._logger.warning(f"Module {module_id} is already registered. Overwriting.")
            existing.definition = definition
            existing.config = module_config
            if not existing.status.is_live:
                existing.status = self._idle_status(module_config)
        else:
            self._records[module_id] = ModuleRecord(
                definition=definition,
                config=module_config,
                registration_index=next(self._registration_counter),
                status=self._idle_status(module_config),
            )

        self._logger.debug(
            f"Registered module: {module_id} | priority={module_config.priority} | "
            f"dependencies={module_config.dependencies} | enabled={module_config.enabled}"
        )
        return module_config.copy()

    async def unregister(self, module_id: str) -> None:
        """Destroy (if live) and forget a module."""
        record = self._require(module_id, "unregister")
        if record.status.is_live:
            await self.destroy(module_id)
        del self._records[module_id]
        self._locks.pop(module_id, None)
        self._logger.info(f"Unregistered module: {module_id}")

    # --------------------------------------------------------
    # Introspection
    # --------------------------------------------------------

    def get(self, module_id: str) -> Optional[Any]:
        """Live instance, or None if not initialized."""
        record = self._records.get(module_id)
        if record is None or not record.status.is_live:
            return None
        return record.instance

    def get_config(self, module_id: str) -> Optional[ModuleConfig]:
        """Copy of the module's configuration."""
        record = self._records.get(module_id)
        return record.config.copy() if record else None

    def get_record(self, module_id: str) -> Optional[ModuleRecord]:
        return self._records.get(module_id)

    def is_initialized(self, module_id: str) -> bool:
        record = self._records.get(module_id)
        return bool(record and record.status.is_live)

    def list(self) -> List[ModuleInfo]:
        """Every registration, in registration order, with its initialized flag."""
        return [
            ModuleInfo(
                id=record.id,
                config=record.config.copy(),
                initialized=record.status.is_live,
                status=record.status,
            )
            for record in self._records.values()
        ]

    def get_startup_order(self) -> List[str]:
        """Order ``init_all`` would use right now."""
        return self._global_order()

    def status_summary(self) -> Dict[str, Any]:
        """Get summary of all module statuses."""
        status_counts = {status.value: 0 for status in ModuleStatus}
        for record in self._records.values():
            status_counts[record.status.value] += 1

        return {
            "total_registered": len(self._records),
            "total_initialized": status_counts[ModuleStatus.INITIALIZED.value],
            "status_counts": status_counts,
            "failed": [r.id for r in self._records.values() if r.status == ModuleStatus.FAILED],
        }

    # --------------------------------------------------------
    # Initialization
    # --------------------------------------------------------

    async def init(self, module_id: str) -> None:
        """
        Initialize one module and, first, everything it depends on.

        Idempotent. Disabled modules are skipped.

        Raises:
            UnknownModuleError: Module not registered
            DependencyCycleError / UnknownDependencyError: Bad dependency config
            ModuleInitError: A hook of this module or a dependency failed
        """
        record = self._require(module_id, "init")
        if record.status.is_live:
            return
        if not record.config.enabled:
            self._logger.info(f"Module {module_id} is disabled, skipping")
            return

        order = self._build_graph().resolve([module_id])

        for current_id in order:
            current = self._records[current_id]
            if current.status.is_live:
                continue
            if not current.config.enabled:
                self._logger.warning(
                    f"Dependency {current_id} of {module_id} is disabled, skipping"
                )
                continue
            await self._bring_up(current)

    async def init_all(self) -> InitReport:
        """
        Initialize every enabled module.

        Order: descending priority, registration order for ties,
        dependencies always first. A failing module is logged and
        reported; the remaining modules still initialize, except those
        depending on it.

        Raises:
            DependencyCycleError / UnknownDependencyError: Before any module starts
        """
        if self._is_initializing:
            self._logger.warning("init_all already in progress, ignoring")
            return InitReport()

        self._is_initializing = True
        report = InitReport()
        try:
            order = self._global_order()
            report.order = list(order)
            failed: Set[str] = set()

            for module_id in order:
                record = self._records[module_id]
                if record.status.is_live:
                    continue
                if not record.config.enabled:
                    report.skipped.append(module_id)
                    continue

                failed_dependency = next(
                    (dep for dep in record.config.dependencies if dep in failed), None
                )
                if failed_dependency:
                    error = DependencyFailedError(module_id, failed_dependency)
                    record.status = ModuleStatus.FAILED
                    record.error = str(error)
                    failed.add(module_id)
                    report.failed.append(module_id)
                    report.errors[module_id] = error
                    self._logger.error(error.to_log_format())
                    self._publish(
                        Events.MODULE_ERROR,
                        ModuleEvent(id=module_id, config=record.config.copy(), error=error, phase="init"),
                    )
                    continue

                try:
                    await self._bring_up(record)
                    report.initialized.append(module_id)
                except Exception as e:
                    failed.add(module_id)
                    report.failed.append(module_id)
                    report.errors[module_id] = e
                    self._logger.error(f"Error initializing {module_id}, continuing...")
        finally:
            self._is_initializing = False

        self._logger.info(
            f"All modules initialized | initialized={len(report.initialized)} | "
            f"failed={len(report.failed)} | skipped={len(report.skipped)}"
        )
        return report

    async def after_mount_all(self) -> List[str]:
        """
        Call ``after_mount`` on every live module in init order.

        Returns:
            Ids whose hook ran without error
        """
        completed = []
        for record in self._live_records():
            if not has_hook(record.instance, "after_mount"):
                continue
            try:
                await call_hook(record.instance, "after_mount")
                completed.append(record.id)
            except Exception as e:
                error = wrap_exception(
                    e,
                    ModuleError,
                    message=f"after_mount failed: {record.id}",
                    module_id=record.id,
                    operation="after_mount",
                )
                self._logger.error(error.to_log_format(), exc_info=True)
                self._publish(
                    Events.MODULE_ERROR,
                    ModuleEvent(id=record.id, config=record.config.copy(), error=error, phase="after_mount"),
                )
        return completed

    # --------------------------------------------------------
    # Teardown
    # --------------------------------------------------------

    async def destroy(self, module_id: str, cascade: bool = True) -> bool:
        """
        Tear down a live module.

        Live dependents are destroyed first, latest-initialized first,
        unless ``cascade`` is False.

        Returns:
            False if the module was not live

        Raises:
            UnknownModuleError: Module not registered
            ModuleDestroyError: This module's destroy hook failed (it is
                still removed from the live set)
        """
        record = self._require(module_id, "destroy")
        if not record.status.is_live:
            return False

        if cascade:
            dependents = self._live_dependents(module_id)
            for dependent in sorted(dependents, key=lambda r: r.init_sequence or 0, reverse=True):
                self._logger.info(f"Destroying dependent {dependent.id} of {module_id}")
                await self._tear_down(dependent)

        error = await self._tear_down(record)
        if error:
            raise error
        return True

    async def destroy_all(self) -> List[str]:
        """
        Destroy every live module in reverse initialization order.

        Returns:
            Ids that were torn down (hook errors are logged, not raised)
        """
        destroyed = []
        for record in reversed(self._live_records()):
            await self._tear_down(record)
            destroyed.append(record.id)
        self._logger.info(f"All modules destroyed | count={len(destroyed)}")
        return destroyed

    async def reload(self, module_id: str) -> None:
        """Destroy then init a module; dependents torn down with it are brought back."""
        record = self._require(module_id, "reload")
        dependents = sorted(self._live_dependents(module_id), key=lambda r: r.init_sequence or 0)

        if record.status.is_live:
            try:
                await self.destroy(module_id)
            except ModuleDestroyError as e:
                self._logger.warning(f"Reload of {module_id} continues after destroy error: {e}")

        await self.init(module_id)
        for dependent in dependents:
            await self.init(dependent.id)

    # --------------------------------------------------------
    # Configuration
    # --------------------------------------------------------

    async def update_config(self, module_id: str, patch: Optional[Mapping[str, Any]] = None, **changes: Any) -> ModuleConfig:
        """
        Mutate a module's configuration in place.

        Toggling ``enabled`` destroys or initializes the module. Otherwise a
        live instance receives the new config through its ``update`` hook.

        Raises:
            InvalidConfigError: Unknown field or invalid value
            ModuleError: The update hook failed
        """
        record = self._require(module_id, "update_config")
        updates = dict(patch or {})
        updates.update(changes)
        updates.pop("id", None)

        unknown = set(updates) - ModuleConfig.field_names()
        if unknown:
            raise InvalidConfigError(
                key=f"{module_id}.{sorted(unknown)[0]}",
                value=sorted(unknown),
                reason="unknown module config field",
            )

        was_enabled = record.config.enabled
        new_config = replace(record.config.copy(), **updates)
        new_config.validate()
        record.config = new_config

        if new_config.enabled != was_enabled:
            if new_config.enabled:
                if not record.status.is_live:
                    record.status = ModuleStatus.REGISTERED
                self._logger.info(f"Module enabled: {module_id}")
                await self.init(module_id)
            else:
                self._logger.info(f"Module disabled: {module_id}")
                if record.status.is_live:
                    await self.destroy(module_id)
                record.status = ModuleStatus.DISABLED
            return new_config.copy()

        if record.status.is_live and has_hook(record.instance, "update"):
            try:
                await call_hook(record.instance, "update", new_config.copy())
            except Exception as e:
                raise wrap_exception(
                    e,
                    ModuleError,
                    message=f"Module update failed: {module_id}",
                    module_id=module_id,
                    operation="update",
                ) from e

        return new_config.copy()

    async def set_enabled(self, module_id: str, enabled: bool) -> None:
        """Enable/disable a module."""
        await self.update_config(module_id, enabled=enabled)

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    def _require(self, module_id: str, operation: str) -> ModuleRecord:
        record = self._records.get(module_id)
        if record is None:
            raise UnknownModuleError(module_id, operation)
        return record

    @staticmethod
    def _idle_status(config: ModuleConfig) -> ModuleStatus:
        return ModuleStatus.REGISTERED if config.enabled else ModuleStatus.DISABLED

    def _lock_for(self, module_id: str) -> asyncio.Lock:
        lock = self._locks.get(module_id)
        if lock is None:
            lock = self._locks[module_id] = asyncio.Lock()
        return lock

    def _build_graph(self) -> DependencyGraph:
        return DependencyGraph.from_configs(r.config for r in self._records.values())

    def _global_order(self) -> List[str]:
        roots = sorted(
            (r for r in self._records.values() if r.config.enabled),
            key=lambda r: (-r.config.priority, r.registration_index),
        )
        return self._build_graph().resolve([r.id for r in roots])

    def _live_records(self) -> List[ModuleRecord]:
        """Live modules in initialization order."""
        return sorted(
            (r for r in self._records.values() if r.status.is_live),
            key=lambda r: r.init_sequence or 0,
        )

    def _live_dependents(self, module_id: str) -> List[ModuleRecord]:
        names = self._build_graph().get_all_dependents(module_id)
        return [self._records[name] for name in names if self._records[name].status.is_live]

    def _publish(self, topic: str, payload: ModuleEvent) -> None:
        if self._events is not None:
            self._events.publish(topic, payload)

    async def _bring_up(self, record: ModuleRecord) -> None:
        """Instantiate, init and render one module whose dependencies are ready."""
        module_id = record.id

        async with self._lock_for(module_id):
            if record.status.is_live:
                return

            config = record.config
            record.status = ModuleStatus.INITIALIZING
            record.error = None
            self._logger.info(f"Initializing module: {module_id}")

            instance = None
            phase = "instantiate"
            try:
                instance = self._factory.create(record.definition, config.copy())

                phase = "init"
                await call_hook(instance, "init", config.copy())

                if config.container and has_hook(instance, "render"):
                    phase = "render"
                    output = await call_hook(instance, "render", config.copy())
                    record.rendered = output
                    if self._renderer is not None:
                        result = self._renderer(config.container, output)
                        if inspect.isawaitable(result):
                            await result
            except Exception as e:
                record.status = ModuleStatus.FAILED
                record.instance = None
                record.rendered = None
                record.error = str(e)

                error = wrap_exception(
                    e,
                    ModuleInitError,
                    message=f"Module {phase} failed: {module_id}",
                    module_id=module_id,
                    operation=phase,
                )
                self._logger.error(error.to_log_format(), exc_info=True)

                if instance is not None and phase != "init":
                    await self._discard(module_id, instance)

                self._publish(
                    Events.MODULE_ERROR,
                    ModuleEvent(id=module_id, config=config.copy(), error=error, phase=phase),
                )
                raise error from e

            record.instance = instance
            record.status = ModuleStatus.INITIALIZED
            record.init_sequence = next(self._init_counter)
            record.initialized_at = self._clock.now()
            record.destroyed_at = None

            self._logger.info(f"Module initialized: {module_id}")
            self._publish(
                Events.MODULE_LOADED,
                ModuleEvent(id=module_id, config=config.copy(), phase="init"),
            )

    async def _discard(self, module_id: str, instance: Any) -> None:
        """Best-effort destroy of an instance whose bring-up failed after init."""
        try:
            await call_hook(instance, "destroy")
        except Exception as e:
            self._logger.warning(f"Cleanup of failed module {module_id} raised: {e}")

    async def _tear_down(self, record: ModuleRecord) -> Optional[ModuleDestroyError]:
        """Run the destroy hook and drop the instance. Never raises."""
        module_id = record.id
        error: Optional[ModuleDestroyError] = None

        try:
            await call_hook(record.instance, "destroy")
        except Exception as e:
            error = wrap_exception(
                e,
                ModuleDestroyError,
                message=f"Module destroy failed: {module_id}",
                module_id=module_id,
                operation="destroy",
            )
            self._logger.error(error.to_log_format(), exc_info=True)
            self._publish(
                Events.MODULE_ERROR,
                ModuleEvent(id=module_id, config=record.config.copy(), error=error, phase="destroy"),
            )

        record.instance = None
        record.rendered = None
        record.status = ModuleStatus.DESTROYED if record.config.enabled else ModuleStatus.DISABLED
        record.destroyed_at = self._clock.now()

        self._logger.info(f"Module destroyed: {module_id}")
        self._publish(
            Events.MODULE_DESTROYED,
            ModuleEvent(id=module_id, config=record.config.copy(), phase="destroy"),
        )
        return error


__all__ = [
    "Renderer",
    "ModuleProtocol",
    "BaseModule",
    "call_hook",
    "has_hook",
    "DependencyGraph",
    "ModuleFactory",
    "ModuleOrchestrator",
]
