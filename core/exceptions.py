"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the runtime.

- Provides clear exception hierarchy
- Enables specific error handling
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
RuntimeException (base)
├── ConfigurationError
│   └── InvalidConfigError
├── StateError
│   ├── InvalidPathError
│   └── PathConflictError
├── SubscriptionError
│   └── InvalidTopicError
├── PersistenceError
└── OrchestrationError
    ├── UnknownModuleError
    ├── DependencyError
    │   ├── UnknownDependencyError
    │   ├── DependencyCycleError
    │   └── DependencyFailedError
    └── ModuleError
        ├── ModuleInitError
        └── ModuleDestroyError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, the requested operation did not happen."""

    CRITICAL = "critical"
    """Critical issue, the runtime cannot continue."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class RuntimeException(Exception):
    """
    Base exception for all runtime errors.

    All exceptions carry:
    - severity: for log routing
    - context: for debugging
    - recoverable: for error handling decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = (
            f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
            f" | recoverable={self.recoverable}"
        )
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(RuntimeException):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )


# ============================================================
# STATE ERRORS
# ============================================================

class StateError(RuntimeException):
    """Base class for state store errors."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if path is not None:
            context["path"] = path
        self.path = path
        super().__init__(message, context=context, **kwargs)


class InvalidPathError(StateError):
    """A state path is malformed."""

    def __init__(self, path: Any, reason: str):
        super().__init__(
            message=f"Invalid state path {path!r}: {reason}",
            path=str(path),
            context={"reason": reason},
        )


class PathConflictError(StateError):
    """A write would have to descend through a non-container value."""

    def __init__(self, path: str, segment: str, found_type: str):
        super().__init__(
            message=(
                f"Cannot write {path!r}: segment {segment!r} "
                f"holds a {found_type}, not a container"
            ),
            path=path,
            context={"segment": segment, "found_type": found_type},
        )


# ============================================================
# SUBSCRIPTION ERRORS
# ============================================================

class SubscriptionError(RuntimeException):
    """A subscription could not be registered."""

    default_severity = Severity.MEDIUM


class InvalidTopicError(SubscriptionError):
    """Topic is not a non-empty string, or is reserved for the operation."""

    def __init__(self, topic: Any, reason: str = "topic must be a non-empty string"):
        super().__init__(
            message=f"Invalid topic {topic!r}: {reason}",
            context={"topic": str(topic)[:100], "reason": reason},
        )
        self.topic = topic


# ============================================================
# PERSISTENCE ERRORS
# ============================================================

class PersistenceError(RuntimeException):
    """Persisted state could not be read or written."""

    default_severity = Severity.LOW
    default_recoverable = True

    def __init__(self, message: str, storage_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if storage_key:
            context["storage_key"] = storage_key
        super().__init__(message, context=context, **kwargs)


# ============================================================
# ORCHESTRATION ERRORS
# ============================================================

class OrchestrationError(RuntimeException):
    """Base class for orchestration-related errors."""

    default_severity = Severity.HIGH
    default_recoverable = False


class UnknownModuleError(OrchestrationError):
    """Operation referenced a module id that was never registered."""

    def __init__(self, module_id: str, operation: Optional[str] = None):
        context: Dict[str, Any] = {"module_id": module_id}
        if operation:
            context["operation"] = operation
        super().__init__(
            message=f"Module not registered: {module_id}",
            context=context,
        )
        self.module_id = module_id


class DependencyError(OrchestrationError):
    """
    Dependency configuration error.

    ``chain`` lists the module ids from the module being resolved
    down to the offending one.
    """

    def __init__(self, message: str, chain: Sequence[str], **kwargs):
        context = kwargs.pop("context", {})
        self.chain: List[str] = list(chain)
        context["chain"] = " -> ".join(self.chain)
        super().__init__(message, context=context, **kwargs)


class UnknownDependencyError(DependencyError):
    """A module lists a dependency that is not registered."""

    def __init__(self, chain: Sequence[str]):
        chain = list(chain)
        super().__init__(
            message=(
                f"Unknown dependency {chain[-1]!r} required by {chain[-2]!r} "
                f"(chain: {' -> '.join(chain)})"
            ),
            chain=chain,
        )
        self.dependency = chain[-1]


class DependencyCycleError(DependencyError):
    """Module dependencies form a cycle."""

    def __init__(self, chain: Sequence[str]):
        super().__init__(
            message=f"Dependency cycle detected: {' -> '.join(chain)}",
            chain=chain,
        )


class DependencyFailedError(DependencyError):
    """A dependency failed to initialize, so the dependent was not attempted."""

    default_recoverable = True

    def __init__(self, module_id: str, dependency: str):
        super().__init__(
            message=f"Module {module_id!r} skipped: dependency {dependency!r} failed",
            chain=[module_id, dependency],
        )
        self.dependency = dependency


class ModuleError(OrchestrationError):
    """A module lifecycle hook failed."""

    default_recoverable = True

    def __init__(
        self,
        message: str,
        module_id: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if module_id:
            context["module_id"] = module_id
        if operation:
            context["operation"] = operation

        self.module_id = module_id
        self.operation = operation
        super().__init__(message, context=context, **kwargs)


class ModuleInitError(ModuleError):
    """Instantiation, init or render of a module failed."""


class ModuleDestroyError(ModuleError):
    """The destroy hook of a module failed."""

    default_severity = Severity.MEDIUM


# ============================================================
# EXCEPTION UTILITIES
# ============================================================

def wrap_exception(
    exc: BaseException,
    wrapper_class: type = RuntimeException,
    message: Optional[str] = None,
    **kwargs,
) -> RuntimeException:
    """Wrap a standard exception in a RuntimeException."""
    msg = message or f"{type(exc).__name__}: {exc}"
    return wrapper_class(message=msg, cause=exc, **kwargs)


__all__ = [
    "Severity",
    "RuntimeException",
    "ConfigurationError",
    "InvalidConfigError",
    "StateError",
    "InvalidPathError",
    "PathConflictError",
    "SubscriptionError",
    "InvalidTopicError",
    "PersistenceError",
    "OrchestrationError",
    "UnknownModuleError",
    "DependencyError",
    "UnknownDependencyError",
    "DependencyCycleError",
    "DependencyFailedError",
    "ModuleError",
    "ModuleInitError",
    "ModuleDestroyError",
    "wrap_exception",
]
