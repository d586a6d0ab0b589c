"""
Structured error types for the suggestion pipeline.

Every failure the pipeline knows about has a type, a category and a context.
None of them is meant to reach the reader: each one is caught at the boundary
where it originates (collector sink call, scheduler tick, dispatcher handler)
and turned into a log line or an emitted error event.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure the pipeline contains
    - **Rich Context:** Errors carry controller/action/task metadata for logs
    - **Error Chaining:** The original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      MarginaliaError                             │
        │  (category, context, cause)                                      │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError     NotFoundError      SerializationError       │
        │  (VALIDATION)        (NOT_FOUND)        (SERIALIZATION)          │
        │                                                                  │
        │  SchedulerTaskError  DispatchError      ControllerError          │
        │  (SCHEDULER)         (DISPATCH)         (CONTROLLER)             │
        │                                                                  │
        │  ConfigError         AnalysisError                               │
        │  (CONFIG)            (ANALYSIS)                                  │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ValidationError("Reply content cannot be empty", field="content")
    >>> error.category
    <ErrorCategory.VALIDATION: 'VALIDATION'>
    >>> error.with_context(controller="interaction", action="ADD_REPLY")
    ValidationError('Reply content cannot be empty', category=VALIDATION)

Tags:
    error-handling, exception-hierarchy, error-context, marginalia-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    VALIDATION = "VALIDATION"        # Handler input failed a local constraint
    NOT_FOUND = "NOT_FOUND"          # Referenced entity id absent
    SERIALIZATION = "SERIALIZATION"  # Data could not be rendered to text
    SCHEDULER = "SCHEDULER"          # Task callback raised
    DISPATCH = "DISPATCH"            # Unknown action type
    CONTROLLER = "CONTROLLER"        # Controller lifecycle misuse
    CONFIG = "CONFIG"                # Invalid settings
    ANALYSIS = "ANALYSIS"            # Behavior analysis backend failed
    INTERNAL = "INTERNAL"            # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        controller: Controller name where the error occurred
        action: Action type being executed
        task_id: Scheduler task id
        subject_id: Subject (article/session) being observed
        metadata: Additional key-value pairs
    """

    controller: str | None = None
    action: str | None = None
    task_id: str | None = None
    subject_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["controller", "action", "task_id", "subject_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MarginaliaError(Exception):
    """Base exception for all pipeline errors.

    Subclasses set ``default_category``; callers may override it per
    instance. ``cause`` is chained onto ``__cause__`` so tracebacks keep the
    original failure.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MarginaliaError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ValidationError(MarginaliaError):
    """Handler input failed a local constraint.

    Surfaced as an error event, never fatal.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class NotFoundError(MarginaliaError):
    """Referenced entity id is absent."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, message: str, *, entity_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.entity_id = entity_id


class SerializationError(MarginaliaError):
    """Data could not be rendered to text.

    Never raised upward: the collector logs it and substitutes a marker.
    """

    default_category = ErrorCategory.SERIALIZATION


class SchedulerTaskError(MarginaliaError):
    """A scheduled task callback raised. Logged; the timer keeps running."""

    default_category = ErrorCategory.SCHEDULER

    def __init__(self, message: str, *, task_id: str, tick: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.task_id = task_id
        self.tick = tick
        self.context.task_id = task_id


class DispatchError(MarginaliaError):
    """Unknown action type; carries the list of valid ones."""

    default_category = ErrorCategory.DISPATCH

    def __init__(
        self,
        message: str,
        *,
        action_type: str,
        available_actions: list[str] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.action_type = action_type
        self.available_actions = list(available_actions or [])
        self.context.action = action_type


class ControllerError(MarginaliaError):
    """Controller lifecycle or construction misuse."""

    default_category = ErrorCategory.CONTROLLER

    def __init__(self, message: str, *, controller: str, code: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code
        self.context.controller = controller

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.code:
            result["code"] = self.code
        return result


class ConfigError(MarginaliaError):
    """Invalid configuration value."""

    default_category = ErrorCategory.CONFIG


class AnalysisError(MarginaliaError):
    """The LLM analysis backend failed or returned an unusable response."""

    default_category = ErrorCategory.ANALYSIS


def error_message(error: BaseException) -> str:
    """Human-readable message for an arbitrary exception."""
    if isinstance(error, MarginaliaError):
        return error.message
    return str(error) or error.__class__.__name__


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MarginaliaError",
    "ValidationError",
    "NotFoundError",
    "SerializationError",
    "SchedulerTaskError",
    "DispatchError",
    "ControllerError",
    "ConfigError",
    "AnalysisError",
    "error_message",
]
