"""
Controller base: closed action sets, exhaustive dispatch, event emission.

Manifesto:
    A controller is a one-way command sink.  Callers name an action and
    hand over a payload; everything that happens afterwards (entity added,
    queue optimized, input rejected) arrives as an :class:`Event` on the
    bus.  ``execute_action`` therefore never raises: an unknown action and
    a failing handler are both turned into a single ``action_error`` event.

Architecture:
    ::

        execute_action("ADD_REPLY", payload)
                 │
                 ▼
        Action("ADD_REPLY") ──ValueError──► emit action_error
                 │                          {action_type, error, available_actions}
                 ▼
        actions[Action.ADD_REPLY].handler(payload)
                 │
           raises? ──yes──► emit action_error {action_type, payload, error}
                 │
                 ▼
        handler emits "<controller>.<event>" for each effect

    Each subclass declares ``Action`` (a closed ``str`` Enum) and returns
    one :class:`ActionDefinition` per member from ``define_actions()``.
    The table is frozen into a ``MappingProxyType`` at construction; a
    member without a handler (or a handler for a foreign member) fails
    construction with :class:`ControllerError`.

Tags:
    controller, dispatch, action-table, events, marginalia-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Protocol

from marginalia.core.errors import (
    ControllerError,
    DispatchError,
    ValidationError,
    error_message,
)
from marginalia.core.events import Event, EventBus
from marginalia.core.logging import get_logger

logger = get_logger(__name__)

ActionHandler = Callable[[dict[str, Any]], Awaitable[None]]


class ActionExecutor(Protocol):
    """Routes an action to a controller by name (the registry)."""

    async def execute_action(
        self, controller_name: str, action_type: str, payload: dict[str, Any] | None = None
    ) -> None: ...


@dataclass(frozen=True)
class ActionDefinition:
    """One entry of a controller's action table."""

    action: Enum
    handler: ActionHandler
    description: str = ""


class Controller:
    """Base class for domain controllers.

    Subclasses set ``name`` and ``Action`` and implement
    ``define_actions()``.  ``on_initialize`` / ``on_destroy`` are optional
    async hooks.
    """

    name: ClassVar[str] = "controller"
    Action: ClassVar[type[Enum]]
    description: ClassVar[str] = ""
    category: ClassVar[str] = "system"

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._initialized = False
        self._destroyed = False
        self._actions: Mapping[Enum, ActionDefinition] = self._build_action_table()

    # ── Action table ─────────────────────────────────────────────

    def define_actions(self) -> list[ActionDefinition]:
        raise NotImplementedError

    def _build_action_table(self) -> Mapping[Enum, ActionDefinition]:
        table: dict[Enum, ActionDefinition] = {}
        for definition in self.define_actions():
            if not isinstance(definition.action, self.Action):
                raise ControllerError(
                    f"Handler registered for foreign action {definition.action!r}",
                    controller=self.name,
                    code="FOREIGN_ACTION",
                )
            if definition.action in table:
                raise ControllerError(
                    f"Duplicate handler for {definition.action.value}",
                    controller=self.name,
                    code="DUPLICATE_ACTION",
                )
            table[definition.action] = definition

        missing = [member.value for member in self.Action if member not in table]
        if missing:
            raise ControllerError(
                f"Actions without a handler: {', '.join(missing)}",
                controller=self.name,
                code="INCOMPLETE_ACTION_TABLE",
            )
        return MappingProxyType(table)

    @property
    def actions(self) -> Mapping[Enum, ActionDefinition]:
        return self._actions

    def get_supported_actions(self) -> list[str]:
        return [member.value for member in self._actions]

    def describe_actions(self) -> list[dict[str, str]]:
        return [
            {"action": member.value, "description": definition.description}
            for member, definition in self._actions.items()
        ]

    # ── Dispatch ─────────────────────────────────────────────────

    async def execute_action(self, action_type: str | Enum, payload: dict[str, Any] | None = None) -> None:
        """Run one action. Outcomes, including failures, arrive as events."""
        action_name = action_type.value if isinstance(action_type, Enum) else str(action_type)

        if self._destroyed:
            logger.warning("controller_action_after_destroy", controller=self.name, action=action_name)
            return

        try:
            action = self.Action(action_name)
        except ValueError:
            available = self.get_supported_actions()
            error = DispatchError(
                f"Unknown action: {action_name}",
                action_type=action_name,
                available_actions=available,
            ).with_context(controller=self.name)
            logger.warning("controller_unknown_action", **error.to_dict())
            await self._emit_error(
                {"action_type": action_name, "error": error.message, "available_actions": available}
            )
            return

        definition = self._actions[action]
        logger.debug("controller_action_started", controller=self.name, action=action_name)
        try:
            await definition.handler(dict(payload or {}))
        except Exception as exc:
            logger.warning(
                "controller_action_failed",
                controller=self.name,
                action=action_name,
                error=error_message(exc),
                error_type=type(exc).__name__,
            )
            await self._emit_error({"action_type": action_name, "payload": payload, "error": error_message(exc)})
            return
        logger.debug("controller_action_completed", controller=self.name, action=action_name)

    async def _emit_error(self, payload: dict[str, Any]) -> None:
        if self._destroyed:
            logger.warning("controller_error_after_destroy", controller=self.name, **payload)
            return
        await self.emit("action_error", payload)

    # ── Events ───────────────────────────────────────────────────

    async def emit(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """Publish ``<controller>.<event>`` on the bus."""
        if self._destroyed:
            raise ControllerError(
                f"Cannot emit {event!r} on destroyed controller",
                controller=self.name,
                code="CONTROLLER_DESTROYED",
            )
        await self._bus.publish(
            Event(event_type=f"{self.name}.{event}", source=self.name, payload=dict(payload or {}))
        )

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    async def initialize(self) -> None:
        if self._initialized:
            return
        try:
            await self.on_initialize()
        except Exception as exc:
            raise ControllerError(
                f"Initialization failed: {error_message(exc)}",
                controller=self.name,
                code="INIT_FAILED",
                cause=exc,
            ) from exc
        self._initialized = True
        await self.emit("initialized")
        logger.debug("controller_initialized", controller=self.name)

    async def destroy(self) -> None:
        if self._destroyed:
            return
        try:
            await self.on_destroy()
        except Exception as exc:
            logger.error("controller_destroy_failed", controller=self.name, error=error_message(exc))
        await self.emit("destroyed")
        self._destroyed = True
        logger.debug("controller_destroyed", controller=self.name)

    async def on_initialize(self) -> None:
        return None

    async def on_destroy(self) -> None:
        return None


# ── Payload validation ───────────────────────────────────────────────────


def require_text(
    payload: Mapping[str, Any],
    field: str,
    *,
    max_length: int | None = None,
    label: str | None = None,
) -> str:
    """Return ``payload[field]`` stripped, or raise :class:`ValidationError`.

    The length ceiling is checked against the raw value, before stripping.
    """
    label = label or field.replace("_", " ").capitalize()
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required", field=field, value=value, constraint="non_empty")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"{label} is too long (max {max_length} characters)",
            field=field,
            value=len(value),
            constraint=f"max_length={max_length}",
        )
    return value.strip()


def optional_text(payload: Mapping[str, Any], field: str, default: str = "") -> str:
    value = payload.get(field)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field, value=value, constraint="type=str")
    return value.strip()


__all__ = [
    "ActionDefinition",
    "ActionExecutor",
    "ActionHandler",
    "Controller",
    "optional_text",
    "require_text",
]
