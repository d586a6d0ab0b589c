"""Controller Registry: name → controller lookup and cross-controller dispatch.

Manifesto:
Suggestions name the controller that should carry them out
(``"post"``, ``"interaction"``) rather than holding a reference to it.
The registry resolves those names at execution time, so an accepted
suggestion goes through exactly the same ``execute_action`` path as a
direct call.  One registry belongs to one application context; there is
no module-level instance.

ARCHITECTURE
────────────
::

    ControllerRegistry
      ├── .register(controller, description=, category=)
      ├── .get(name)                        ─ lookup, None if absent
      ├── .execute_action(name, action, payload)
      │        └── NotFoundError for an unknown controller
      ├── .has_action(name, action)         ─ existence check
      ├── .discover_all_actions()           ─ ActionDiscovery per controller
      ├── .get_registration_status()        ─ dict for diagnostics
      └── .destroy()                        ─ destroy every controller

Tags:
    marginalia-core, controllers, registry, dispatch, lookup

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from marginalia.core.errors import NotFoundError
from marginalia.core.logging import get_logger

from .base import Controller

logger = get_logger(__name__)


@dataclass(frozen=True)
class ControllerRegistration:
    name: str
    controller: Controller
    description: str = ""
    category: str = "system"


@dataclass(frozen=True)
class ActionDiscovery:
    controller_name: str
    actions: tuple[str, ...]
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {"controller_name": self.controller_name, "actions": list(self.actions), "category": self.category}


class ControllerRegistry:
    """Injectable controller registry.

    Example:
        >>> registry = ControllerRegistry()
        >>> registry.register(PostController(bus, InMemoryReadingListRepository()))
        >>> await registry.execute_action("post", "ADD_TO_BOOKMARK", {"post_id": "p1"})
    """

    def __init__(self) -> None:
        self._registrations: dict[str, ControllerRegistration] = {}
        self._initialized = False

    def register(
        self,
        controller: Controller,
        *,
        name: str | None = None,
        description: str | None = None,
        category: str | None = None,
    ) -> None:
        """Register a controller under ``name`` (defaults to ``controller.name``).

        Re-registering a name replaces the previous controller.
        """
        key = name or controller.name
        if key in self._registrations:
            logger.warning("controller_replaced", controller=key)
        self._registrations[key] = ControllerRegistration(
            name=key,
            controller=controller,
            description=description if description is not None else controller.description,
            category=category or controller.category,
        )
        logger.debug("controller_registered", controller=key, actions=controller.get_supported_actions())

    def get(self, name: str) -> Controller | None:
        registration = self._registrations.get(name)
        return registration.controller if registration else None

    @property
    def controller_names(self) -> list[str]:
        return list(self._registrations)

    def get_by_category(self, category: str) -> list[ControllerRegistration]:
        return [r for r in self._registrations.values() if r.category == category]

    async def initialize(self) -> None:
        """Initialize every registered controller. Idempotent."""
        if self._initialized:
            return
        for registration in self._registrations.values():
            await registration.controller.initialize()
        self._initialized = True
        discoveries = self.discover_all_actions()
        logger.info(
            "controller_registry_initialized",
            controllers=len(discoveries),
            total_actions=sum(len(d.actions) for d in discoveries),
        )

    async def execute_action(
        self,
        controller_name: str,
        action_type: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Dispatch to a named controller.

        Raises:
            NotFoundError: If no controller is registered under ``controller_name``
        """
        controller = self.get(controller_name)
        if controller is None:
            raise NotFoundError(
                f"Controller not found: {controller_name}. Available: {self.controller_names or 'none'}",
                entity_id=controller_name,
            ).with_context(controller=controller_name, action=action_type)
        await controller.execute_action(action_type, payload)

    def has_action(self, controller_name: str, action_type: str) -> bool:
        controller = self.get(controller_name)
        if controller is None:
            return False
        return action_type in controller.get_supported_actions()

    def discover_all_actions(self) -> list[ActionDiscovery]:
        return [
            ActionDiscovery(
                controller_name=r.name,
                actions=tuple(r.controller.get_supported_actions()),
                category=r.category,
            )
            for r in self._registrations.values()
        ]

    def get_registration_status(self) -> dict[str, Any]:
        return {
            "initialized": self._initialized,
            "total_controllers": len(self._registrations),
            "controllers": [
                {
                    "name": r.name,
                    "category": r.category,
                    "description": r.description,
                    "actions": r.controller.get_supported_actions(),
                }
                for r in self._registrations.values()
            ],
        }

    async def destroy(self) -> None:
        """Destroy every controller and forget them."""
        for registration in list(self._registrations.values()):
            await registration.controller.destroy()
        self._registrations.clear()
        self._initialized = False
        logger.info("controller_registry_destroyed")


__all__ = ["ActionDiscovery", "ControllerRegistration", "ControllerRegistry"]
