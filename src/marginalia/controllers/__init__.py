"""Domain controllers and the registry that routes actions between them.

Modules
-------
base            Controller base class, ActionDefinition, payload validation
interaction     replies, comments, highlights, notes
post            bookmarks, reading history, summaries
ai_suggestion   suggestion generation, presentation and execution
ai_agent        behavior analysis and monitoring
registry        ControllerRegistry
"""

from .ai_agent import AgentAction, AIAgentController
from .ai_suggestion import (
    AISuggestionController,
    SuggestionAction,
    SuggestionContext,
    SuggestionResponse,
    build_suggestions,
)
from .base import ActionDefinition, ActionExecutor, Controller
from .interaction import InteractionAction, InteractionController
from .post import PostAction, PostController
from .registry import ActionDiscovery, ControllerRegistration, ControllerRegistry

__all__ = [
    "ActionDefinition",
    "ActionDiscovery",
    "ActionExecutor",
    "AgentAction",
    "AIAgentController",
    "AISuggestionController",
    "Controller",
    "ControllerRegistration",
    "ControllerRegistry",
    "InteractionAction",
    "InteractionController",
    "PostAction",
    "PostController",
    "SuggestionAction",
    "SuggestionContext",
    "SuggestionResponse",
    "build_suggestions",
]
