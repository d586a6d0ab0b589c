"""
Marginalia - behavior-driven suggestion pipeline for a reading application.

Packages:
    marginalia.core          errors, logging, settings, event bus, scheduler,
                             event collector, behavior sink, suggestion queue
    marginalia.controllers   action controllers and the controller registry
    marginalia.services      behavior analysis (rule based or LLM backed)
    marginalia.app           AppContext wiring for one session
    marginalia.cli           ``marginalia`` command line
"""

__version__ = "0.3.0"
