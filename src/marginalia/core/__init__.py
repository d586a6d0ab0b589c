"""Marginalia Core -- domain-agnostic primitives for the suggestion pipeline.

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (MarginaliaError, ...)
        timestamps.py      Epoch-ms clock, ManualClock, id generation
        logging.py         structlog configuration

    Layer 2 -- Runtime
        settings.py        MarginaliaSettings (pydantic-settings)
        events/            EventBus protocol + InMemoryEventBus
        scheduling/        TaskScheduler (interval tasks, in-flight guard)

    Layer 3 -- Behavior & Suggestions
        collector.py       EventCollector (sanitize, buffer, flush)
        behavior.py        BehaviorStore (pattern classification)
        suggestions/       Suggestion, SuggestionQueue, StatsStore
        repositories.py    Interaction and reading-list stores
        diagnostics.py     Counters + event log export

Tags:
    marginalia-core, primitives, foundation
"""
