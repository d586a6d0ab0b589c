"""External-facing services used by controllers."""

from .analysis import (
    AnalysisInsights,
    AnalysisResult,
    AnalysisService,
    LLMAnalysisService,
    RuleBasedAnalysisService,
    build_analysis_service,
    parse_insights,
)

__all__ = [
    "AnalysisInsights",
    "AnalysisResult",
    "AnalysisService",
    "LLMAnalysisService",
    "RuleBasedAnalysisService",
    "build_analysis_service",
    "parse_insights",
]
