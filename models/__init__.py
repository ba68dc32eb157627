"""Data models for the prompt improvement cycle."""
from models.prompt import AgentPrompt, SerializedPrompt
from models.report import (
    AgentOutput,
    ComponentMetadata,
    EvalReport,
    EvalTestCase,
    EvalTestResult,
    JudgeResult,
    ReportSummary,
    TokenUsage,
    Verdict,
)
from models.suggestion import (
    ApplySuggestionsResult,
    ImproveResult,
    ImproverMetadata,
    SkippedSuggestion,
    Suggestion,
    SuggestionPriority,
    SuggestionType,
)
from models.cycle import (
    CycleContext,
    CycleTerminationResult,
    DecisionAction,
    ImprovementCycleResult,
    ImprovementHistory,
    RoundCost,
    RoundDecision,
    RoundResult,
    RoundYield,
    SerializedRoundResult,
)

__all__ = [
    "AgentPrompt",
    "SerializedPrompt",
    "AgentOutput",
    "ComponentMetadata",
    "EvalReport",
    "EvalTestCase",
    "EvalTestResult",
    "JudgeResult",
    "ReportSummary",
    "TokenUsage",
    "Verdict",
    "ApplySuggestionsResult",
    "ImproveResult",
    "ImproverMetadata",
    "SkippedSuggestion",
    "Suggestion",
    "SuggestionPriority",
    "SuggestionType",
    "CycleContext",
    "CycleTerminationResult",
    "DecisionAction",
    "ImprovementCycleResult",
    "ImprovementHistory",
    "RoundCost",
    "RoundDecision",
    "RoundResult",
    "RoundYield",
    "SerializedRoundResult",
]
