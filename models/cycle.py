"""Improvement cycle round and history models."""
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import ConfigDict, Field, model_serializer

from config.cycle_config import CycleConfig
from models.base import CamelModel
from models.prompt import AgentPrompt, SerializedPrompt
from models.report import EvalReport
from models.suggestion import Suggestion


class RoundCost(CamelModel):
    """Cost of one round by component, in USD."""
    model_config = ConfigDict(frozen=True)

    agent: float = 0.0
    judge: float = 0.0
    improver: float = 0.0
    total: float = 0.0


class RoundResult(CamelModel):
    """Immutable record of one execute -> evaluate -> suggest pass."""
    model_config = ConfigDict(frozen=True)

    round: int
    completed_at: datetime
    report: EvalReport
    suggestions_generated: List[Suggestion] = Field(default_factory=list)
    suggestions_approved: List[Suggestion] = Field(default_factory=list)
    prompt_snapshot: SerializedPrompt = Field(description="Prompt before this round's changes")
    prompt_version_after: str
    cost: RoundCost
    score_delta: Optional[float] = Field(description="None only for the first round")


class SerializedRoundResult(CamelModel):
    """Round record as stored in the history file."""
    round: int
    completed_at: str
    avg_score: float
    passed: int
    failed: int
    total_tests: int
    suggestions_generated: List[Suggestion] = Field(default_factory=list)
    suggestions_approved: List[Suggestion] = Field(default_factory=list)
    prompt_snapshot: SerializedPrompt
    prompt_version_after: str
    cost: RoundCost
    score_delta: Optional[float] = None

    @classmethod
    def from_round(cls, result: RoundResult) -> "SerializedRoundResult":
        summary = result.report.summary
        return cls(
            round=result.round,
            completed_at=result.completed_at.isoformat(),
            avg_score=summary.avg_score,
            passed=summary.passed,
            failed=summary.failed,
            total_tests=summary.total_tests,
            suggestions_generated=result.suggestions_generated,
            suggestions_approved=result.suggestions_approved,
            prompt_snapshot=result.prompt_snapshot,
            prompt_version_after=result.prompt_version_after,
            cost=result.cost,
            score_delta=result.score_delta
        )


class CycleContext(CamelModel):
    """Read-only view of cycle progress handed to termination checks."""
    model_config = ConfigDict(frozen=True)

    current_round: int
    latest_score: float
    previous_scores: List[float] = Field(default_factory=list)
    total_cost: float = 0.0
    history: List[RoundResult] = Field(default_factory=list)


class CycleTerminationResult(CamelModel):
    """Outcome of a termination check."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    terminated: bool
    reason: str
    matched_condition: Optional[Any] = None


class RoundYield(CamelModel):
    """What the cycle hands to the decision maker after each round."""
    model_config = ConfigDict(frozen=True)

    round_result: RoundResult
    pending_suggestions: List[Suggestion]
    termination_check: CycleTerminationResult
    context: CycleContext


class DecisionAction(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    ROLLBACK = "rollback"


class RoundDecision(CamelModel):
    """Decision supplied between rounds."""
    model_config = ConfigDict(use_enum_values=True)

    action: DecisionAction
    approved_suggestions: List[Suggestion] = Field(default_factory=list)
    rollback_to_round: Optional[int] = None

    @classmethod
    def stop(cls) -> "RoundDecision":
        return cls(action=DecisionAction.STOP)

    @classmethod
    def proceed(cls, approved_suggestions: Optional[List[Suggestion]] = None) -> "RoundDecision":
        return cls(action=DecisionAction.CONTINUE, approved_suggestions=approved_suggestions or [])

    @classmethod
    def rollback(cls, to_round: int) -> "RoundDecision":
        return cls(action=DecisionAction.ROLLBACK, rollback_to_round=to_round)


class ImprovementHistory(CamelModel):
    """Persisted record of a whole improvement run."""
    schema_version: str = CycleConfig.SCHEMA_VERSION
    session_id: str
    started_at: str
    initial_prompt: SerializedPrompt
    current_prompt: SerializedPrompt
    rounds: List[SerializedRoundResult] = Field(default_factory=list)
    total_cost: float = 0.0
    completed_at: Optional[str] = None
    termination_reason: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_open_completion(self, handler):
        data = handler(self)
        for field_name, key in (("completed_at", "completedAt"), ("termination_reason", "terminationReason")):
            if getattr(self, field_name) is None:
                data.pop(key, None)
                data.pop(field_name, None)
        return data


class ImprovementCycleResult(CamelModel):
    """Final aggregate returned when a cycle completes."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    rounds: List[RoundResult]
    final_prompt: AgentPrompt
    termination_reason: str
    total_cost: float
    history: ImprovementHistory
