"""Improvement suggestion models."""
from enum import Enum
from typing import List, Optional

from pydantic import ConfigDict, Field

from models.base import CamelModel
from models.prompt import AgentPrompt
from models.report import TokenUsage


class SuggestionType(str, Enum):
    """Prompt field a suggestion edits."""
    SYSTEM_PROMPT = "system_prompt"
    USER_PROMPT = "user_prompt"
    PARAMETERS = "parameters"


class SuggestionPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Suggestion(CamelModel):
    """A proposed edit: replace ``current_value`` with ``suggested_value``."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    type: SuggestionType
    priority: SuggestionPriority = SuggestionPriority.MEDIUM
    current_value: str
    suggested_value: str
    reasoning: str = ""
    expected_improvement: str = ""
    approved: bool = False
    modified: bool = False

    def approve(self) -> "Suggestion":
        """Copy of this suggestion marked approved."""
        return self.model_copy(update={"approved": True})

    def pending(self) -> "Suggestion":
        """Copy of this suggestion awaiting a decision."""
        return self.model_copy(update={"approved": False})


class ImproverMetadata(CamelModel):
    """Usage reported by the improver for cost accounting."""
    token_usage: Optional[TokenUsage] = None
    model: Optional[str] = None


class ImproveResult(CamelModel):
    """Output of one improver call."""
    suggestions: List[Suggestion] = Field(default_factory=list)
    metadata: Optional[ImproverMetadata] = None


class SkippedSuggestion(CamelModel):
    suggestion: Suggestion
    reason: str


class ApplySuggestionsResult(CamelModel):
    """Result of applying approved suggestions to a prompt."""

    prompt: AgentPrompt
    applied_count: int = 0
    skipped: List[SkippedSuggestion] = Field(default_factory=list)

