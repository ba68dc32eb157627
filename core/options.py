"""Run configuration for improvement cycles."""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from config.cycle_config import CycleConfig
from core.conditions import TerminationCondition
from core.history import ImprovementSession
from core.interfaces import AgentFactory, HistoryStorage, Improver, Judge, SuiteRunner
from models.prompt import AgentPrompt
from models.report import EvalTestCase
from utils.pricing import PricingConfig


@dataclass
class HistoryConfig:
    """Where a new session saves its history."""
    path: str
    auto_save: bool = CycleConfig.AUTO_SAVE
    storage: Optional[HistoryStorage] = None
    on_auto_save_error: Optional[Callable[[Exception], None]] = None


@dataclass
class ImprovementCycleOptions:
    pricing_config: Optional[PricingConfig] = None
    version_bump: str = CycleConfig.VERSION_BUMP
    history: Optional[HistoryConfig] = None
    # Resume an existing session instead of creating one
    session: Optional[ImprovementSession] = None
    agent_description: Optional[str] = None
    show_progress: bool = CycleConfig.SHOW_PROGRESS


@dataclass
class ImprovementCycleConfig:
    """
    Everything an improvement cycle needs.

    Attributes:
        initial_prompt: Starting prompt (must have a user_template to be persisted)
        test_cases: Inputs evaluated every round
        create_agent: Builds an agent for a given prompt
        judge: Scores agent outputs
        improver: Proposes edits; without one, rounds produce no suggestions
        terminate_when: Conditions checked after every round (OR semantics)
        suite_runner: Replaces the default EvalSuite
        options: Pricing, versioning, persistence and display settings
    """
    initial_prompt: AgentPrompt
    test_cases: List[EvalTestCase]
    create_agent: AgentFactory
    judge: Judge
    improver: Optional[Improver] = None
    terminate_when: List[TerminationCondition] = field(default_factory=list)
    suite_runner: Optional[SuiteRunner] = None
    options: ImprovementCycleOptions = field(default_factory=ImprovementCycleOptions)
