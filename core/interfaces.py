"""
Collaborator interfaces for the improvement cycle.

The cycle never talks to a language model itself. Agents, judges, improvers
and suite runners are supplied by the caller and only need to satisfy these
protocols.
"""
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable

from models.prompt import AgentPrompt
from models.report import AgentOutput, EvalReport, EvalTestCase, EvalTestResult, JudgeResult
from models.suggestion import ImproveResult


@runtime_checkable
class Agent(Protocol):
    """Executes one test input using a prompt."""

    def execute(self, input: Any) -> AgentOutput:
        ...


AgentFactory = Callable[[AgentPrompt], Agent]


@runtime_checkable
class Judge(Protocol):
    """Scores an agent output against its criteria."""

    def evaluate(
        self,
        test_case: EvalTestCase,
        output: AgentOutput,
        agent_description: Optional[str] = None
    ) -> JudgeResult:
        ...


@runtime_checkable
class Improver(Protocol):
    """Proposes prompt edits from evaluation results."""

    def improve(self, prompt: AgentPrompt, results: List[EvalTestResult]) -> ImproveResult:
        ...


class SuiteRunner(Protocol):
    """Runs a set of test cases against an agent and produces a report."""

    def run(
        self,
        agent: Agent,
        judge: Judge,
        test_cases: List[EvalTestCase],
        prompt: AgentPrompt,
        agent_description: Optional[str] = None
    ) -> EvalReport:
        ...


@runtime_checkable
class HistoryStorage(Protocol):
    """File operations used to persist improvement history."""

    def read_file(self, path: str) -> str:
        ...

    def write_file(self, path: str, content: str) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def mkdir(self, path: str) -> None:
        """Create a directory and any missing parents."""
        ...
