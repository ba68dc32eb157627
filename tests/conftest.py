from typing import Any, Dict, List, Optional

import pytest

from core.options import ImprovementCycleConfig, ImprovementCycleOptions
from models import (
    AgentOutput,
    AgentPrompt,
    ComponentMetadata,
    EvalTestCase,
    ImproveResult,
    ImproverMetadata,
    JudgeResult,
    Suggestion,
    TokenUsage,
    Verdict,
)


class FakeAgent:
    """Echoes the rendered prompt back as its output (no network)."""

    def __init__(self, prompt: AgentPrompt, fail_on: Optional[set] = None):
        self.prompt = prompt
        self.fail_on = fail_on or set()

    def execute(self, input: Any) -> AgentOutput:
        if input in self.fail_on:
            raise RuntimeError(f"agent failed on {input}")
        return AgentOutput(
            output=f"{self.prompt.system} :: {self.prompt.render({'question': input})}",
            metadata=ComponentMetadata(
                token_usage=TokenUsage(input_tokens=1000, output_tokens=500, total_tokens=1500),
                model="gemini-2.5-flash",
                provider="google"
            )
        )


class ScriptedJudge:
    """Returns scores from a script, one per evaluate() call; repeats the last."""

    def __init__(self, scores: List[float]):
        self.scores = list(scores)
        self.calls = 0
        self.seen_outputs: List[Any] = []

    def evaluate(self, test_case, output, agent_description=None) -> JudgeResult:
        score = self.scores[min(self.calls, len(self.scores) - 1)]
        self.calls += 1
        self.seen_outputs.append(output.output)
        return JudgeResult(
            verdicts=[Verdict(criterion_id="accuracy", score=score, reasoning="scripted", passed=score >= 70)],
            overall_score=score,
            passed=score >= 70,
            metadata=ComponentMetadata(
                token_usage=TokenUsage(input_tokens=2000, output_tokens=200, total_tokens=2200),
                model="gpt-4o-mini"
            )
        )


class ReplaceImprover:
    """Always suggests replacing ``current`` with ``suggested`` in the system prompt."""

    def __init__(self, current: str = "helpful", suggested: str = "precise", token_usage: Optional[TokenUsage] = None):
        self.current = current
        self.suggested = suggested
        self.token_usage = token_usage
        self.calls: List[AgentPrompt] = []

    def improve(self, prompt: AgentPrompt, results) -> ImproveResult:
        self.calls.append(prompt)
        return ImproveResult(
            suggestions=[
                Suggestion(
                    type="system_prompt",
                    priority="high",
                    current_value=self.current,
                    suggested_value=self.suggested,
                    reasoning="Be more specific",
                    expected_improvement="Higher accuracy",
                    approved=True
                )
            ],
            metadata=ImproverMetadata(token_usage=self.token_usage, model="claude-sonnet-4-20250514")
        )


class MemoryStorage:
    """In-memory HistoryStorage."""

    def __init__(self, fail_writes: bool = False):
        self.files: Dict[str, str] = {}
        self.dirs: set = set()
        self.fail_writes = fail_writes
        self.writes: List[str] = []

    def read_file(self, path: str) -> str:
        return self.files[path]

    def write_file(self, path: str, content: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.writes.append(content)
        self.files[path] = content

    def exists(self, path: str) -> bool:
        return path in self.files or path in self.dirs

    def mkdir(self, path: str) -> None:
        self.dirs.add(path)


@pytest.fixture
def base_prompt() -> AgentPrompt:
    return AgentPrompt(
        id="qa-agent",
        version="1.0.0",
        system="You are a helpful assistant.",
        user_template="Question: {{ question }}",
        temperature_hint="Answer in a helpful tone"
    )


@pytest.fixture
def test_cases() -> List[EvalTestCase]:
    return [EvalTestCase(id="t1", input="What is 2+2?")]


@pytest.fixture
def make_config(base_prompt, test_cases):
    """Build an ImprovementCycleConfig with fake collaborators."""

    def _make(
        scores: List[float],
        terminate_when=None,
        improver=None,
        prompt: Optional[AgentPrompt] = None,
        **option_overrides
    ) -> ImprovementCycleConfig:
        option_overrides.setdefault("show_progress", False)
        return ImprovementCycleConfig(
            initial_prompt=prompt or base_prompt,
            test_cases=test_cases,
            create_agent=FakeAgent,
            judge=ScriptedJudge(scores),
            improver=improver if improver is not None else ReplaceImprover(),
            terminate_when=terminate_when or [],
            options=ImprovementCycleOptions(**option_overrides)
        )

    return _make
