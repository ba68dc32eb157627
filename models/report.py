"""Evaluation report models produced by the eval suite."""
from typing import Any, List, Optional

from pydantic import Field

from models.base import CamelModel


class TokenUsage(CamelModel):
    """Token counts reported by one model call (or a sum of calls)."""
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    cached_input_tokens: int = Field(default=0, ge=0)


class ComponentMetadata(CamelModel):
    """Which model a component used and how many tokens it consumed."""
    token_usage: Optional[TokenUsage] = None
    model: Optional[str] = None
    provider: Optional[str] = None


class EvalTestCase(CamelModel):
    """A single input the agent is evaluated on."""
    id: Optional[str] = None
    input: Any
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    expected_output: Optional[Any] = None


class AgentOutput(CamelModel):
    """What an agent returns for one test input."""
    output: Any = None
    metadata: ComponentMetadata = Field(default_factory=ComponentMetadata)


class Verdict(CamelModel):
    """Judge verdict on one criterion."""
    criterion_id: str
    score: float = Field(ge=0, le=100)
    reasoning: str = ""
    passed: bool


class JudgeResult(CamelModel):
    """What a judge returns for one agent output."""
    verdicts: List[Verdict] = Field(default_factory=list)
    overall_score: float = Field(ge=0, le=100)
    passed: bool
    metadata: ComponentMetadata = Field(default_factory=ComponentMetadata)


class EvalTestResult(CamelModel):
    """Outcome of one test case: agent output plus judge verdicts."""
    test_case: EvalTestCase
    output: Any = None
    verdicts: List[Verdict] = Field(default_factory=list)
    overall_score: float = Field(default=0.0, ge=0, le=100)
    passed: bool = False
    error: Optional[str] = None
    latency_ms: float = 0.0
    agent_metadata: ComponentMetadata = Field(default_factory=ComponentMetadata)
    judge_metadata: ComponentMetadata = Field(default_factory=ComponentMetadata)


class ReportSummary(CamelModel):
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    avg_score: float = 0.0


class EvalReport(CamelModel):
    """Results of running the test suite against one prompt."""
    results: List[EvalTestResult] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)
    prompt_version: Optional[str] = None

    @classmethod
    def from_results(
        cls,
        results: List[EvalTestResult],
        prompt_version: Optional[str] = None
    ) -> "EvalReport":
        """Build a report, computing the summary from the results."""
        passed = len([r for r in results if r.passed])
        avg_score = sum(r.overall_score for r in results) / len(results) if results else 0.0
        return cls(
            results=results,
            summary=ReportSummary(
                total_tests=len(results),
                passed=passed,
                failed=len(results) - passed,
                avg_score=avg_score
            ),
            prompt_version=prompt_version
        )
