"""Example: Improve a prompt automatically until a target score or round limit."""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.cycle_config import CycleConfig
from core.conditions import max_cost, max_rounds, no_improvement, or_, target_score
from core.cycle import run_improvement_cycle_auto
from core.options import HistoryConfig, ImprovementCycleConfig, ImprovementCycleOptions
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
from utils.pricing import PricingConfig
from utils.prompt_versioning import suggestion_summary


class KeywordAgent:
    """Stand-in agent: answers with the system prompt's instructions applied to the input."""

    def __init__(self, prompt: AgentPrompt):
        self.prompt = prompt

    def execute(self, input):
        text = f"{self.prompt.system}\n{self.prompt.render(input)}"
        return AgentOutput(
            output=text,
            metadata=ComponentMetadata(
                token_usage=TokenUsage(input_tokens=400, output_tokens=150, total_tokens=550),
                model="gemini-2.5-flash"
            )
        )


class KeywordJudge:
    """Scores outputs by how many required keywords appear."""

    REQUIRED = ("JSON", "exactly 3", "no markdown")

    def evaluate(self, test_case, output, agent_description=None):
        verdicts = [
            Verdict(
                criterion_id=keyword,
                score=100 if keyword in output.output else 0,
                reasoning=f"'{keyword}' {'present' if keyword in output.output else 'missing'}",
                passed=keyword in output.output
            )
            for keyword in self.REQUIRED
        ]
        score = sum(v.score for v in verdicts) / len(verdicts)
        return JudgeResult(verdicts=verdicts, overall_score=score, passed=score >= 90)


class ChecklistImprover:
    """Suggests adding one missing requirement per round."""

    ADDITIONS = [
        ("a list", "a JSON list"),
        ("fruits.", "fruits, exactly 3 items."),
        ("items.", "items, no markdown."),
    ]

    def improve(self, prompt, results):
        for current, suggested in self.ADDITIONS:
            if current in prompt.system:
                return ImproveResult(
                    suggestions=[Suggestion(
                        type="system_prompt",
                        priority="high",
                        current_value=current,
                        suggested_value=suggested,
                        reasoning=f"Outputs miss the requirement introduced by '{suggested}'",
                        expected_improvement="+33 points"
                    )],
                    metadata=ImproverMetadata(
                        token_usage=TokenUsage(input_tokens=1200, output_tokens=300, total_tokens=1500),
                        model="claude-sonnet-4-20250514"
                    )
                )
        return ImproveResult()


if __name__ == "__main__":
    prompt = AgentPrompt(
        id="fruit-list",
        version="1.0.0",
        system="Return a list of fruits.",
        user_template="Request: {{ request }}"
    )

    config = ImprovementCycleConfig(
        initial_prompt=prompt,
        test_cases=[EvalTestCase(id="EXAMPLE-001", input={"request": "List 3 fruits"})],
        create_agent=KeywordAgent,
        judge=KeywordJudge(),
        improver=ChecklistImprover(),
        terminate_when=[
            target_score(95),
            or_(max_rounds(6), max_cost(0.50)),
            no_improvement(2),
        ],
        options=ImprovementCycleOptions(
            pricing_config=PricingConfig(),
            history=HistoryConfig(path=CycleConfig.history_path("fruit-list")),
        )
    )

    print("Starting improvement cycle...")
    result = run_improvement_cycle_auto(config)

    print(f"\nStopped: {result.termination_reason}")
    for round_result in result.rounds:
        print(
            f"  Round {round_result.round}: score {round_result.report.summary.avg_score:.1f}, "
            f"version {round_result.prompt_version_after}, cost ${round_result.cost.total:.5f}"
        )
        for suggestion in round_result.suggestions_approved:
            print(f"    {suggestion_summary(suggestion)}")
    print(f"\nFinal prompt (v{result.final_prompt.version}): {result.final_prompt.system}")
    print(f"Total cost: ${result.total_cost:.5f}")
    print(f"History saved to {CycleConfig.history_path('fruit-list')}")
