"""Example: Human-in-the-loop improvement with approve / stop / rollback at every round."""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.conditions import max_rounds, target_score
from core.cycle import run_improvement_cycle
from core.history import SessionConfig, resume_session
from core.options import HistoryConfig, ImprovementCycleConfig, ImprovementCycleOptions
from models import AgentPrompt, EvalTestCase, RoundDecision
from utils.prompt_versioning import suggestion_diff, suggestion_preview

from improve_simple import ChecklistImprover, KeywordAgent, KeywordJudge

HISTORY_PATH = "outputs/improvement_history/interactive.json"


def ask_decision(step) -> RoundDecision:
    summary = step.round_result.report.summary
    print(f"\n=== Round {step.round_result.round} ===")
    print(f"Score: {summary.avg_score:.1f} ({summary.passed}/{summary.total_tests} passed)")
    print(f"Termination check: {step.termination_check.reason}")

    approved = []
    for suggestion in step.pending_suggestions:
        print(suggestion_preview(suggestion))
        print(suggestion_diff(suggestion))
        if input("Approve? [y/N] ").strip().lower() == "y":
            approved.append(suggestion.approve())

    choice = input("[c]ontinue, [s]top or [r]ollback? ").strip().lower()
    if choice.startswith("s"):
        return RoundDecision.stop()
    if choice.startswith("r"):
        return RoundDecision.rollback(int(input("Roll back to round: ")))
    return RoundDecision.proceed(approved)


if __name__ == "__main__":
    resume = "--resume" in sys.argv
    options = ImprovementCycleOptions(show_progress=False)
    if resume:
        options.session = resume_session(HISTORY_PATH, SessionConfig(auto_save=True))
    else:
        options.history = HistoryConfig(path=HISTORY_PATH)

    config = ImprovementCycleConfig(
        initial_prompt=AgentPrompt(
            id="fruit-list",
            system="Return a list of fruits.",
            user_template="Request: {{ request }}"
        ),
        test_cases=[EvalTestCase(id="EXAMPLE-001", input={"request": "List 3 fruits"})],
        create_agent=KeywordAgent,
        judge=KeywordJudge(),
        improver=ChecklistImprover(),
        terminate_when=[target_score(95), max_rounds(10)],
        options=options
    )

    cycle = run_improvement_cycle(config)
    step = next(cycle)
    try:
        while True:
            step = cycle.send(ask_decision(step))
    except StopIteration as stop:
        result = stop.value

    print(f"\nStopped: {result.termination_reason}")
    print(f"Final prompt (v{result.final_prompt.version}): {result.final_prompt.system}")
