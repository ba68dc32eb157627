"""Single round execution: evaluate the current prompt, then ask for suggestions."""
from dataclasses import dataclass
from typing import List, Optional

from core.options import ImprovementCycleConfig
from core.suite import EvalSuite
from models.cycle import RoundCost
from models.prompt import AgentPrompt
from models.report import EvalReport
from models.suggestion import ImproveResult
from utils.cost_tracker import calculate_round_cost
from utils.logging_utils import get_logger
from utils.pricing import PricingConfig

logger = get_logger()


@dataclass
class RoundExecution:
    report: EvalReport
    improve_result: ImproveResult
    cost: RoundCost


def execute_round(
    config: ImprovementCycleConfig,
    prompt: AgentPrompt,
    pricing_config: Optional[PricingConfig] = None
) -> RoundExecution:
    """
    Run the test suite against ``prompt`` and collect improvement suggestions.

    The improver is called separately from the suite so its token usage can
    be priced on its own.
    """
    agent = config.create_agent(prompt)
    suite = config.suite_runner or EvalSuite(show_progress=config.options.show_progress)
    report = suite.run(
        agent,
        config.judge,
        config.test_cases,
        prompt,
        config.options.agent_description
    )

    if config.improver is not None:
        improve_result = config.improver.improve(prompt, report.results)
    else:
        improve_result = ImproveResult()

    cost = calculate_round_cost(report, improve_result, pricing_config)
    logger.debug(
        "Round executed",
        prompt_version=prompt.version,
        avg_score=report.summary.avg_score,
        suggestions=len(improve_result.suggestions),
        cost_usd=round(cost.total, 6)
    )
    return RoundExecution(report=report, improve_result=improve_result, cost=cost)


def calculate_score_delta(current_score: float, previous_scores: List[float]) -> Optional[float]:
    """Change from the previous round's score; None on the first round."""
    if not previous_scores:
        return None
    return current_score - previous_scores[-1]
