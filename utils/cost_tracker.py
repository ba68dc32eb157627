"""Cost accounting for improvement rounds."""
from typing import Dict, Optional, Any

from models.cycle import RoundCost
from models.report import ComponentMetadata, EvalReport
from models.suggestion import ImproveResult
from utils.pricing import PricingConfig, calculate_cost, detect_provider, normalize_provider

COMPONENTS = ("agent", "judge", "improver")


def _component_cost(
    metadata: Optional[ComponentMetadata],
    pricing_config: Optional[PricingConfig],
    default_provider: str = "google"
) -> float:
    """Price one component call from its token usage (0 when usage is unknown)."""
    if metadata is None or metadata.token_usage is None:
        return 0.0

    if metadata.provider:
        provider = normalize_provider(metadata.provider, default_provider)
    else:
        provider = detect_provider(metadata.model, default_provider)

    overrides = pricing_config.provider_pricing.get(provider) if pricing_config else None
    usage = metadata.token_usage
    return calculate_cost(
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        cached_input_tokens=usage.cached_input_tokens,
        model=metadata.model or "unknown",
        provider=provider,
        provider_pricing=overrides
    )


class CostTracker:
    """Tracks costs by component across a round."""

    def __init__(self):
        self.total_cost: float = 0.0
        self.by_component: Dict[str, float] = {name: 0.0 for name in COMPONENTS}

    def add_cost(self, component: str, cost: float):
        """Record a cost."""
        self.total_cost += cost
        if component in self.by_component:
            self.by_component[component] += cost

    def add_report(self, report: EvalReport, pricing_config: Optional[PricingConfig]):
        """Record agent and judge costs for every test result (skipped without pricing)."""
        if pricing_config is None:
            return
        for result in report.results:
            self.add_cost("agent", _component_cost(result.agent_metadata, pricing_config))
            self.add_cost("judge", _component_cost(result.judge_metadata, pricing_config))

    def add_improver(self, improve_result: ImproveResult, pricing_config: Optional[PricingConfig]):
        """Record improver cost; improvers default to anthropic models."""
        metadata = improve_result.metadata
        if pricing_config is None or metadata is None or metadata.token_usage is None:
            return
        component = ComponentMetadata(token_usage=metadata.token_usage, model=metadata.model)
        self.add_cost("improver", _component_cost(component, pricing_config, default_provider="anthropic"))

    def to_round_cost(self) -> RoundCost:
        return RoundCost(
            agent=self.by_component["agent"],
            judge=self.by_component["judge"],
            improver=self.by_component["improver"],
            total=self.total_cost
        )

    def get_summary(self) -> Dict[str, Any]:
        """Get cost summary."""
        return {
            "total_cost_usd": round(self.total_cost, 4),
            "by_component": {k: round(v, 4) for k, v in self.by_component.items()}
        }

    def reset(self):
        """Reset tracker."""
        self.total_cost = 0.0
        self.by_component = {name: 0.0 for name in COMPONENTS}


def calculate_round_cost(
    report: EvalReport,
    improve_result: ImproveResult,
    pricing_config: Optional[PricingConfig] = None
) -> RoundCost:
    """Turn a round's token usage into a per-component cost breakdown."""
    tracker = CostTracker()
    tracker.add_report(report, pricing_config)
    tracker.add_improver(improve_result, pricing_config)
    return tracker.to_round_cost()
