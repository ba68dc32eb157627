"""
Improvement cycle state machine.

Each round evaluates the working prompt, collects suggestions and checks the
termination conditions, then waits for a decision: stop, continue with some
approved suggestions, or roll back to an earlier round's prompt.

    cycle = ImprovementCycle(config)
    step = cycle.start()
    while isinstance(step, RoundYield):
        step = cycle.advance(decide(step))
    result = step
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Generator, List, Optional, Tuple, Union

from tqdm import tqdm

from core.conditions import check_cycle_termination
from core.history import ImprovementSession, SessionConfig, create_session
from core.options import HistoryConfig, ImprovementCycleConfig, ImprovementCycleOptions
from core.prompt_serializer import deserialize_prompt, serialize_prompt
from core.round_executor import calculate_score_delta, execute_round
from models.cycle import (
    CycleContext,
    CycleTerminationResult,
    DecisionAction,
    ImprovementCycleResult,
    RoundDecision,
    RoundResult,
    RoundYield,
)
from models.prompt import AgentPrompt, SerializedPrompt
from models.suggestion import Suggestion
from utils.error_handling import ErrorSeverity, InvalidConfigError, handle_errors
from utils.logging_utils import get_logger, set_correlation_id
from utils.prompt_versioning import apply_prompt_suggestions

logger = get_logger()

__all__ = [
    "CycleState",
    "HistoryConfig",
    "ImprovementCycle",
    "ImprovementCycleConfig",
    "ImprovementCycleOptions",
    "run_improvement_cycle",
    "run_improvement_cycle_auto",
]

USER_STOP_REASON = "User requested stop"


class CycleState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    AWAITING_DECISION = "awaiting_decision"
    COMPLETED = "completed"
    ERROR = "error"


def _session_config(options: ImprovementCycleOptions) -> Optional[SessionConfig]:
    if options.history is None:
        return None
    return SessionConfig(
        path=options.history.path,
        auto_save=options.history.auto_save,
        storage=options.history.storage,
        on_auto_save_error=options.history.on_auto_save_error
    )


class ImprovementCycle:
    """Round-by-round driver for one improvement run."""

    def __init__(self, config: ImprovementCycleConfig):
        self.config = config
        options = config.options

        existing = options.session
        if existing is None:
            self._session = create_session(config.initial_prompt, _session_config(options))
            self._prompt: AgentPrompt = config.initial_prompt
            self._round = 0
            self._previous_scores: List[float] = []
            self._total_cost = 0.0
        else:
            history = existing.history
            self._session = existing
            self._prompt = deserialize_prompt(history.current_prompt)
            self._round = len(history.rounds)
            self._previous_scores = [r.avg_score for r in history.rounds]
            self._total_cost = history.total_cost

        self._completed_rounds: List[RoundResult] = []
        self._awaiting: Optional[Tuple[RoundResult, SerializedPrompt, CycleTerminationResult]] = None
        self._state = CycleState.CREATED

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def session(self) -> ImprovementSession:
        return self._session

    @property
    def current_prompt(self) -> AgentPrompt:
        return self._prompt

    def start(self) -> RoundYield:
        """Run the first round."""
        if self._state is not CycleState.CREATED:
            raise InvalidConfigError("Cycle already started", context={"state": self._state.value})

        set_correlation_id(self._session.session_id)
        logger.info(
            "Improvement cycle started",
            session_id=self._session.session_id,
            prompt_id=self._prompt.id,
            prompt_version=self._prompt.version,
            resumed_rounds=self._round,
            test_cases=len(self.config.test_cases)
        )
        return self._step(self._run_round)

    def advance(self, decision: Optional[RoundDecision]) -> Union[RoundYield, ImprovementCycleResult]:
        """
        Apply a decision to the round awaiting one.

        Returns the next round's RoundYield, or the final result once the
        cycle stops. ``None`` is treated as stop.
        """
        if self._state is not CycleState.AWAITING_DECISION:
            raise InvalidConfigError(
                f"Cannot advance cycle in state '{self._state.value}'",
                context={"state": self._state.value, "session_id": self._session.session_id}
            )
        return self._step(lambda: self._handle_decision(decision))

    def _step(self, action):
        try:
            return action()
        except Exception as e:
            self._state = CycleState.ERROR
            # a failure after completion keeps the recorded termination reason
            if not self._session.is_completed:
                self._session.complete(f"Error: {e}")
            logger.error(
                "Improvement cycle failed",
                session_id=self._session.session_id,
                round=self._round,
                error=str(e),
                exception_type=type(e).__name__
            )
            raise

    def _run_round(self) -> RoundYield:
        self._state = CycleState.RUNNING
        self._round += 1

        execution = execute_round(self.config, self._prompt, self.config.options.pricing_config)
        self._total_cost += execution.cost.total

        current_score = execution.report.summary.avg_score
        score_delta = calculate_score_delta(current_score, self._previous_scores)
        snapshot = serialize_prompt(self._prompt)

        round_result = RoundResult(
            round=self._round,
            completed_at=datetime.now(timezone.utc),
            report=execution.report,
            suggestions_generated=execution.improve_result.suggestions,
            suggestions_approved=[],
            prompt_snapshot=snapshot,
            prompt_version_after=self._prompt.version,
            cost=execution.cost,
            score_delta=score_delta
        )
        context = CycleContext(
            current_round=self._round,
            latest_score=current_score,
            previous_scores=list(self._previous_scores),
            total_cost=self._total_cost,
            history=list(self._completed_rounds)
        )
        self._previous_scores.append(current_score)

        termination = check_cycle_termination(self.config.terminate_when, context)
        pending = [s.pending() for s in execution.improve_result.suggestions]

        logger.info(
            "Round completed",
            round=self._round,
            avg_score=current_score,
            score_delta=score_delta,
            round_cost_usd=round(execution.cost.total, 6),
            total_cost_usd=round(self._total_cost, 6),
            suggestions=len(pending),
            terminated=termination.terminated
        )

        self._awaiting = (round_result, snapshot, termination)
        self._state = CycleState.AWAITING_DECISION
        return RoundYield(
            round_result=round_result,
            pending_suggestions=pending,
            termination_check=termination,
            context=context
        )

    def _handle_decision(self, decision: Optional[RoundDecision]) -> Union[RoundYield, ImprovementCycleResult]:
        round_result, snapshot, termination = self._awaiting
        self._awaiting = None

        if decision is None or decision.action == DecisionAction.STOP:
            return self._finish(round_result, snapshot, termination)

        if decision.action == DecisionAction.ROLLBACK and decision.rollback_to_round is not None:
            self._rollback(decision.rollback_to_round)
        else:
            self._apply(round_result, decision.approved_suggestions)

        return self._run_round()

    def _finish(
        self,
        round_result: RoundResult,
        snapshot: SerializedPrompt,
        termination: CycleTerminationResult
    ) -> ImprovementCycleResult:
        reason = termination.reason if termination.terminated else USER_STOP_REASON

        self._session.add_round(round_result, snapshot)
        self._session.complete(reason)
        self._session.close()
        self._completed_rounds.append(round_result)
        self._state = CycleState.COMPLETED

        history = self._session.history
        return ImprovementCycleResult(
            rounds=list(self._completed_rounds),
            final_prompt=deserialize_prompt(history.current_prompt),
            termination_reason=reason,
            total_cost=self._total_cost,
            history=history
        )

    def _rollback(self, to_round: int):
        if to_round < 1 or to_round > len(self._completed_rounds):
            raise InvalidConfigError(
                f"Cannot rollback to round {to_round}: round not found",
                context={"rollback_to_round": to_round, "completed_rounds": len(self._completed_rounds)}
            )

        target = self._completed_rounds[to_round - 1]
        self._prompt = deserialize_prompt(target.prompt_snapshot)
        self._previous_scores = self._previous_scores[:to_round - 1]
        logger.info("Rolled back", to_round=to_round, prompt_version=self._prompt.version)

    def _apply(self, round_result: RoundResult, approved: List[Suggestion]):
        approved = list(approved)
        if approved:
            result = apply_prompt_suggestions(self._prompt, approved, bump=self.config.options.version_bump)
            for skipped in result.skipped:
                logger.warning(
                    "Suggestion skipped",
                    round=round_result.round,
                    suggestion_type=skipped.suggestion.type,
                    reason=skipped.reason
                )
            self._prompt = result.prompt

        updated = round_result.model_copy(update={
            "suggestions_approved": approved,
            "prompt_version_after": self._prompt.version,
        })
        self._session.add_round(updated, serialize_prompt(self._prompt))
        self._completed_rounds.append(updated)


def run_improvement_cycle(
    config: ImprovementCycleConfig
) -> Generator[RoundYield, Optional[RoundDecision], ImprovementCycleResult]:
    """
    Human-in-the-loop improvement cycle.

    Yields a RoundYield after every round and expects a RoundDecision via
    ``send()``. The final ImprovementCycleResult is the generator's return
    value (``StopIteration.value``).

    Example:
        cycle = run_improvement_cycle(config)
        step = next(cycle)
        try:
            while True:
                step = cycle.send(RoundDecision.proceed([s.approve() for s in step.pending_suggestions]))
        except StopIteration as stop:
            result = stop.value
    """
    cycle = ImprovementCycle(config)
    step = cycle.start()
    while isinstance(step, RoundYield):
        decision = yield step
        step = cycle.advance(decision)
    return step


@handle_errors(severity=ErrorSeverity.HIGH)
def run_improvement_cycle_auto(config: ImprovementCycleConfig) -> ImprovementCycleResult:
    """
    Run the cycle unattended, approving every suggestion.

    Stops as soon as a termination condition matches, so at least one
    condition is required.

    Raises:
        InvalidConfigError: no termination conditions configured
    """
    if not config.terminate_when:
        raise InvalidConfigError(
            "run_improvement_cycle_auto requires at least one termination condition",
            context={"terminate_when": []}
        )

    cycle = ImprovementCycle(config)
    with tqdm(
        desc="Improvement rounds",
        unit="round",
        disable=None if config.options.show_progress else True
    ) as progress:
        step = cycle.start()
        while isinstance(step, RoundYield):
            progress.update(1)
            progress.set_postfix(
                score=f"{step.context.latest_score:.1f}",
                cost=f"${step.context.total_cost:.4f}"
            )
            if step.termination_check.terminated:
                decision = RoundDecision.stop()
            else:
                decision = RoundDecision.proceed([s.approve() for s in step.pending_suggestions])
            step = cycle.advance(decision)

    logger.info(
        "Improvement cycle finished",
        session_id=step.history.session_id,
        rounds=len(step.rounds),
        final_version=step.final_prompt.version,
        reason=step.termination_reason,
        total_cost_usd=round(step.total_cost, 6)
    )
    return step
