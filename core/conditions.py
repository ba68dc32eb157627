"""
Termination conditions for improvement cycles.

Conditions are plain frozen dataclasses built through validating factories
(``target_score``, ``max_rounds``, ...) and combined with ``and_``, ``or_``
and ``not_``. ``check_cycle_termination`` evaluates a list of conditions with
OR semantics: the first condition that terminates wins.
"""
import asyncio
import inspect
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Awaitable, Callable, List, Optional, Union

from models.cycle import CycleContext, CycleTerminationResult
from utils.error_handling import EvalError, EvalErrorCode, InvalidConfigError

CheckFn = Callable[[CycleContext], Union[bool, Awaitable[bool]]]

DEFAULT_CUSTOM_DESCRIPTION = "Custom condition"


@dataclass(frozen=True)
class TargetScoreCondition:
    threshold: float
    type: str = field(default="targetScore", init=False)


@dataclass(frozen=True)
class MaxRoundsCondition:
    count: int
    type: str = field(default="maxRounds", init=False)


@dataclass(frozen=True)
class NoImprovementCondition:
    consecutive_rounds: int
    min_delta: Optional[float] = None
    type: str = field(default="noImprovement", init=False)


@dataclass(frozen=True)
class MaxCostCondition:
    max_usd: float
    type: str = field(default="maxCost", init=False)


@dataclass(frozen=True)
class CustomCycleCondition:
    check: CheckFn
    description: Optional[str] = None
    type: str = field(default="custom", init=False)


TerminationCondition = Union[
    TargetScoreCondition,
    MaxRoundsCondition,
    NoImprovementCondition,
    MaxCostCondition,
    CustomCycleCondition,
]


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_finite_number(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _fmt(value: float) -> str:
    """Render whole numbers without a trailing .0"""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# Factories

def target_score(threshold: float) -> TargetScoreCondition:
    """Terminate once the latest average score reaches ``threshold`` (0-100)."""
    if not _is_finite_number(threshold):
        raise InvalidConfigError("threshold must be a finite number", context={"threshold": threshold})
    if threshold < 0 or threshold > 100:
        raise InvalidConfigError("threshold must be between 0 and 100", context={"threshold": threshold})
    return TargetScoreCondition(threshold=threshold)


def max_rounds(count: int) -> MaxRoundsCondition:
    """Terminate once ``count`` rounds have run."""
    if not _is_positive_int(count):
        raise InvalidConfigError("count must be a positive integer", context={"count": count})
    return MaxRoundsCondition(count=count)


def no_improvement(consecutive_rounds: int, min_delta: Optional[float] = None) -> NoImprovementCondition:
    """
    Terminate after ``consecutive_rounds`` rounds whose score delta is at most
    ``min_delta`` (0 when omitted).
    """
    if not _is_positive_int(consecutive_rounds):
        raise InvalidConfigError(
            "consecutive_rounds must be a positive integer",
            context={"consecutive_rounds": consecutive_rounds}
        )
    if min_delta is not None and (not _is_finite_number(min_delta) or min_delta < 0):
        raise InvalidConfigError(
            "min_delta must be a non-negative finite number",
            context={"min_delta": min_delta}
        )
    return NoImprovementCondition(consecutive_rounds=consecutive_rounds, min_delta=min_delta)


def max_cost(max_usd: float) -> MaxCostCondition:
    """Terminate once the accumulated cost reaches ``max_usd``."""
    if not _is_finite_number(max_usd) or max_usd <= 0:
        raise InvalidConfigError("max_usd must be a positive finite number", context={"max_usd": max_usd})
    return MaxCostCondition(max_usd=max_usd)


def custom_condition(check: CheckFn, description: Optional[str] = None) -> CustomCycleCondition:
    """Terminate when ``check(ctx)`` returns True; coroutines are awaited."""
    return CustomCycleCondition(check=check, description=description)


def _composite_description(kind: str, conditions) -> str:
    if not conditions:
        return f"{kind}() - empty, never terminates"
    return f"{kind}({', '.join(c.type for c in conditions)})"


def and_(*conditions: TerminationCondition) -> CustomCycleCondition:
    """Terminate when every inner condition terminates (short-circuits)."""
    inner = list(conditions)

    def check(ctx: CycleContext) -> bool:
        if not inner:
            return False
        return all(check_cycle_condition(c, ctx).terminated for c in inner)

    return CustomCycleCondition(check=check, description=_composite_description("and", inner))


def or_(*conditions: TerminationCondition) -> CustomCycleCondition:
    """Terminate when any inner condition terminates (short-circuits)."""
    inner = list(conditions)

    def check(ctx: CycleContext) -> bool:
        return any(check_cycle_condition(c, ctx).terminated for c in inner)

    return CustomCycleCondition(check=check, description=_composite_description("or", inner))


def not_(condition: TerminationCondition) -> CustomCycleCondition:
    def check(ctx: CycleContext) -> bool:
        return not check_cycle_condition(condition, ctx).terminated

    return CustomCycleCondition(check=check, description=f"not({condition.type})")


# Checks

def _check_target_score(condition: TargetScoreCondition, ctx: CycleContext) -> CycleTerminationResult:
    if ctx.latest_score >= condition.threshold:
        return CycleTerminationResult(
            terminated=True,
            matched_condition=condition,
            reason=f"Target score {_fmt(condition.threshold)} reached (current: {_fmt(ctx.latest_score)})"
        )
    return CycleTerminationResult(
        terminated=False,
        reason=f"Score {_fmt(ctx.latest_score)} below target {_fmt(condition.threshold)}"
    )


def _check_max_rounds(condition: MaxRoundsCondition, ctx: CycleContext) -> CycleTerminationResult:
    if ctx.current_round >= condition.count:
        return CycleTerminationResult(
            terminated=True,
            matched_condition=condition,
            reason=f"Maximum rounds reached ({condition.count})"
        )
    return CycleTerminationResult(
        terminated=False,
        reason=f"Round {ctx.current_round} of {condition.count}"
    )


def _check_no_improvement(condition: NoImprovementCondition, ctx: CycleContext) -> CycleTerminationResult:
    min_delta = condition.min_delta if condition.min_delta is not None else 0
    count = 0
    for round_result in reversed(ctx.history):
        if round_result.score_delta is None or round_result.score_delta > min_delta:
            break
        count += 1

    round_word = "round" if count == 1 else "rounds"
    if count >= condition.consecutive_rounds:
        return CycleTerminationResult(
            terminated=True,
            matched_condition=condition,
            reason=f"No improvement for {count} consecutive {round_word}"
        )
    return CycleTerminationResult(
        terminated=False,
        reason=f"{count} {round_word} without improvement (need {condition.consecutive_rounds})"
    )


def _check_max_cost(condition: MaxCostCondition, ctx: CycleContext) -> CycleTerminationResult:
    if ctx.total_cost >= condition.max_usd:
        return CycleTerminationResult(
            terminated=True,
            matched_condition=condition,
            reason=f"Cost limit exceeded (${ctx.total_cost:.2f} >= ${condition.max_usd:.2f})"
        )
    return CycleTerminationResult(
        terminated=False,
        reason=f"Cost ${ctx.total_cost:.2f} under limit ${condition.max_usd:.2f}"
    )


def _await_check(awaitable: Awaitable[bool]) -> Any:
    """Await a check's result, on a worker thread if this thread already runs a loop."""
    async def _await():
        return await awaitable

    coro = _await()
    try:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)
        with ThreadPoolExecutor(max_workers=1) as executor:
            return executor.submit(asyncio.run, coro).result()
    except BaseException:
        coro.close()
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise


def _run_check(check: CheckFn, ctx: CycleContext) -> bool:
    result = check(ctx)
    if inspect.isawaitable(result):
        result = _await_check(result)
    return bool(result)


def _check_custom(condition: CustomCycleCondition, ctx: CycleContext) -> CycleTerminationResult:
    description = condition.description if condition.description is not None else DEFAULT_CUSTOM_DESCRIPTION
    try:
        met = _run_check(condition.check, ctx)
    except Exception as e:
        return CycleTerminationResult(terminated=False, reason=f"{description} check failed: {e}")

    if met:
        return CycleTerminationResult(terminated=True, matched_condition=condition, reason=f"{description} met")
    return CycleTerminationResult(terminated=False, reason=f"{description} not met")


def check_cycle_condition(condition: TerminationCondition, ctx: CycleContext) -> CycleTerminationResult:
    """Evaluate a single condition against the cycle context."""
    if isinstance(condition, TargetScoreCondition):
        return _check_target_score(condition, ctx)
    if isinstance(condition, MaxRoundsCondition):
        return _check_max_rounds(condition, ctx)
    if isinstance(condition, NoImprovementCondition):
        return _check_no_improvement(condition, ctx)
    if isinstance(condition, MaxCostCondition):
        return _check_max_cost(condition, ctx)
    if isinstance(condition, CustomCycleCondition):
        return _check_custom(condition, ctx)

    raise EvalError(
        f"Unknown condition type: {condition!r}",
        code=EvalErrorCode.UNKNOWN_ERROR,
        context={"condition": repr(condition)}
    )


def check_cycle_termination(
    conditions: List[TerminationCondition],
    ctx: CycleContext
) -> CycleTerminationResult:
    """Return the first terminating result, or a non-terminating summary."""
    if not conditions:
        return CycleTerminationResult(terminated=False, reason="No termination conditions specified")

    for condition in conditions:
        result = check_cycle_condition(condition, ctx)
        if result.terminated:
            return result

    return CycleTerminationResult(terminated=False, reason="No termination conditions met")
