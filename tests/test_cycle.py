"""Tests for the improvement cycle state machine and drivers."""
import asyncio
import json
import logging

import pytest

from conftest import FakeAgent, ReplaceImprover
from core.conditions import custom_condition, max_cost, max_rounds, no_improvement, target_score
from core.cycle import (
    CycleState,
    ImprovementCycle,
    run_improvement_cycle,
    run_improvement_cycle_auto,
)
from core.history import SessionConfig, resume_session
from core.options import HistoryConfig
from models import ImprovementCycleResult, RoundDecision, RoundYield
from utils.error_handling import InvalidConfigError
from utils.pricing import PricingConfig


def approve_all(step: RoundYield) -> RoundDecision:
    return RoundDecision.proceed([s.approve() for s in step.pending_suggestions])


def drive(generator, decisions):
    """Feed decisions to a cycle generator; return (yields, result)."""
    yields = [next(generator)]
    try:
        for decide in decisions:
            yields.append(generator.send(decide(yields[-1])))
    except StopIteration as stop:
        return yields, stop.value
    raise AssertionError("cycle did not finish")


class TestHumanInTheLoop:

    def test_continue_applies_approved_suggestions(self, make_config):
        config = make_config([60, 70, 80], terminate_when=[target_score(80)])
        yields, result = drive(
            run_improvement_cycle(config),
            [approve_all, approve_all, lambda step: RoundDecision.stop()]
        )

        first, second, third = yields
        assert first.round_result.round == 1
        assert first.round_result.score_delta is None
        assert all(not s.approved for s in first.pending_suggestions)
        assert not first.termination_check.terminated

        assert second.round_result.prompt_snapshot.system == "You are a precise assistant."
        assert second.round_result.prompt_snapshot.version == "1.0.1"
        assert second.round_result.score_delta == pytest.approx(10)
        assert second.context.previous_scores == [60]
        assert "precise" in config.judge.seen_outputs[1]

        assert third.termination_check.terminated
        assert isinstance(result, ImprovementCycleResult)
        assert result.termination_reason == "Target score 80 reached (current: 80)"
        assert [r.round for r in result.rounds] == [1, 2, 3]
        assert result.final_prompt.version == "1.0.1"
        assert result.final_prompt.system == "You are a precise assistant."

    def test_history_records_approvals_and_versions(self, make_config):
        config = make_config([60, 70])
        _, result = drive(run_improvement_cycle(config), [approve_all, lambda step: None])

        first, second = result.history.rounds
        assert len(first.suggestions_approved) == 1
        assert first.prompt_version_after == "1.0.1"
        assert first.prompt_snapshot.version == "1.0.0"
        # the round stopped on keeps its pre-change snapshot
        assert second.suggestions_approved == []
        assert second.prompt_version_after == "1.0.1"
        assert result.history.completed_at is not None

    def test_skipped_suggestions_do_not_bump(self, make_config):
        config = make_config([60, 70, 80])
        yields, result = drive(
            run_improvement_cycle(config),
            [approve_all, approve_all, lambda step: RoundDecision.stop()]
        )
        # second round's suggestion no longer matches the system prompt
        assert yields[2].round_result.prompt_snapshot.version == "1.0.1"
        assert result.final_prompt.version == "1.0.1"

    def test_none_decision_stops(self, make_config, base_prompt):
        config = make_config([55])
        _, result = drive(run_improvement_cycle(config), [lambda step: None])
        assert result.termination_reason == "User requested stop"
        assert len(result.rounds) == 1
        assert result.final_prompt == base_prompt
        assert result.history.termination_reason == "User requested stop"

    def test_unapproved_suggestions_leave_prompt_unchanged(self, make_config):
        config = make_config([60, 65])
        yields, result = drive(
            run_improvement_cycle(config),
            [lambda step: RoundDecision.proceed(step.pending_suggestions), lambda step: RoundDecision.stop()]
        )
        assert yields[1].round_result.prompt_snapshot.version == "1.0.0"
        assert result.final_prompt.system == "You are a helpful assistant."

    def test_context_history_excludes_current_round(self, make_config):
        config = make_config([70], terminate_when=[no_improvement(2)], improver=ReplaceImprover("absent", "x"))
        cycle = ImprovementCycle(config)
        step = cycle.start()
        rounds_seen = 0
        while isinstance(step, RoundYield):
            rounds_seen += 1
            assert len(step.context.history) == step.round_result.round - 1
            step = cycle.advance(RoundDecision.stop() if step.termination_check.terminated else approve_all(step))
        # deltas: None, 0, 0 -> two flat rounds visible only from round 4
        assert rounds_seen == 4
        assert step.termination_reason == "No improvement for 2 consecutive rounds"

    def test_async_condition_inside_async_caller(self, make_config):
        async def reached_target(ctx):
            await asyncio.sleep(0)
            return ctx.latest_score >= 70

        config = make_config([60, 75], terminate_when=[custom_condition(reached_target, "Async target")])

        async def review_rounds():
            cycle = run_improvement_cycle(config)
            steps = [next(cycle)]
            await asyncio.sleep(0)
            steps.append(cycle.send(approve_all(steps[0])))
            return steps

        first, second = asyncio.run(review_rounds())
        assert not first.termination_check.terminated
        assert first.termination_check.reason == "No termination conditions met"
        assert second.termination_check.terminated
        assert second.termination_check.reason == "Async target met"


class TestRollback:

    def test_rollback_restores_snapshot(self, make_config):
        config = make_config([60, 50, 70])
        yields, result = drive(
            run_improvement_cycle(config),
            [approve_all, lambda step: RoundDecision.rollback(1), lambda step: RoundDecision.stop()]
        )

        second, third = yields[1], yields[2]
        assert second.round_result.prompt_snapshot.version == "1.0.1"
        assert third.round_result.round == 3
        assert third.round_result.prompt_snapshot.version == "1.0.0"
        assert third.round_result.prompt_snapshot.system == "You are a helpful assistant."
        assert third.round_result.score_delta is None
        assert third.context.previous_scores == []

        assert [r.round for r in result.history.rounds] == [1, 3]
        assert result.final_prompt.version == "1.0.0"

    def test_rollback_without_target_continues(self, make_config):
        config = make_config([60, 70])
        yields, _ = drive(
            run_improvement_cycle(config),
            [lambda step: RoundDecision(action="rollback"), lambda step: RoundDecision.stop()]
        )
        assert yields[1].round_result.round == 2
        assert yields[1].context.previous_scores == [60]

    def test_invalid_rollback_errors_cycle(self, make_config):
        cycle = ImprovementCycle(make_config([60]))
        cycle.start()
        with pytest.raises(InvalidConfigError, match="Cannot rollback to round 2: round not found"):
            cycle.advance(RoundDecision.rollback(2))

        assert cycle.state is CycleState.ERROR
        assert cycle.session.history.termination_reason == "Error: Cannot rollback to round 2: round not found"
        with pytest.raises(InvalidConfigError):
            cycle.advance(RoundDecision.stop())


class TestStateMachine:

    def test_states(self, make_config):
        cycle = ImprovementCycle(make_config([60]))
        assert cycle.state is CycleState.CREATED
        cycle.start()
        assert cycle.state is CycleState.AWAITING_DECISION
        cycle.advance(RoundDecision.stop())
        assert cycle.state is CycleState.COMPLETED
        with pytest.raises(InvalidConfigError):
            cycle.advance(RoundDecision.stop())
        with pytest.raises(InvalidConfigError):
            cycle.start()

    def test_round_error_completes_session_and_reraises(self, make_config):
        config = make_config([60])

        def broken_factory(prompt):
            raise RuntimeError("agent factory exploded")

        config.create_agent = broken_factory
        cycle = ImprovementCycle(config)
        with pytest.raises(RuntimeError, match="exploded"):
            cycle.start()
        assert cycle.state is CycleState.ERROR
        assert cycle.session.history.termination_reason == "Error: agent factory exploded"

    def test_failure_after_completion_keeps_reason(self, make_config, monkeypatch):
        cycle = ImprovementCycle(make_config([60]))
        cycle.start()

        def broken_close():
            raise OSError("worker shutdown failed")

        monkeypatch.setattr(cycle.session, "close", broken_close)
        with pytest.raises(OSError):
            cycle.advance(RoundDecision.stop())

        assert cycle.state is CycleState.ERROR
        assert cycle.session.history.termination_reason == "User requested stop"

    def test_agent_failures_score_zero(self, make_config):
        config = make_config([90])
        config.create_agent = lambda prompt: FakeAgent(prompt, fail_on={"What is 2+2?"})
        step = ImprovementCycle(config).start()
        result = step.round_result.report.results[0]
        assert result.error == "agent failed on What is 2+2?"
        assert result.overall_score == 0
        assert step.round_result.report.summary.failed == 1


class TestAutoDriver:

    def test_runs_until_max_rounds(self, make_config):
        result = run_improvement_cycle_auto(make_config([50, 60, 70], terminate_when=[max_rounds(3)]))
        assert len(result.rounds) == 3
        assert result.termination_reason == "Maximum rounds reached (3)"
        assert result.final_prompt.system == "You are a precise assistant."
        assert result.final_prompt.version == "1.0.1"

    def test_single_round(self, make_config):
        result = run_improvement_cycle_auto(make_config([50], terminate_when=[max_rounds(1)]))
        assert len(result.rounds) == 1
        assert result.final_prompt.version == "1.0.0"

    def test_cost_limit(self, make_config):
        config = make_config(
            [50],
            terminate_when=[max_cost(0.001)],
            pricing_config=PricingConfig()
        )
        result = run_improvement_cycle_auto(config)
        # one round costs 0.00087 (agent 0.00045 + judge 0.00042)
        assert len(result.rounds) == 2
        assert result.total_cost == pytest.approx(0.00174)
        assert result.rounds[0].cost.agent == pytest.approx(0.00045)
        assert result.rounds[0].cost.judge == pytest.approx(0.00042)
        assert result.termination_reason.startswith("Cost limit exceeded")

    def test_requires_termination_condition(self, make_config):
        with pytest.raises(InvalidConfigError):
            run_improvement_cycle_auto(make_config([50]))

    def test_logs_each_round(self, make_config, caplog):
        caplog.set_level(logging.INFO, logger="prompt_cycle")
        run_improvement_cycle_auto(make_config([50, 60], terminate_when=[max_rounds(2)]))
        messages = [r.getMessage() for r in caplog.records]
        assert messages.count("Round completed") == 2
        assert "Improvement cycle finished" in messages


class TestPersistenceAndResume:

    def test_history_saved_to_path(self, make_config, tmp_path):
        path = str(tmp_path / "history" / "run.json")
        config = make_config([50, 60], terminate_when=[max_rounds(2)], history=HistoryConfig(path=path, auto_save=True))
        result = run_improvement_cycle_auto(config)

        with open(path) as f:
            saved = json.load(f)
        assert saved["sessionId"] == result.history.session_id
        assert len(saved["rounds"]) == 2
        assert saved["terminationReason"] == "Maximum rounds reached (2)"
        assert saved["currentPrompt"]["version"] == "1.0.1"

    def test_resume_continues_round_numbering(self, make_config, tmp_path):
        path = str(tmp_path / "run.json")
        run_improvement_cycle_auto(
            make_config([50, 60], terminate_when=[max_rounds(2)], history=HistoryConfig(path=path, auto_save=True))
        )

        session = resume_session(path, SessionConfig(auto_save=True))
        config = make_config([75], terminate_when=[max_rounds(3)], session=session)
        cycle = ImprovementCycle(config)
        step = cycle.start()

        assert step.round_result.round == 3
        assert step.context.previous_scores == [50, 60]
        assert step.round_result.score_delta == pytest.approx(15)
        assert step.round_result.prompt_snapshot.version == "1.0.1"
        assert step.termination_check.terminated

        result = cycle.advance(RoundDecision.stop())
        assert [r.round for r in result.history.rounds] == [1, 2, 3]
        with open(path) as f:
            assert len(json.load(f)["rounds"]) == 3
