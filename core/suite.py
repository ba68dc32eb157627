"""Default eval suite - runs test cases through an agent and a judge."""
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional

from tqdm import tqdm

from config.cycle_config import CycleConfig
from core.interfaces import Agent, Judge
from models.prompt import AgentPrompt
from models.report import AgentOutput, EvalReport, EvalTestCase, EvalTestResult
from utils.error_handling import InvalidConfigError
from utils.logging_utils import get_logger

logger = get_logger()


class EvalSuite:
    """
    Runs every test case through the agent, then scores it with the judge.

    Agent failures are recorded on the test result (score 0, not passed) so
    one bad input does not abort the round. Judge failures propagate.
    """

    def __init__(
        self,
        max_parallel_tests: Optional[int] = None,
        enable_parallel: Optional[bool] = None,
        show_progress: Optional[bool] = None
    ):
        self.max_parallel_tests = max_parallel_tests or CycleConfig.MAX_PARALLEL_TESTS
        self.enable_parallel = enable_parallel if enable_parallel is not None else CycleConfig.ENABLE_PARALLEL_TESTS
        self.show_progress = show_progress if show_progress is not None else CycleConfig.SHOW_PROGRESS

        if self.max_parallel_tests < 1:
            raise InvalidConfigError(
                "max_parallel_tests must be a positive integer",
                context={"max_parallel_tests": self.max_parallel_tests}
            )

    def run(
        self,
        agent: Agent,
        judge: Judge,
        test_cases: List[EvalTestCase],
        prompt: AgentPrompt,
        agent_description: Optional[str] = None
    ) -> EvalReport:
        """
        Evaluate a prompt's agent on all test cases.

        Returns:
            EvalReport with per-test results in input order
        """
        if self.enable_parallel and len(test_cases) > 1:
            results = self._run_parallel(agent, judge, test_cases, agent_description)
        else:
            results = self._run_sequential(agent, judge, test_cases, agent_description)

        report = EvalReport.from_results(results, prompt_version=prompt.version)
        logger.debug(
            "Eval suite finished",
            prompt_id=prompt.id,
            prompt_version=prompt.version,
            total_tests=report.summary.total_tests,
            avg_score=report.summary.avg_score
        )
        return report

    def _run_sequential(self, agent, judge, test_cases, agent_description) -> List[EvalTestResult]:
        return [
            self._run_single_test(agent, judge, test_case, agent_description)
            for test_case in tqdm(
                test_cases,
                desc="Running test cases",
                unit="test",
                leave=False,
                disable=None if self.show_progress else True  # None auto-detects TTY
            )
        ]

    def _run_parallel(self, agent, judge, test_cases, agent_description) -> List[EvalTestResult]:
        results: List[Optional[EvalTestResult]] = [None] * len(test_cases)

        with ThreadPoolExecutor(max_workers=self.max_parallel_tests) as executor:
            future_to_index = {
                executor.submit(self._run_single_test, agent, judge, test_case, agent_description): idx
                for idx, test_case in enumerate(test_cases)
            }
            for future in as_completed(future_to_index):
                results[future_to_index[future]] = future.result()

        return results

    def _run_single_test(
        self,
        agent: Agent,
        judge: Judge,
        test_case: EvalTestCase,
        agent_description: Optional[str]
    ) -> EvalTestResult:
        start = time.perf_counter()
        try:
            agent_output = agent.execute(test_case.input)
        except Exception as e:
            logger.warning(
                "Agent execution failed",
                test_case_id=test_case.id,
                error=str(e),
                exception_type=type(e).__name__
            )
            return EvalTestResult(
                test_case=test_case,
                error=str(e),
                latency_ms=(time.perf_counter() - start) * 1000
            )
        latency_ms = (time.perf_counter() - start) * 1000

        if not isinstance(agent_output, AgentOutput):
            agent_output = AgentOutput(output=agent_output)

        judge_result = judge.evaluate(test_case, agent_output, agent_description)

        return EvalTestResult(
            test_case=test_case,
            output=agent_output.output,
            verdicts=judge_result.verdicts,
            overall_score=judge_result.overall_score,
            passed=judge_result.passed,
            latency_ms=latency_ms,
            agent_metadata=agent_output.metadata,
            judge_metadata=judge_result.metadata
        )
