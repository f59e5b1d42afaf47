"""
Grader module for running test cases against student code.

Provides the Grader class which drives the sandbox across a list of test
cases, compares trimmed output with the expected output and aggregates the
verdicts.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import ProctorConfig
from .messages import msg
from .models import TestCase
from .sandbox import RunResult, run_code


PASSED = "passed"
FAILED = "failed"
ERROR = "error"
IDLE = "idle"  # ad-hoc run, nothing to compare against

CUSTOM_CASE_ID = "custom"


@dataclass
class CaseResult:
    """Verdict for a single test case."""
    case_id: str
    verdict: str
    actual_output: Optional[str] = None
    error: Optional[str] = None
    hidden: bool = False
    elapsed_ms: int = 0

    @property
    def passed(self) -> bool:
        return self.verdict == PASSED

    def public_view(self) -> Dict[str, Any]:
        """Result as shown to the student; hidden cases reveal only the verdict."""
        view = {"caseId": self.case_id, "verdict": self.verdict, "hidden": self.hidden}
        if not self.hidden:
            view["actualOutput"] = self.actual_output
            view["error"] = self.error
        return view


@dataclass
class SuiteResult:
    """Ordered verdicts of a full-suite run plus the aggregate."""
    results: List[CaseResult] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        # vacuously True for an empty suite; callers needing cases check is_empty
        return all(r.passed for r in self.results)

    @property
    def is_empty(self) -> bool:
        return len(self.results) == 0

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def total(self) -> int:
        return len(self.results)

    def public_view(self) -> Dict[str, Any]:
        return {
            "allPassed": self.all_passed,
            "results": [r.public_view() for r in self.results],
        }


def outputs_match(actual: str, expected: str) -> bool:
    """Exact string equality after trimming surrounding whitespace."""
    return actual.strip() == expected.strip()


class Grader:
    """Handles test case execution and output validation."""

    def __init__(self, config: Optional[ProctorConfig] = None):
        self.config = config or ProctorConfig.default()

    def _run(self, code: str, stdin: str) -> RunResult:
        return run_code(
            code,
            stdin,
            self.config.time_limit_ms / 1000.0,
            self.config.memory_limit_mb
        )

    # ===== TEST EXECUTION =====

    def run_case(self, code: str, test_case: TestCase) -> CaseResult:
        """Run one test case and compare its output."""
        result = self._run(code, test_case.input or "")

        if not result.ok:
            return CaseResult(
                case_id=test_case.id,
                verdict=ERROR,
                error=result.error,
                hidden=test_case.hidden,
                elapsed_ms=result.elapsed_ms
            )

        actual = result.stdout.strip()
        verdict = PASSED if outputs_match(actual, test_case.expected_output or "") else FAILED
        return CaseResult(
            case_id=test_case.id,
            verdict=verdict,
            actual_output=actual,
            hidden=test_case.hidden,
            elapsed_ms=result.elapsed_ms
        )

    def run_suite(self, code: str, test_cases: List[TestCase]) -> SuiteResult:
        """
        Run every test case in order.

        Args:
            code: Student source code
            test_cases: Ordered list of test cases

        Returns:
            SuiteResult with one CaseResult per test case
        """
        return SuiteResult(results=[self.run_case(code, tc) for tc in test_cases])

    def run_custom(self, code: str, stdin: str) -> CaseResult:
        """Run the code once against student-provided input without grading it."""
        result = self._run(code, stdin)
        if not result.ok:
            return CaseResult(
                case_id=CUSTOM_CASE_ID,
                verdict=ERROR,
                actual_output=result.stdout.strip() or None,
                error=result.error,
                elapsed_ms=result.elapsed_ms
            )
        return CaseResult(
            case_id=CUSTOM_CASE_ID,
            verdict=IDLE,
            actual_output=result.stdout.strip(),
            elapsed_ms=result.elapsed_ms
        )

    # ===== UTILITY METHODS =====

    def format_results(
        self,
        suite: SuiteResult,
        test_cases: Optional[List[TestCase]] = None,
        show_details: bool = False
    ) -> str:
        """
        Format suite results for display to the student.

        Args:
            suite: Result of run_suite
            test_cases: The cases that were run, used to show inputs and expected output
            show_details: If True, show errors and an output comparison for visible failures

        Returns:
            Formatted string for terminal display
        """
        if suite.is_empty:
            return msg("grader_no_cases")

        cases_by_id = {tc.id: tc for tc in (test_cases or [])}
        lines = [msg("grader_running_tests", total=suite.total)]

        for num, result in enumerate(suite.results, start=1):
            if result.verdict == PASSED:
                line = msg("grader_test_passed", num=num, ms=result.elapsed_ms)
            elif result.verdict == FAILED:
                line = msg("grader_test_failed", num=num)
            else:
                line = msg("grader_test_error", num=num)
            if result.hidden:
                line += msg("grader_hidden_suffix")
            lines.append(line)

            if result.passed or result.hidden or not show_details:
                continue

            if result.error:
                lines.append(msg("grader_error_label", text=result.error[:200]))

            test_case = cases_by_id.get(result.case_id)
            if test_case is not None:
                lines.append(msg("grader_input_label", text=repr(test_case.input)[:100]))
            if result.verdict == FAILED:
                lines.append(msg("grader_student_output", output=repr(result.actual_output)[:100]))
                if test_case is not None:
                    lines.append(msg("grader_expected_output", output=repr(test_case.expected_output.strip())[:100]))

        lines.append("")
        lines.append(msg("grader_result_summary", passed=suite.passed_count, total=suite.total))
        return "\n".join(lines)

    def format_custom(self, result: CaseResult) -> str:
        """Format an ad-hoc run for display."""
        lines = [msg("grader_custom_run", ms=result.elapsed_ms), msg("grader_output_label")]
        lines.append(result.actual_output if result.actual_output else msg("grader_no_output"))
        if result.error:
            lines.append(msg("grader_error_label", text=result.error[:200]))
        return "\n".join(lines)
