"""
Tests for the test runner.

The sandbox is replaced with a fake runtime so verdict logic can be checked
without starting interpreters.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from proctorlab.config import ProctorConfig
from proctorlab.grader import Grader, PASSED, FAILED, ERROR, IDLE, CUSTOM_CASE_ID, outputs_match
from proctorlab.models import TestCase
from proctorlab.sandbox import RunResult, RUNTIME_ERROR, TIMEOUT


def cases(*pairs, hidden_from=None):
    return [
        TestCase(id=f"t{i}", input=stdin, expected_output=expected,
                 hidden=hidden_from is not None and i >= hidden_from)
        for i, (stdin, expected) in enumerate(pairs)
    ]


class TestOutputComparison:
    """Test trimmed output comparison."""

    def test_surrounding_whitespace_ignored(self):
        assert outputs_match("  42\n\n", "42")
        assert outputs_match("a b\n", "\ta b ")

    def test_inner_whitespace_significant(self):
        assert not outputs_match("1  2", "1 2")
        assert not outputs_match("1\n2", "1 2")

    def test_empty_matches_empty(self):
        assert outputs_match("", "")
        assert outputs_match("\n", "  ")


class TestRunSuite:
    """Test full-suite runs."""

    def test_all_pass(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: str(int(stdin) * 2) + "\n"
        suite = Grader().run_suite("code", cases(("1", "2"), ("5", "10")))

        assert suite.all_passed
        assert suite.passed_count == 2
        assert [r.verdict for r in suite.results] == [PASSED, PASSED]

    def test_wrong_answer_fails(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: "0"
        suite = Grader().run_suite("code", cases(("1", "2"), ("0", "0")))

        assert not suite.all_passed
        assert [r.verdict for r in suite.results] == [FAILED, PASSED]
        assert suite.results[0].actual_output == "0"

    def test_runtime_error_is_error_verdict(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: RunResult(
            status=RUNTIME_ERROR, stderr="Traceback...", error="NameError: name 'x' is not defined")
        suite = Grader().run_suite("print(x)", cases(("", "1")))

        result = suite.results[0]
        assert result.verdict == ERROR
        assert result.error == "NameError: name 'x' is not defined"
        assert not suite.all_passed

    def test_timeout_is_error_verdict(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: RunResult(status=TIMEOUT, error="Time limit exceeded")
        suite = Grader().run_suite("while True: pass", cases(("", "1")))

        assert suite.results[0].verdict == ERROR

    def test_cases_run_in_order(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: stdin
        Grader().run_suite("code", cases(("a", "a"), ("b", "b"), ("c", "c")))

        assert [stdin for _, stdin in fake_runtime.calls] == ["a", "b", "c"]

    def test_empty_suite_vacuously_passes(self, fake_runtime):
        suite = Grader().run_suite("code", [])

        assert suite.is_empty
        assert suite.all_passed
        assert fake_runtime.calls == []

    def test_limits_come_from_config(self, fake_runtime):
        seen = {}

        class Recorder:
            def run(self, code, stdin="", timeout_sec=2.0, memory_limit_mb=256):
                seen["timeout"] = timeout_sec
                seen["memory"] = memory_limit_mb
                return RunResult(status="success", stdout="")

        from proctorlab.sandbox import set_runtime
        set_runtime(Recorder())
        Grader(ProctorConfig(time_limit_ms=1500, memory_limit_mb=64)).run_suite("x", cases(("", "")))

        assert seen == {"timeout": 1.5, "memory": 64}

    def test_deterministic_verdicts(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: stdin[::-1]
        grader = Grader()
        suite_cases = cases(("abc", "cba"), ("xy", "xy"))

        first = [r.verdict for r in grader.run_suite("code", suite_cases).results]
        second = [r.verdict for r in grader.run_suite("code", suite_cases).results]

        assert first == second == [PASSED, FAILED]


class TestHiddenCases:
    """Test what hidden cases reveal."""

    def test_public_view_hides_details(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: "wrong"
        suite = Grader().run_suite("code", cases(("1", "1"), ("2", "2"), hidden_from=1))

        visible, hidden = suite.public_view()["results"]
        assert visible["actualOutput"] == "wrong"
        assert hidden == {"caseId": "t1", "verdict": FAILED, "hidden": True}

    def test_format_results_omits_hidden_details(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: "wrong"
        test_cases = cases(("1", "secret-expected"), hidden_from=0)
        grader = Grader()
        report = grader.format_results(grader.run_suite("code", test_cases), test_cases, show_details=True)

        assert "[hidden]" in report
        assert "secret-expected" not in report
        assert "Result: 0/1" in report

    def test_format_results_shows_visible_failure(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: "3"
        test_cases = cases(("1 1", "2"))
        grader = Grader()
        report = grader.format_results(grader.run_suite("code", test_cases), test_cases, show_details=True)

        assert "FAILED" in report
        assert "Your output: '3'" in report
        assert "Expected:    '2'" in report

    def test_format_empty_suite_warns(self, fake_runtime):
        grader = Grader()
        assert "no test cases" in grader.format_results(grader.run_suite("code", []))


class TestCustomRun:
    """Test ad-hoc runs against student input."""

    def test_custom_run_is_idle(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: f"got {stdin}\n"
        result = Grader().run_custom("code", "hello")

        assert result.case_id == CUSTOM_CASE_ID
        assert result.verdict == IDLE
        assert result.actual_output == "got hello"

    def test_custom_run_error(self, fake_runtime):
        fake_runtime.handler = lambda code, stdin: RunResult(
            status=RUNTIME_ERROR, stdout="partial\n", error="ValueError: nope")
        grader = Grader()
        result = grader.run_custom("code", "")

        assert result.verdict == ERROR
        assert result.actual_output == "partial"
        assert "ValueError: nope" in grader.format_custom(result)
