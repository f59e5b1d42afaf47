"""
Tests for the student command line runner.

The runner is driven with scripted input against a plain JSON bank in a
temporary directory; the sandbox is replaced by a fake runtime.
"""

import json
import sys
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from proctorlab.bank import CourseBank
from proctorlab.cli import StudentRunner
from proctorlab.models import Assessment, LabExperiment, TestCase

from conftest import mcq


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    bank = CourseBank(
        version="1",
        labs=[LabExperiment(
            id="echo", title="Echo", starter_code="# start\n",
            test_cases=[TestCase(id="t1", input="hi", expected_output="hi")]
        )],
        assessments=[Assessment(
            id="quiz", title="Quiz", duration_minutes=5,
            question_bank=[mcq("m1", correct=1, points=5)],
            random_mcq_count=1, random_coding_count=0
        )]
    )
    (tmp_path / "course.json").write_text(json.dumps(bank.to_dict()), encoding="utf-8")
    (tmp_path / "config.json").write_text(json.dumps({"data_dir": "data"}), encoding="utf-8")
    return tmp_path


def run_cli(workspace, *command, inputs=()):
    argv = ["--bank", str(workspace / "course.json"), "--config", str(workspace / "config.json"),
            "--user", "u1", "--name", "Ada", "--class-id", "10A", "--environment", "permissive", *command]
    with patch('builtins.input', side_effect=list(inputs)):
        return StudentRunner().run(argv)


class TestListCommand:
    """Test the list sub-command."""

    def test_lists_bank_content(self, workspace, capsys):
        assert run_cli(workspace, "list") == 0

        out = capsys.readouterr().out
        assert "echo: Echo" in out
        assert "quiz: Quiz" in out

    def test_missing_bank(self, workspace, capsys):
        argv = ["--bank", str(workspace / "absent.json"), "--config", str(workspace / "config.json"), "list"]

        assert StudentRunner().run(argv) == 1
        assert "failed to load the course bank" in capsys.readouterr().out


class TestLabCommands:
    """Test the lab command loop."""

    def test_code_file_created(self, workspace, fake_runtime):
        assert run_cli(workspace, "lab", "echo", inputs=["exit"]) == 0

        assert (workspace / "echo.py").read_text(encoding="utf-8") == "# start\n"

    def test_submit_passing_solution(self, workspace, fake_runtime, capsys):
        fake_runtime.handler = lambda code, stdin: stdin if "print(input())" in code else ""
        (workspace / "solution.py").write_text("print(input())", encoding="utf-8")

        run_cli(workspace, "lab", "echo", inputs=["load solution.py", "submit", "exit"])

        assert "has been saved" in capsys.readouterr().out
        saved = json.loads((workspace / "data" / "submissions" / "u1" / "echo.json").read_text(encoding="utf-8"))
        assert saved["code"] == "print(input())"
        assert saved["classId"] == "10A"

    def test_submit_failing_solution(self, workspace, fake_runtime, capsys):
        fake_runtime.handler = lambda code, stdin: "nope"

        run_cli(workspace, "lab", "echo", inputs=["submit", "exit"])

        assert "Validation failed" in capsys.readouterr().out
        assert not (workspace / "data" / "submissions").exists()

    def test_unknown_lab(self, workspace, capsys):
        assert run_cli(workspace, "lab", "missing") == 1
        assert "not found" in capsys.readouterr().out


class TestAssessmentCommands:
    """Test the assessment command loop."""

    def test_manual_submit(self, workspace, capsys):
        run_cli(workspace, "assessment", "quiz", inputs=["answer B", "submit", "y"])

        out = capsys.readouterr().out
        assert "Final score: 5/5" in out
        saved = json.loads((workspace / "data" / "assessment_submissions" / "u1" / "quiz.json").read_text(encoding="utf-8"))
        assert saved["answers"] == {"m1": 1}
        assert saved["score"] == 5

    def test_exit_forces_submission(self, workspace):
        run_cli(workspace, "assessment", "quiz", inputs=["answer A", "exit", "y"])

        saved = json.loads((workspace / "data" / "assessment_submissions" / "u1" / "quiz.json").read_text(encoding="utf-8"))
        assert saved["answers"] == {"m1": 0}
        assert saved["score"] == 0

    def test_exit_cancelled_keeps_session(self, workspace):
        run_cli(workspace, "assessment", "quiz", inputs=["exit", "n", "submit", "y"])

        assert (workspace / "data" / "assessment_submissions" / "u1" / "quiz.json").exists()

    def test_session_log_written(self, workspace):
        run_cli(workspace, "assessment", "quiz", inputs=["submit", "y"])

        log = (workspace / "data" / "session.log").read_text(encoding="utf-8")
        assert "SESSION_LAUNCH" in log
        assert "SUBMISSION_SAVED" in log

    def test_misconfigured_assessment_refused(self, workspace, capsys):
        data = json.loads((workspace / "course.json").read_text(encoding="utf-8"))
        data["assessments"][0]["randomMcqCount"] = 4
        (workspace / "course.json").write_text(json.dumps(data), encoding="utf-8")

        assert run_cli(workspace, "assessment", "quiz") == 1
        assert "misconfigured" in capsys.readouterr().out

    def test_empty_draw_refused(self, workspace, capsys):
        data = json.loads((workspace / "course.json").read_text(encoding="utf-8"))
        data["assessments"][0]["randomMcqCount"] = 0
        (workspace / "course.json").write_text(json.dumps(data), encoding="utf-8")

        assert run_cli(workspace, "assessment", "quiz") == 1
        assert "misconfigured" in capsys.readouterr().out
        assert not (workspace / "data" / "assessment_submissions").exists()

    def test_question_commands_without_questions(self, capsys):
        runner = StudentRunner()
        runner.assessment_session = Mock(current_question=None)

        runner.assess_answer("A")
        runner.assess_load(None)
        runner.assess_test()

        assert capsys.readouterr().out.count("This attempt has no questions.") == 3
        runner.assessment_session.answer.assert_not_called()
        runner.assessment_session.run_practice.assert_not_called()
