"""Shared fakes for the lab and assessment tests."""

import sys
import threading
from pathlib import Path
from typing import List

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from proctorlab.backend import Backend
from proctorlab.errors import PersistenceError
from proctorlab.environment import ProctorEnvironment
from proctorlab.models import Assessment, Question, TestCase, MCQ, CODING
from proctorlab.sandbox import RunResult, SUCCESS, reset_runtime, set_runtime


class FakeEnvironment(ProctorEnvironment):
    """Environment whose answers are set by the test."""

    def __init__(self, grant: bool = True):
        self.grant = grant
        self.visible = True
        self.fullscreen = False
        self.requests = 0
        self.exits = 0

    def request_fullscreen(self) -> bool:
        self.requests += 1
        if self.grant:
            self.fullscreen = True
        return self.grant

    def exit_fullscreen(self) -> None:
        self.exits += 1
        self.fullscreen = False

    def is_fullscreen(self):
        return self.fullscreen

    def is_visible(self):
        return self.visible


class FakeBackend(Backend):
    """In-memory backend with switchable failures and an optional gate."""

    def __init__(self):
        self.assessment_records = []
        self.lab_records = {}
        self.failures_left = 0
        self.gate = None
        self.entered = threading.Event()
        self.calls = 0
        self._listeners = []

    def fetch_assessments(self):
        return []

    def fetch_lab_experiments(self):
        return []

    def submit_assessment(self, record):
        self.calls += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.failures_left > 0:
            self.failures_left -= 1
            raise PersistenceError("network unreachable")
        self.assessment_records.append(record)

    def submit_lab(self, record):
        self.calls += 1
        if self.failures_left > 0:
            self.failures_left -= 1
            raise PersistenceError("network unreachable")
        self.lab_records[record.record_key] = record
        for user_id, callback in list(self._listeners):
            if user_id == record.user_id:
                callback(self._user_labs(user_id))

    def _user_labs(self, user_id):
        return [r for r in self.lab_records.values() if r.user_id == user_id]

    def listen_to_submissions(self, user_id, callback):
        entry = (user_id, callback)
        self._listeners.append(entry)
        callback(self._user_labs(user_id))
        return lambda: self._listeners.remove(entry)


class FakeRuntime:
    """Runtime that answers from a function of (code, stdin)."""

    def __init__(self, handler):
        self.handler = handler
        self.calls: List[tuple] = []

    def run(self, code, stdin="", timeout_sec=2.0, memory_limit_mb=256):
        self.calls.append((code, stdin))
        result = self.handler(code, stdin)
        if isinstance(result, RunResult):
            return result
        return RunResult(status=SUCCESS, stdout=result)


def mcq(question_id: str, correct: int = 0, points: float = 5, options=None) -> Question:
    return Question(
        id=question_id,
        kind=MCQ,
        text=f"Question {question_id}",
        points=points,
        options=list(options or ["A", "B", "C", "D"]),
        correct_option_index=correct
    )


def coding(question_id: str, points: float = 10, test_cases=None) -> Question:
    return Question(
        id=question_id,
        kind=CODING,
        text=f"Write code for {question_id}",
        points=points,
        starter_code="# write here\n",
        test_cases=list(test_cases or [TestCase(id="t1", input="", expected_output="ok")])
    )


def build_assessment(mcq_count=3, coding_count=1, draw_mcq=None, draw_coding=None, duration=30) -> Assessment:
    bank = [mcq(f"m{i}", correct=i % 4) for i in range(mcq_count)]
    bank += [coding(f"c{i}") for i in range(coding_count)]
    return Assessment(
        id="quiz-1",
        title="Python Basics",
        duration_minutes=duration,
        question_bank=bank,
        random_mcq_count=mcq_count if draw_mcq is None else draw_mcq,
        random_coding_count=coding_count if draw_coding is None else draw_coding,
        status="published"
    )


@pytest.fixture
def fake_env():
    return FakeEnvironment()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_runtime():
    """Install a fake sandbox runtime; the test sets `.handler`."""
    runtime = FakeRuntime(lambda code, stdin: "")
    set_runtime(runtime)
    yield runtime
    reset_runtime()
