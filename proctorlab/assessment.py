"""
Proctored assessment session.

Drives one student's attempt at an assessment:

    not_started -> active <-> locked -> submitting -> submitted

A submitting session falls back to active (or locked) when the record could
not be saved. `closed` is entered when the session is discarded.

Submission is triggered manually (`request_submit`), by the countdown
reaching zero, by running out of integrity attempts, or by the host
navigating away (`force_submit`). Whatever the mix of triggers, at most one
submission is in flight and a saved attempt is never submitted again.
"""

import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .backend import Backend
from .config import ProctorConfig
from .environment import ProctorEnvironment
from .errors import EnvironmentDeniedError, SessionStateError
from .grader import Grader, CaseResult, SuiteResult
from .messages import msg
from .models import Assessment, AssessmentSubmission, Question
from .monitors import CountdownTimer, IntegrityWatcher
from .session_log import SessionLogger, emit

NOT_STARTED = "not_started"
ACTIVE = "active"
LOCKED = "locked"
SUBMITTING = "submitting"
SUBMITTED = "submitted"
CLOSED = "closed"

# trigger names, used in log entries
MANUAL = "manual"
TIMER = "timer"
INTEGRITY = "integrity"
NAVIGATION = "navigation"


def derive_question_set(assessment: Assessment, rng: Optional[random.Random] = None) -> List[Question]:
    """
    Draw the questions for one attempt.

    The MCQ and coding pools are shuffled independently, the configured
    number of each is taken, and the combined list is shuffled again.
    """
    rng = rng or random.Random()

    mcqs = assessment.mcq_questions
    coding = assessment.coding_questions
    rng.shuffle(mcqs)
    rng.shuffle(coding)

    picked = mcqs[:max(0, assessment.random_mcq_count)] + coding[:max(0, assessment.random_coding_count)]
    rng.shuffle(picked)
    return picked


def score_answers(
    questions: List[Question],
    answers: Dict[str, Any],
    min_code_length: int = 10
) -> Tuple[float, float]:
    """
    Score an answer map against the derived questions.

    MCQ: full points iff the stored option index is the correct one.
    Coding: full points iff the stripped answer is longer than
    `min_code_length` characters.

    Returns:
        Tuple of (score, total_points)
    """
    score = 0.0
    total = 0.0
    for question in questions:
        total += question.points
        answer = answers.get(question.id)
        if answer is None:
            continue

        if question.is_mcq:
            if answer == question.correct_option_index:
                score += question.points
        elif len(str(answer).strip()) > min_code_length:
            score += question.points

    return score, total


def format_seconds(seconds: int) -> str:
    """Format a countdown as m:ss."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


class AssessmentSession:
    """State of one student's proctored assessment attempt."""

    def __init__(
        self,
        assessment: Assessment,
        user_id: str,
        backend: Backend,
        environment: ProctorEnvironment,
        grader: Optional[Grader] = None,
        config: Optional[ProctorConfig] = None,
        class_id: str = "general",
        user_name: str = "",
        on_back: Optional[Callable[[bool], None]] = None,
        notify: Optional[Callable[[str], None]] = None,
        session_logger: Optional[SessionLogger] = None,
        rng: Optional[random.Random] = None,
        start_monitors: bool = True
    ):
        """
        Args:
            assessment: The published assessment
            user_id: Student identifier, part of the record key
            backend: Persistence collaborator
            environment: Proctoring environment (fullscreen and focus)
            grader: Test runner for practice runs
            config: Runtime configuration
            class_id: Class the student belongs to
            user_name: Display name stored with the record
            on_back: Called with True once the attempt has been saved
            notify: Receives user-facing messages raised by background triggers
            session_logger: Event log callable
            rng: Random source for the question draw
            start_monitors: Start the countdown and integrity threads on launch
        """
        self.assessment = assessment
        self.user_id = user_id
        self.user_name = user_name
        self.class_id = class_id
        self.backend = backend
        self.environment = environment
        self.config = config or ProctorConfig.default()
        self.grader = grader or Grader(self.config)
        self.on_back = on_back
        self.notify = notify
        self.session_logger = session_logger
        self.rng = rng or random.Random()
        self.start_monitors = start_monitors

        self.state = NOT_STARTED
        self.current_index = 0
        self.answers: Dict[str, Any] = {}
        self.time_left = assessment.duration_minutes * 60
        self.max_integrity_attempts = self.config.integrity_attempts
        self.integrity_attempts = self.max_integrity_attempts
        self.is_fullscreen = False
        self.is_tab_active = True
        self.last_error: Optional[str] = None
        self.result: Optional[AssessmentSubmission] = None

        self._questions: Optional[List[Question]] = None
        self._questions_for: Optional[str] = None

        self._lock = threading.RLock()
        self._submission_started = False
        # set while no submission is in flight
        self.settled = threading.Event()
        self.settled.set()

        self._timer: Optional[CountdownTimer] = None
        self._watcher: Optional[IntegrityWatcher] = None
        self._closed = False

    # ===== QUESTIONS =====

    @property
    def questions(self) -> List[Question]:
        """The questions of this attempt, drawn once per assessment."""
        with self._lock:
            if self._questions is None or self._questions_for != self.assessment.id:
                self._questions = derive_question_set(self.assessment, self.rng)
                self._questions_for = self.assessment.id
            return self._questions

    @property
    def current_question(self) -> Optional[Question]:
        questions = self.questions
        if not questions:
            return None
        return questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1

    @property
    def is_submitting(self) -> bool:
        return self.state == SUBMITTING

    @property
    def answered_count(self) -> int:
        return sum(1 for q in self.questions if self.answers.get(q.id) is not None)

    def remaining_time(self) -> str:
        return format_seconds(self.time_left)

    # ===== LAUNCH =====

    def launch(self):
        """
        Enter the proctored session.

        Raises:
            EnvironmentDeniedError: If fullscreen was not granted; the session
                stays not started and launch can be retried
            SessionStateError: If the session was already launched
        """
        with self._lock:
            if self.state != NOT_STARTED:
                raise SessionStateError(f"Session already {self.state}")

            if not self._request_fullscreen():
                emit(self.session_logger, "LAUNCH_DENIED", f"Assessment: {self.assessment.id}")
                raise EnvironmentDeniedError("Fullscreen authorization is mandatory")

            questions = self.questions
            self.state = ACTIVE
            self.current_index = 0
            self.is_fullscreen = True
            self.is_tab_active = True
            self.time_left = self.assessment.duration_minutes * 60
            self.integrity_attempts = self.max_integrity_attempts

            emit(self.session_logger, "SESSION_LAUNCH",
                 f"Assessment: {self.assessment.id}, Questions: {len(questions)}, "
                 f"Duration: {self.assessment.duration_minutes} min")

        if self.start_monitors:
            self._start_monitors()

    def _request_fullscreen(self) -> bool:
        try:
            return bool(self.environment.request_fullscreen())
        except Exception as e:
            emit(self.session_logger, "ENVIRONMENT_ERROR", str(e))
            return False

    def _start_monitors(self):
        self._timer = CountdownTimer(self.config.tick_seconds, self.tick, self.session_logger)
        self._watcher = IntegrityWatcher(
            self.environment,
            on_visibility_lost=self.on_visibility_lost,
            on_visibility_restored=self.on_visibility_restored,
            on_fullscreen_exited=self.on_fullscreen_exited,
            on_fullscreen_restored=self.on_fullscreen_restored,
            interval=self.config.visibility_poll_seconds,
            session_logger=self.session_logger
        )
        self._timer.start()
        self._watcher.start()

    def _stop_monitors(self):
        timer, watcher = self._timer, self._watcher
        self._timer = None
        self._watcher = None
        for monitor in (timer, watcher):
            if monitor is not None:
                monitor.stop()

    # ===== COUNTDOWN =====

    def tick(self):
        """Advance the countdown by one second."""
        trigger = None
        with self._lock:
            if self.state not in (ACTIVE, LOCKED, SUBMITTING):
                return

            if self.time_left > 0:
                self.time_left -= 1
                if self.time_left == 0:
                    emit(self.session_logger, "EXAM_TIMEOUT", f"Assessment: {self.assessment.id}")

            # keeps retrying every tick after a failed save
            if not self._submission_started:
                if self.time_left <= 0:
                    trigger = TIMER
                elif self.integrity_attempts <= 0:
                    trigger = INTEGRITY

        if trigger:
            self._submit(is_forced=True, trigger=trigger)

    # ===== INTEGRITY =====

    def on_visibility_lost(self):
        with self._lock:
            if self.state not in (ACTIVE, LOCKED, SUBMITTING) or not self.is_tab_active:
                return
            self.is_tab_active = False
            exhausted = self._record_violation("focus lost")
        if exhausted:
            self._submit(is_forced=True, trigger=INTEGRITY)

    def on_fullscreen_exited(self):
        with self._lock:
            if self.state not in (ACTIVE, LOCKED, SUBMITTING) or not self.is_fullscreen:
                return
            self.is_fullscreen = False
            exhausted = self._record_violation("fullscreen exited")
        if exhausted:
            self._submit(is_forced=True, trigger=INTEGRITY)

    def on_visibility_restored(self):
        with self._lock:
            if self.state not in (ACTIVE, LOCKED, SUBMITTING):
                return
            self.is_tab_active = True
            self._unlock_if_restored()

    def on_fullscreen_restored(self):
        with self._lock:
            if self.state not in (ACTIVE, LOCKED, SUBMITTING):
                return
            self.is_fullscreen = True
            self._unlock_if_restored()

    def restore_fullscreen(self) -> bool:
        """Ask the environment for fullscreen again. Returns True if granted."""
        with self._lock:
            if self.state not in (ACTIVE, LOCKED):
                raise SessionStateError(f"Session is {self.state}")

        if not self._request_fullscreen():
            return False
        watcher = self._watcher
        if watcher is not None:
            watcher.mark_fullscreen()
        self.on_fullscreen_restored()
        return True

    def _record_violation(self, reason: str) -> bool:
        """Spend one integrity attempt. Returns True when none are left."""
        if self._submission_started:
            return False

        self.integrity_attempts = max(0, self.integrity_attempts - 1)
        if self.state == ACTIVE:
            self.state = LOCKED
        emit(self.session_logger, "INTEGRITY_VIOLATION",
             f"Reason: {reason}, Attempts left: {self.integrity_attempts}/{self.max_integrity_attempts}")

        if self.notify and self.integrity_attempts > 0:
            self.notify(msg("assess_locked", attempts=self.integrity_attempts))
        return self.integrity_attempts <= 0

    def _unlock_if_restored(self):
        # no attempts left: stays locked until the forced submission is saved
        if self.integrity_attempts <= 0:
            return
        if self.state == LOCKED and self.is_fullscreen and self.is_tab_active:
            self.state = ACTIVE
            emit(self.session_logger, "INTEGRITY_RESTORED", f"Attempts left: {self.integrity_attempts}")

    # ===== QUESTION INTERACTION =====

    def _require_active(self):
        if self.state == LOCKED:
            raise SessionStateError("Session is locked; restore fullscreen to continue")
        if self.state != ACTIVE:
            raise SessionStateError(f"Session is {self.state}")

    def _require_questions(self):
        if not self.questions:
            raise SessionStateError("This attempt has no questions")

    def _find_question(self, question_id: str) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise KeyError(f"Question '{question_id}' is not part of this attempt")

    def answer(self, question_id: str, value: Any):
        """
        Record an answer in the live answer map.

        MCQ answers are option indexes; coding answers are source code.
        """
        with self._lock:
            self._require_active()
            question = self._find_question(question_id)

            if question.is_mcq:
                if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < len(question.options):
                    raise ValueError(f"Option index out of range: {value}")
            else:
                value = str(value)

            self.answers[question.id] = value

    def go_to(self, index: int) -> Question:
        with self._lock:
            self._require_active()
            if not 0 <= index < len(self.questions):
                raise IndexError(f"Question index out of range: {index}")
            self.current_index = index
            return self.questions[index]

    def next_question(self) -> Question:
        with self._lock:
            self._require_active()
            self._require_questions()
            self.current_index = min(self.current_index + 1, len(self.questions) - 1)
            return self.questions[self.current_index]

    def previous_question(self) -> Question:
        with self._lock:
            self._require_active()
            self._require_questions()
            self.current_index = max(self.current_index - 1, 0)
            return self.questions[self.current_index]

    def run_practice(self, question_id: Optional[str] = None, code: Optional[str] = None) -> SuiteResult:
        """
        Run a coding answer against the question's test cases.

        Practice runs never touch the answer map or the score.
        """
        with self._lock:
            self._require_active()
            question = self._find_question(question_id) if question_id else self.current_question
            if question is None or not question.is_coding:
                raise SessionStateError("Practice runs are only available for coding questions")
            if code is None:
                code = self.answers.get(question.id) or question.starter_code

        suite = self.grader.run_suite(code, question.test_cases)
        emit(self.session_logger, "TEST_RESULT",
             f"Question: {question.id}, Passed: {suite.passed_count}/{suite.total}")
        return suite

    def run_practice_custom(self, stdin: str, code: Optional[str] = None) -> CaseResult:
        """Run the current coding answer once against custom input."""
        with self._lock:
            self._require_active()
            question = self.current_question
            if question is None or not question.is_coding:
                raise SessionStateError("Practice runs are only available for coding questions")
            if code is None:
                code = self.answers.get(question.id) or question.starter_code

        return self.grader.run_custom(code, stdin)

    # ===== SUBMISSION =====

    def request_submit(self, confirm: Callable[[str], bool]) -> bool:
        """
        Submit after the student confirms.

        Args:
            confirm: Receives the prompt text and returns True to proceed

        Returns:
            True if a submission was attempted
        """
        with self._lock:
            self._require_active()
            prompt = msg("assess_confirm_last") if self.is_last_question else msg("assess_confirm")

        if not confirm(prompt):
            return False
        return self._submit(is_forced=False, trigger=MANUAL)

    def force_submit(self, timeout: Optional[float] = None) -> bool:
        """
        Submit immediately on behalf of the host (navigation, logout).

        Waits for the submission, or for one already in flight, to settle.

        Returns:
            True if the host may leave: the attempt is saved or was never started
        """
        with self._lock:
            if self.state in (NOT_STARTED, CLOSED):
                return True
            if self.state != SUBMITTED:
                emit(self.session_logger, "FORCE_SUBMIT", f"Assessment: {self.assessment.id}")

        self._submit(is_forced=True, trigger=NAVIGATION)
        self.settled.wait(timeout)

        with self._lock:
            return self.state == SUBMITTED

    def _submit(self, is_forced: bool, trigger: str) -> bool:
        """
        Score the live answers and save the attempt.

        Returns:
            True if this call performed the submission, False if it was a no-op
        """
        with self._lock:
            if self._submission_started:
                emit(self.session_logger, "SUBMISSION_IGNORED", f"Trigger: {trigger}")
                return False
            if self.state not in (ACTIVE, LOCKED):
                return False

            self._submission_started = True
            self.settled.clear()
            self.state = SUBMITTING

            score, total = score_answers(self.questions, self.answers, self.config.min_coding_answer_length)
            record = AssessmentSubmission(
                assessment_id=self.assessment.id,
                user_id=self.user_id,
                user_name=self.user_name,
                class_id=self.class_id,
                answers=dict(self.answers),
                score=score,
                total_points=total,
                submitted_at=int(time.time() * 1000)
            )
            emit(self.session_logger, "SUBMISSION_START",
                 f"Trigger: {trigger}, Forced: {is_forced}, Score: {score}/{total}")

        if self.notify:
            self.notify(msg("assess_submitting"))

        try:
            self.backend.submit_assessment(record)
        except Exception as e:
            self._submission_failed(e)
            return True

        try:
            self.environment.exit_fullscreen()
        except Exception as e:
            emit(self.session_logger, "ENVIRONMENT_ERROR", str(e))

        with self._lock:
            closed = self.state == CLOSED
            if not closed:
                self.state = SUBMITTED
            self.result = record
            self.last_error = None
            emit(self.session_logger, "SUBMISSION_SAVED",
                 f"Assessment: {self.assessment.id}, Score: {score}/{total}")

        self._stop_monitors()
        self.settled.set()

        if closed:
            return True
        if self.notify:
            if is_forced:
                self.notify(msg("assess_forced_done"))
            else:
                self.notify(msg("assess_manual_done", score=_points(score), total=_points(total)))
        if self.on_back:
            self.on_back(True)
        return True

    def _submission_failed(self, error: Exception):
        with self._lock:
            self._submission_started = False
            self.last_error = str(error) or type(error).__name__
            if self.state == SUBMITTING:
                restored = self.is_fullscreen and self.is_tab_active and self.integrity_attempts > 0
                self.state = ACTIVE if restored else LOCKED
            emit(self.session_logger, "SUBMISSION_FAILED", f"Error: {self.last_error}")
        self.settled.set()

        if self.notify:
            self.notify(msg("assess_sync_error", error=self.last_error))

    # ===== CLEANUP =====

    def close(self):
        """Discard the session. Tears down the countdown and the watchers."""
        self._stop_monitors()
        with self._lock:
            if self._closed:
                return
            self._closed = True
            previous = self.state
            if self.state != SUBMITTED:
                self.state = CLOSED
            emit(self.session_logger, "SESSION_CLOSED", f"Assessment: {self.assessment.id}, State: {previous}")


def _points(value: float):
    return int(value) if float(value).is_integer() else round(value, 2)
