"""
Lab submission flow.

A lab solution is only saved once it passes every test case. Saving again
after a later pass replaces the stored solution.
"""

import time
from dataclasses import dataclass
from typing import List, Optional

from .backend import Backend, Unsubscribe
from .errors import PersistenceError
from .grader import Grader, CaseResult, SuiteResult
from .models import LabExperiment, Submission
from .session_log import SessionLogger, emit

SUBMITTED = "submitted"
REJECTED = "rejected"
NO_TEST_CASES = "no_test_cases"


@dataclass
class LabSubmitResult:
    """Outcome of a submit attempt."""
    status: str
    suite: SuiteResult
    submission: Optional[Submission] = None

    @property
    def accepted(self) -> bool:
        return self.status == SUBMITTED


class LabSession:
    """Manages the editor state and submission of one lab for one student."""

    def __init__(
        self,
        lab: LabExperiment,
        user_id: str,
        backend: Backend,
        grader: Optional[Grader] = None,
        class_id: str = "general",
        user_name: str = "",
        session_logger: Optional[SessionLogger] = None
    ):
        self.lab = lab
        self.user_id = user_id
        self.user_name = user_name
        self.class_id = class_id
        self.backend = backend
        self.grader = grader or Grader()
        self.session_logger = session_logger

        self.code: str = lab.starter_code or ""
        self.submission: Optional[Submission] = None
        self.last_suite: Optional[SuiteResult] = None
        self.is_syncing = False

        self._prefilled = False
        self._unsubscribe: Optional[Unsubscribe] = None

    # ===== PREVIOUS SUBMISSION =====

    def attach(self):
        """Subscribe to the backend feed of this student's saved solutions."""
        if self._unsubscribe is None:
            self._unsubscribe = self.backend.listen_to_submissions(self.user_id, self.prefill_from)

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def prefill_from(self, submissions: List[Submission]):
        """
        Track the stored solution for this lab.

        The editor is overwritten only the first time a saved solution shows
        up; later feed updates never discard edits in progress.
        """
        mine = next((s for s in submissions or [] if s.lab_id == self.lab.id), None)
        if mine is None:
            return

        self.submission = mine
        if not self._prefilled:
            self.code = mine.code
            self._prefilled = True
            emit(self.session_logger, "LAB_PREFILL", f"Lab: {self.lab.id}")

    @property
    def is_verified(self) -> bool:
        return self.submission is not None and self.submission.status == "graded"

    # ===== EDITING AND TESTING =====

    def set_code(self, code: str):
        self.code = code

    def run_tests(self) -> SuiteResult:
        """Run the full suite without saving anything."""
        self.last_suite = self.grader.run_suite(self.code, self.lab.test_cases)
        emit(self.session_logger, "TEST_RESULT",
             f"Lab: {self.lab.id}, Passed: {self.last_suite.passed_count}/{self.last_suite.total}")
        return self.last_suite

    def run_custom(self, stdin: str) -> CaseResult:
        return self.grader.run_custom(self.code, stdin)

    # ===== SUBMISSION =====

    def submit(self, code: Optional[str] = None) -> LabSubmitResult:
        """
        Verify the code against every test case and save it if all pass.

        Args:
            code: Code to submit; defaults to the current editor contents

        Returns:
            LabSubmitResult with status "submitted", "rejected" or "no_test_cases"

        Raises:
            PersistenceError: If saving failed. The code stays in the session.
        """
        if code is not None:
            self.code = code
        submitted_code = self.code

        suite = self.grader.run_suite(submitted_code, self.lab.test_cases)
        self.last_suite = suite

        if suite.is_empty:
            emit(self.session_logger, "LAB_REJECTED", f"Lab: {self.lab.id}, no test cases configured")
            return LabSubmitResult(status=NO_TEST_CASES, suite=suite)

        if not suite.all_passed:
            emit(self.session_logger, "LAB_REJECTED",
                 f"Lab: {self.lab.id}, Passed: {suite.passed_count}/{suite.total}")
            return LabSubmitResult(status=REJECTED, suite=suite)

        record = Submission(
            lab_id=self.lab.id,
            class_id=self.class_id,
            user_id=self.user_id,
            user_name=self.user_name,
            code=submitted_code,
            status="graded",
            submitted_at=int(time.time() * 1000)
        )

        self.is_syncing = True
        try:
            self.backend.submit_lab(record)
        except PersistenceError as e:
            emit(self.session_logger, "LAB_SUBMISSION_FAILED", f"Lab: {self.lab.id}, Error: {e}")
            raise
        except Exception as e:
            emit(self.session_logger, "LAB_SUBMISSION_FAILED", f"Lab: {self.lab.id}, Error: {e}")
            raise PersistenceError(str(e) or type(e).__name__) from e
        finally:
            self.is_syncing = False

        self.submission = record
        emit(self.session_logger, "LAB_SUBMISSION", f"Lab: {self.lab.id}, Passed: {suite.total}/{suite.total}")
        return LabSubmitResult(status=SUBMITTED, suite=suite, submission=record)
