#!/usr/bin/env python3
"""
Proctored Python Lab CLI

Student-facing application for working on labs and taking proctored
assessments from a course bank.
"""

import argparse
import getpass
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .assessment import AssessmentSession, ACTIVE, LOCKED
from .backend import LocalBackend
from .config import ProctorConfig, load_config
from .environment import detect_environment
from .errors import (
    BankError,
    ConfigError,
    EnvironmentDeniedError,
    PersistenceError,
    ProctorLabError,
    SessionStateError,
)
from .grader import Grader
from .lab import LabSession, SUBMITTED, NO_TEST_CASES
from .messages import msg
from .session_log import SessionLog

OPTION_LETTERS = "ABCDEFGHIJ"


def _default_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "student"


class StudentRunner:
    """Main CLI application controller."""

    def __init__(self):
        self.config: Optional[ProctorConfig] = None
        self.backend: Optional[LocalBackend] = None
        self.grader: Optional[Grader] = None
        self.session_log: Optional[SessionLog] = None
        self.args: Optional[argparse.Namespace] = None
        self.lab_code_file: Optional[Path] = None

        self.lab_session: Optional[LabSession] = None
        self.assessment_session: Optional[AssessmentSession] = None
        self.assessment_done = False

    def _msg(self, key: str, **kwargs) -> str:
        return msg(key, **kwargs)

    # ===== SETUP =====

    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Proctored Python Lab",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
        parser.add_argument(
            "--bank",
            required=True,
            help="Course bank file (.json for plain banks, anything else is treated as encrypted)"
        )
        key_group = parser.add_mutually_exclusive_group()
        key_group.add_argument("--key-file", help="File holding the Fernet key of an encrypted bank")
        key_group.add_argument(
            "--password",
            action="store_true",
            help="Prompt for the password of a password-encrypted bank"
        )
        parser.add_argument(
            "--config",
            help="Path to configuration file (default: config.json in executable directory)"
        )
        parser.add_argument("--user", default=_default_user(), help="Student identifier (default: login name)")
        parser.add_argument("--name", default="", help="Student display name")
        parser.add_argument("--class-id", default="general", help="Class identifier stored with submissions")
        parser.add_argument(
            "--environment",
            choices=["auto", "x11", "permissive"],
            default="auto",
            help="Proctoring environment used by assessments (default: auto)"
        )

        subparsers = parser.add_subparsers(dest="command", required=True)
        lab_parser = subparsers.add_parser("lab", help="Work on a lab")
        lab_parser.add_argument("lab_id")
        assessment_parser = subparsers.add_parser("assessment", help="Take a proctored assessment")
        assessment_parser.add_argument("assessment_id")
        subparsers.add_parser("list", help="List labs and assessments in the bank")
        return parser

    def _read_key(self, bank_path: Path) -> Optional[str]:
        """Return the key or password for an encrypted bank, None for plain JSON."""
        if bank_path.suffix.lower() == '.json':
            return None

        if self.args.key_file:
            try:
                return Path(self.args.key_file).read_text(encoding='utf-8').strip()
            except OSError as e:
                raise BankError(f"Cannot read key file: {e}")

        key_input = getpass.getpass(self._msg("ask_enc_pass", bank=bank_path.name))
        return key_input.strip() or None

    def run(self, argv=None) -> int:
        """Main application entry point."""
        self.args = self.build_parser().parse_args(argv)

        try:
            self.config = load_config(Path(self.args.config) if self.args.config else None)
        except ConfigError as e:
            print(self._msg("config_error", error=e))
            return 1

        print(self._msg("header"))
        print(self._msg("title"))
        print(self._msg("header"))

        bank_path = Path(self.args.bank)
        try:
            key_input = self._read_key(bank_path)
        except (KeyboardInterrupt, EOFError):
            print(f"\n{self._msg('enc_exit')}")
            return 1
        except BankError as e:
            print(self._msg("bank_error", error=e))
            return 1

        if key_input is None and bank_path.suffix.lower() != '.json':
            print(self._msg("enc_error"))
            return 1

        print(self._msg("bank_loading"))
        data_dir = Path(self.config.data_dir)
        try:
            self.backend = LocalBackend(data_dir, bank_path=bank_path, key_input=key_input)
        except BankError as e:
            print(self._msg("bank_error", error=e))
            return 1

        bank = self.backend.bank
        print(self._msg("bank_success", labs=len(bank.labs), assessments=len(bank.assessments)))

        self.grader = Grader(self.config)
        self.session_log = SessionLog(data_dir / "session.log")

        if self.args.command == "list":
            return self.cmd_list()
        if self.args.command == "lab":
            return self.run_lab(self.args.lab_id)
        return self.run_assessment(self.args.assessment_id)

    def cmd_list(self) -> int:
        print()
        print(self._msg("list_labs"))
        labs = self.backend.fetch_lab_experiments()
        for lab in labs:
            print(self._msg("list_item", id=lab.id, title=lab.title, status=lab.status))
        if not labs:
            print(self._msg("list_empty"))

        print(self._msg("list_assessments"))
        assessments = self.backend.fetch_assessments()
        for assessment in assessments:
            print(self._msg("list_item", id=assessment.id, title=assessment.title, status=assessment.status))
        if not assessments:
            print(self._msg("list_empty"))
        return 0

    def _read_file(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding='utf-8')
        except OSError as e:
            print(self._msg("file_error", path=path, error=e))
            return None

    # ===== LAB =====

    def run_lab(self, lab_id: str) -> int:
        try:
            lab = self.backend.fetch_lab_experiment(lab_id)
        except LookupError:
            print(self._msg("not_found", kind="lab", item_id=lab_id))
            return 1

        self.lab_session = LabSession(
            lab,
            user_id=self.args.user,
            backend=self.backend,
            grader=self.grader,
            class_id=self.args.class_id,
            user_name=self.args.name,
            session_logger=self.session_log.log
        )
        self.lab_session.attach()
        self.lab_code_file = Path(f"{lab.id}.py")

        try:
            if self.lab_session.submission is not None:
                print(self._msg("lab_prefilled"))
            if not self.lab_code_file.exists():
                self.lab_code_file.write_text(self.lab_session.code, encoding='utf-8')
            print(self._msg("code_file_created", path=self.lab_code_file))

            self.lab_show()
            print(self._msg("lab_help"))
            self.lab_loop()
        finally:
            self.lab_session.close()
        return 0

    def lab_loop(self):
        """Interactive command loop for a lab."""
        while True:
            try:
                cmd_line = input("lab> ").strip()
                if not cmd_line:
                    continue

                parts = cmd_line.split(maxsplit=1)
                command = parts[0].lower()
                argument = parts[1] if len(parts) > 1 else None

                if command in ['exit', 'quit']:
                    print(self._msg("session_exit"))
                    return
                elif command == 'help':
                    print(self._msg("lab_help"))
                elif command == 'show':
                    self.lab_show()
                elif command == 'load':
                    self.lab_load(Path(argument) if argument else self.lab_code_file)
                elif command == 'test':
                    self.lab_test()
                elif command == 'run':
                    self.lab_run(Path(argument) if argument else None)
                elif command == 'submit':
                    self.lab_submit()
                else:
                    print(self._msg("invalid_command"))

            except EOFError:
                print()
                return
            except KeyboardInterrupt:
                print(f"\n{self._msg('interrupt_hint')}")
            except ProctorLabError as e:
                print(self._msg("unexpected_error", error=e))

    def lab_show(self):
        lab = self.lab_session.lab
        print()
        print(self._msg("lab_header", title=lab.title, difficulty=lab.difficulty))
        if lab.description:
            print(lab.description)
        if lab.learning_objectives:
            print(self._msg("lab_objectives"))
            for objective in lab.learning_objectives:
                print(f"  - {objective}")

        submission = self.lab_session.submission
        if self.lab_session.is_verified:
            print(self._msg("lab_verified"))
        if submission is not None and submission.feedback:
            print(self._msg("lab_feedback", feedback=submission.feedback))
        print()

    def _sync_lab_code(self):
        """Pick up edits made to the lab's code file."""
        if self.lab_code_file.exists():
            code = self._read_file(self.lab_code_file)
            if code is not None:
                self.lab_session.set_code(code)

    def lab_load(self, path: Path):
        code = self._read_file(path)
        if code is None:
            return
        self.lab_session.set_code(code)
        if path != self.lab_code_file:
            self.lab_code_file.write_text(code, encoding='utf-8')
        print(self._msg("lab_loaded", chars=len(code), path=path))

    def lab_test(self):
        self._sync_lab_code()
        suite = self.lab_session.run_tests()
        print()
        print(self.grader.format_results(suite, self.lab_session.lab.test_cases, show_details=True))
        print()

    def lab_run(self, input_path: Optional[Path]):
        self._sync_lab_code()
        stdin = ""
        if input_path is not None:
            stdin = self._read_file(input_path)
            if stdin is None:
                return
        result = self.lab_session.run_custom(stdin)
        print(self.grader.format_custom(result))

    def lab_submit(self):
        self._sync_lab_code()
        try:
            outcome = self.lab_session.submit()
        except PersistenceError as e:
            print(self._msg("lab_save_failed", error=e))
            return

        if outcome.status == NO_TEST_CASES:
            print(self._msg("lab_no_cases"))
            return

        print()
        print(self.grader.format_results(outcome.suite, self.lab_session.lab.test_cases))
        print()
        if outcome.status == SUBMITTED:
            print(self._msg("lab_saved"))
        else:
            print(self._msg("lab_rejected"))

    # ===== ASSESSMENT =====

    def run_assessment(self, assessment_id: str) -> int:
        assessment = next((a for a in self.backend.fetch_assessments() if a.id == assessment_id), None)
        if assessment is None:
            print(self._msg("not_found", kind="assessment", item_id=assessment_id))
            return 1

        is_valid, error = assessment.validate()
        if not is_valid:
            print(self._msg("assess_invalid", error=error))
            return 1

        self.assessment_done = False
        self.assessment_session = AssessmentSession(
            assessment,
            user_id=self.args.user,
            backend=self.backend,
            environment=detect_environment(self.args.environment),
            grader=self.grader,
            config=self.config,
            class_id=self.args.class_id,
            user_name=self.args.name,
            on_back=self._on_assessment_back,
            notify=print,
            session_logger=self.session_log.log
        )

        try:
            print()
            print(self._msg("assess_header", title=assessment.title,
                            minutes=assessment.duration_minutes, count=len(self.assessment_session.questions)))
            if assessment.description:
                print(assessment.description)
            print(self._msg("assess_launch"))

            if not self.assessment_launch():
                return 1

            print(self._msg("assess_help"))
            self.assess_show()
            self.assessment_loop()
        finally:
            self.assessment_session.close()
        return 0

    def _on_assessment_back(self, force: bool):
        self.assessment_done = True

    def assessment_launch(self) -> bool:
        """Launch the session, offering retries while fullscreen is refused."""
        while True:
            try:
                self.assessment_session.launch()
                return True
            except EnvironmentDeniedError:
                print(self._msg("assess_launch_denied"))
            try:
                retry = input(self._msg("assess_retry_launch")).strip().lower()
            except (KeyboardInterrupt, EOFError):
                print()
                return False
            if retry != 'y':
                return False

    def assessment_loop(self):
        """Interactive command loop for a running assessment."""
        session = self.assessment_session
        while not self.assessment_done:
            try:
                cmd_line = input("assessment> ").strip()
                # a background trigger may have submitted while waiting for input
                if self.assessment_done:
                    break
                if not cmd_line:
                    continue

                parts = cmd_line.split(maxsplit=1)
                command = parts[0].lower()
                argument = parts[1].strip() if len(parts) > 1 else None

                if command in ['exit', 'quit']:
                    if self.assess_exit():
                        return
                elif command == 'help':
                    print(self._msg("assess_help"))
                elif command == 'show':
                    self.assess_show()
                elif command == 'answer':
                    if not argument:
                        print(self._msg("usage", usage="answer <letter>"))
                    else:
                        self.assess_answer(argument)
                elif command == 'load':
                    self.assess_load(Path(argument) if argument else None)
                elif command == 'test':
                    self.assess_test()
                elif command == 'next':
                    session.next_question()
                    self.assess_show()
                elif command == 'prev':
                    session.previous_question()
                    self.assess_show()
                elif command == 'goto':
                    if not argument or not argument.isdigit():
                        print(self._msg("usage", usage="goto <n>"))
                    else:
                        session.go_to(int(argument) - 1)
                        self.assess_show()
                elif command == 'time':
                    print(self._msg("assess_time", time=session.remaining_time()))
                elif command == 'status':
                    self.assess_status()
                elif command == 'restore':
                    self.assess_restore()
                elif command == 'submit':
                    self.assess_submit()
                else:
                    print(self._msg("invalid_command"))

            except EOFError:
                print()
                self.assess_exit(confirm=False)
                return
            except KeyboardInterrupt:
                print(f"\n{self._msg('interrupt_hint')}")
            except SessionStateError as e:
                print(self._msg("assess_blocked", reason=e))
            except (IndexError, KeyError, ValueError) as e:
                print(self._msg("assess_blocked", reason=e))

    def _question_file(self, question) -> Path:
        return Path(f"{self.assessment_session.assessment.id}_{question.id}.py")

    def assess_show(self):
        session = self.assessment_session
        question = session.current_question
        if question is None:
            return

        print()
        print(self._msg("assess_question", index=session.current_index + 1, count=len(session.questions),
                        kind=question.kind.upper(), points=question.points))
        if question.title:
            print(question.title)
        print(question.text)

        if question.is_mcq:
            for index, option in enumerate(question.options):
                print(self._msg("assess_option", letter=OPTION_LETTERS[index], text=option))
            selected = session.answers.get(question.id)
            if selected is not None:
                print(self._msg("assess_selected", letter=OPTION_LETTERS[selected]))
        else:
            code_file = self._question_file(question)
            if not code_file.exists():
                code_file.write_text(question.starter_code, encoding='utf-8')
            print(self._msg("code_file_created", path=code_file))
        print()

    def assess_answer(self, argument: str):
        session = self.assessment_session
        question = session.current_question
        if question is None:
            print(self._msg("assess_no_questions"))
            return
        if not question.is_mcq:
            print(self._msg("usage", usage="load [file]"))
            return

        choice = argument.upper()
        if choice.isdigit():
            index = int(choice) - 1
        elif len(choice) == 1 and choice in OPTION_LETTERS:
            index = OPTION_LETTERS.index(choice)
        else:
            print(self._msg("usage", usage="answer <letter>"))
            return

        session.answer(question.id, index)
        print(self._msg("assess_selected", letter=OPTION_LETTERS[index]))

    def assess_load(self, path: Optional[Path]):
        session = self.assessment_session
        question = session.current_question
        if question is None:
            print(self._msg("assess_no_questions"))
            return
        if not question.is_coding:
            print(self._msg("assess_not_coding"))
            return

        code = self._read_file(path or self._question_file(question))
        if code is None:
            return
        session.answer(question.id, code)
        print(self._msg("assess_code_saved", chars=len(code)))

    def assess_test(self):
        session = self.assessment_session
        question = session.current_question
        if question is None:
            print(self._msg("assess_no_questions"))
            return
        if not question.is_coding:
            print(self._msg("assess_not_coding"))
            return

        code = None
        code_file = self._question_file(question)
        if code_file.exists():
            code = self._read_file(code_file)
        suite = session.run_practice(question.id, code)
        print()
        print(self.grader.format_results(suite, question.test_cases, show_details=True))
        print()

    def assess_status(self):
        session = self.assessment_session
        print(self._msg(
            "assess_status",
            answered=session.answered_count,
            count=len(session.questions),
            attempts=session.integrity_attempts,
            max_attempts=session.max_integrity_attempts,
            time=session.remaining_time()
        ))
        if session.state == LOCKED:
            print(self._msg("assess_locked", attempts=session.integrity_attempts))

    def assess_restore(self):
        if self.assessment_session.restore_fullscreen():
            if self.assessment_session.state == ACTIVE:
                print(self._msg("assess_restored"))
        else:
            print(self._msg("assess_launch_denied"))

    def _confirm(self, prompt: str) -> bool:
        try:
            return input(prompt).strip().lower() == 'y'
        except (KeyboardInterrupt, EOFError):
            print()
            return False

    def assess_submit(self):
        if not self.assessment_session.request_submit(self._confirm):
            if not self.assessment_done:
                print(self._msg("assess_continue"))

    def assess_exit(self, confirm: bool = True) -> bool:
        """
        Leave the assessment.

        Leaving a running session submits it. Returns True if the loop may end.
        """
        session = self.assessment_session
        if session.state in (ACTIVE, LOCKED):
            if confirm and not self._confirm(self._msg("assess_leave_confirm")):
                print(self._msg("assess_continue"))
                return False
        if session.force_submit():
            print(self._msg("session_exit"))
            return True
        return False


def main():
    """Entry point for the student runner."""
    runner = StudentRunner()
    sys.exit(runner.run())


if __name__ == "__main__":
    main()
