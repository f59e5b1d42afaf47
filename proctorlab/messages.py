"""User-facing message catalogue for the command line runner and reports."""

MESSAGES = {
    "header": "=" * 60,
    "title": "PROCTORED PYTHON LAB",

    # Grader report
    "grader_running_tests": "Running {total} test case(s)...",
    "grader_custom_run": "Custom run finished in {ms} ms",
    "grader_test_passed": "  Test #{num}: PASSED ({ms} ms)",
    "grader_test_failed": "  Test #{num}: FAILED (wrong answer)",
    "grader_test_error": "  Test #{num}: ERROR",
    "grader_hidden_suffix": " [hidden]",
    "grader_error_label": "    Error: {text}",
    "grader_input_label": "    Input: {text}",
    "grader_student_output": "    Your output: {output}",
    "grader_expected_output": "    Expected:    {output}",
    "grader_result_summary": "Result: {passed}/{total} test cases passed",
    "grader_no_cases": "Warning: no test cases are configured for this exercise.",
    "grader_output_label": "Output:",
    "grader_no_output": "(no output)",

    # Lab flow
    "lab_header": "LAB: {title} [{difficulty}]",
    "lab_objectives": "Objectives:",
    "lab_prefilled": "Loaded your previously saved solution.",
    "lab_feedback": "Teacher feedback: {feedback}",
    "lab_verified": "Status: verified completion",
    "lab_help": "Commands: show | load [file] | test | run [input file] | submit | exit",
    "lab_rejected": "Validation failed: your solution must pass all test cases before it can be saved.",
    "lab_no_cases": "This lab has no test cases configured. Please contact your teacher.",
    "lab_saved": "Success: your solution passed every test case and has been saved.",
    "lab_save_failed": "Network error: could not save your solution ({error}). Your code is kept, run 'submit' again to retry.",
    "lab_loaded": "Loaded {chars} characters from {path}.",

    # Assessment flow
    "assess_header": "ASSESSMENT: {title} ({minutes} min, {count} questions)",
    "assess_launch": "Proctoring is active. The session requires fullscreen and must stay in the foreground.",
    "assess_launch_denied": "Fullscreen authorization is mandatory. Launch again when ready.",
    "assess_retry_launch": "Request fullscreen again? (y/n): ",
    "assess_help": "Commands: show | answer <letter> | load [file] | test | next | prev | goto <n> | time | status | restore | submit | exit",
    "assess_question": "Question {index}/{count} [{kind}, {points} pts]",
    "assess_option": "  {letter}) {text}",
    "assess_selected": "Selected answer: {letter}",
    "assess_code_saved": "Code answer recorded ({chars} characters).",
    "assess_time": "Time remaining: {time}",
    "assess_status": "Answered {answered}/{count} | Integrity: {attempts}/{max_attempts} | Time: {time}",
    "assess_locked": "SECURITY ALERT: the session left fullscreen or lost focus. Integrity tokens left: {attempts}. Use 'restore'.",
    "assess_restored": "Session restored.",
    "assess_confirm": "Ready to finalize and submit your test? (y/n): ",
    "assess_confirm_last": "Finish and submit now? (y/n): ",
    "assess_continue": "Submission cancelled. Continue working.",
    "assess_submitting": "Synchronizing results...",
    "assess_forced_done": "Integrity protocol: the test was terminated and submitted.",
    "assess_manual_done": "Your results have been saved. Final score: {score}/{total}",
    "assess_sync_error": "Sync error: {error}. Your answers are kept; submit again to retry.",
    "assess_leave_confirm": "Leaving now will terminate the session and submit your progress. Continue? (y/n): ",
    "assess_not_coding": "The current question is not a coding question.",
    "assess_no_questions": "This attempt has no questions.",
    "assess_blocked": "Action unavailable: {reason}",

    "invalid_command": "Unknown command. Type 'help' for the list of commands.",

    # Runner
    "ask_enc_pass": "Enter the key or password for {bank}: ",
    "enc_error": "Error: a key or password is required for an encrypted bank.",
    "enc_exit": "Exiting.",
    "bank_loading": "Loading course bank...",
    "bank_error": "Error: failed to load the course bank.\nDetails: {error}",
    "bank_success": "Course bank loaded: {labs} lab(s), {assessments} assessment(s).",
    "config_error": "Configuration error: {error}",
    "list_labs": "Labs:",
    "list_assessments": "Assessments:",
    "list_item": "  {id}: {title} [{status}]",
    "list_empty": "  (none)",
    "not_found": "Error: {kind} '{item_id}' not found.",
    "assess_invalid": "This assessment is misconfigured: {error}",
    "usage": "Usage: {usage}",
    "file_error": "Error: cannot read {path}: {error}",
    "code_file_created": "Your code file is {path}. Edit it, then use 'test' or 'submit'.",
    "interrupt_hint": "Use 'exit' to leave the session.",
    "unexpected_error": "An unexpected error occurred: {error}",
    "session_exit": "Session closed.",
}


def msg(key: str, **kwargs) -> str:
    """Format a catalogue message; unknown keys are returned unchanged."""
    template = MESSAGES.get(key, key)
    return template.format(**kwargs)
