"""
Proctored Python Lab System - Core Package

This package contains the core components for running coding labs and
proctored assessments:
- models: Data structures for questions, labs, assessments and submissions
- sandbox: Isolated execution of student code with captured stdin/stdout
- grader: Test case execution and verdicts
- lab: Lab submission flow gated on a full test pass
- assessment: Timed, integrity-monitored assessment session
"""

__version__ = "1.0.0"
