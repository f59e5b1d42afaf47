"""
Exception types raised by the lab and assessment components.

Sandbox and grader failures never appear here: they are returned as data
(RunResult / verdicts). Only conditions that need the user's attention are
raised.
"""


class ProctorLabError(Exception):
    """Base class for all proctorlab errors."""


class PersistenceError(ProctorLabError):
    """Saving a record to the backend failed."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class EnvironmentDeniedError(ProctorLabError):
    """The proctoring environment refused exclusive fullscreen."""


class SessionStateError(ProctorLabError):
    """The requested action is not allowed in the session's current state."""


class BankError(ProctorLabError):
    """The course bank could not be loaded, decrypted or parsed."""


class ConfigError(ProctorLabError, ValueError):
    """Invalid configuration file or values."""
