"""
Append-only event log for lab and assessment sessions.

Each line has the form ``[YYYY-mm-dd HH:MM:SS] - EVENT - details``.
Components receive the bound ``SessionLog.log`` method as their
``session_logger`` callable.
"""

import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

SessionLogger = Callable[[str, str], None]


class SessionLog:
    """Writes session events to a log file."""

    def __init__(self, log_path: Path):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, event: str, details: str = ""):
        """Append an entry to the session log."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        log_entry = f"[{timestamp}] - {event}"
        if details:
            log_entry += f" - {details}"
        log_entry += "\n"

        # timer and watcher threads log concurrently with the command loop
        with self._lock:
            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(log_entry)


def emit(session_logger: Optional[SessionLogger], event: str, details: str = ""):
    """Forward an event to an optional session logger."""
    if session_logger:
        session_logger(event, details)
