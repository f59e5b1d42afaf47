"""
Background monitors driving an assessment session.

CountdownTimer calls its tick callback once per interval. IntegrityWatcher
polls the proctoring environment and reports focus and fullscreen changes as
explicit transitions. Both run on daemon threads and can be stopped from any
thread, including their own callbacks.
"""

import threading
from typing import Callable, Optional

from .environment import ProctorEnvironment
from .session_log import SessionLogger, emit


class _Monitor:
    """Stoppable background loop."""

    name = "monitor"

    def __init__(self, interval: float, session_logger: Optional[SessionLogger] = None):
        self.interval = interval
        self.session_logger = session_logger
        self.monitoring_active = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Start the background loop."""
        if self.monitoring_active:
            return

        self.monitoring_active = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        """Stop the background loop and wait for it to exit."""
        self.monitoring_active = False
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.step()
            except Exception as e:
                emit(self.session_logger, "MONITOR_ERROR", f"{self.name}: {e}")

    def step(self):
        raise NotImplementedError


class CountdownTimer(_Monitor):
    """Calls `on_tick` every `interval` seconds."""

    name = "countdown-timer"

    def __init__(self, interval: float, on_tick: Callable[[], None], session_logger: Optional[SessionLogger] = None):
        super().__init__(interval, session_logger)
        self.on_tick = on_tick

    def step(self):
        self.on_tick()


class IntegrityWatcher(_Monitor):
    """
    Watches focus and fullscreen state of the proctoring environment.

    Only changes are reported: a probe returning the same value twice raises
    no second event, and an unknown (None) reading is ignored.
    """

    name = "integrity-watcher"

    def __init__(
        self,
        environment: ProctorEnvironment,
        on_visibility_lost: Callable[[], None],
        on_visibility_restored: Callable[[], None],
        on_fullscreen_exited: Callable[[], None],
        on_fullscreen_restored: Callable[[], None],
        interval: float = 1.0,
        session_logger: Optional[SessionLogger] = None
    ):
        super().__init__(interval, session_logger)
        self.environment = environment
        self.on_visibility_lost = on_visibility_lost
        self.on_visibility_restored = on_visibility_restored
        self.on_fullscreen_exited = on_fullscreen_exited
        self.on_fullscreen_restored = on_fullscreen_restored

        # the session starts visible and fullscreen
        self.last_visible = True
        self.last_fullscreen = True

    def mark_fullscreen(self):
        """Record a fullscreen grant made outside the polling loop."""
        self.last_fullscreen = True

    def step(self):
        visible = self.environment.is_visible()
        if visible is not None and visible != self.last_visible:
            self.last_visible = visible
            if visible:
                self.on_visibility_restored()
            else:
                self.on_visibility_lost()

        fullscreen = self.environment.is_fullscreen()
        if fullscreen is not None and fullscreen != self.last_fullscreen:
            self.last_fullscreen = fullscreen
            if fullscreen:
                self.on_fullscreen_restored()
            else:
                self.on_fullscreen_exited()
