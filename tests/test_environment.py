"""
Tests for the proctoring environments and the background monitors.

Covers:
- X11 probes built on wmctrl / xprop / xdotool
- Missing tools reported as unknown
- Edge-triggered watcher callbacks
- Countdown thread start/stop
"""

import subprocess
import sys
import threading
import time
from pathlib import Path
from unittest.mock import Mock, patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import FakeEnvironment
from proctorlab.environment import PermissiveEnvironment, X11Environment, detect_environment
from proctorlab.monitors import CountdownTimer, IntegrityWatcher


class TestPermissiveEnvironment:
    """Test the environment used without window-manager access."""

    def test_always_grants(self):
        env = PermissiveEnvironment()

        assert env.request_fullscreen()
        assert env.is_fullscreen()
        assert env.is_visible()

        env.exit_fullscreen()
        assert not env.is_fullscreen()


class TestX11Environment:
    """Test X11 probes with mocked commands."""

    @patch('subprocess.run')
    def test_is_visible_matches_window(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="12345\n")
        env = X11Environment(window_id="12345")

        assert env.is_visible() is True
        mock_run.assert_called_once()
        assert mock_run.call_args[0][0] == ['xdotool', 'getactivewindow']

    @patch('subprocess.run')
    def test_is_visible_other_window(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="999\n")

        assert X11Environment(window_id="0x3039").is_visible() is False

    @patch('subprocess.run')
    def test_hex_window_id(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="12345\n")

        assert X11Environment(window_id="0x3039").is_visible() is True

    @patch('subprocess.run')
    def test_fullscreen_from_xprop(self, mock_run):
        mock_run.return_value = Mock(
            returncode=0,
            stdout="_NET_WM_STATE(ATOM) = _NET_WM_STATE_FULLSCREEN, _NET_WM_STATE_FOCUSED\n"
        )

        assert X11Environment(window_id="1").is_fullscreen() is True

    @patch('subprocess.run')
    def test_missing_tool_is_unknown(self, mock_run):
        mock_run.side_effect = FileNotFoundError("xdotool")
        env = X11Environment(window_id="1")

        assert env.is_visible() is None
        assert env.is_fullscreen() is None
        assert env.request_fullscreen() is False

    @patch('subprocess.run')
    def test_probe_timeout_is_unknown(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired('xprop', 2)

        assert X11Environment(window_id="1").is_fullscreen() is None

    @patch('subprocess.run')
    def test_request_fullscreen_verifies_state(self, mock_run):
        mock_run.side_effect = [
            Mock(returncode=0, stdout=""),
            Mock(returncode=0, stdout="_NET_WM_STATE(ATOM) = _NET_WM_STATE_FULLSCREEN\n"),
        ]

        assert X11Environment(window_id="7").request_fullscreen() is True
        assert mock_run.call_args_list[0][0][0] == ['wmctrl', '-i', '-r', '7', '-b', 'add,fullscreen']

    def test_no_window_id(self, monkeypatch):
        monkeypatch.delenv("WINDOWID", raising=False)
        env = X11Environment()

        assert env.request_fullscreen() is False
        assert env.is_visible() is None

    def test_detect_by_name(self):
        assert isinstance(detect_environment("permissive"), PermissiveEnvironment)
        assert isinstance(detect_environment("x11"), X11Environment)

    def test_detect_auto_without_display(self, monkeypatch):
        monkeypatch.delenv("DISPLAY", raising=False)

        assert isinstance(detect_environment("auto"), PermissiveEnvironment)


class TestIntegrityWatcher:
    """Test edge detection of the watcher."""

    def make_watcher(self, env):
        callbacks = {name: Mock() for name in (
            "on_visibility_lost", "on_visibility_restored", "on_fullscreen_exited", "on_fullscreen_restored")}
        return IntegrityWatcher(env, interval=0.01, **callbacks), callbacks

    def test_reports_changes_once(self):
        env = FakeEnvironment()
        env.fullscreen = True
        watcher, callbacks = self.make_watcher(env)

        env.visible = False
        watcher.step()
        watcher.step()
        env.visible = True
        watcher.step()

        callbacks["on_visibility_lost"].assert_called_once()
        callbacks["on_visibility_restored"].assert_called_once()
        callbacks["on_fullscreen_exited"].assert_not_called()

    def test_fullscreen_exit(self):
        env = FakeEnvironment()
        watcher, callbacks = self.make_watcher(env)

        watcher.step()

        callbacks["on_fullscreen_exited"].assert_called_once()

    def test_unknown_readings_ignored(self):
        env = Mock()
        env.is_visible.return_value = None
        env.is_fullscreen.return_value = None
        watcher, callbacks = self.make_watcher(env)

        watcher.step()

        for callback in callbacks.values():
            callback.assert_not_called()

    def test_background_loop(self):
        env = FakeEnvironment()
        env.fullscreen = True
        lost = threading.Event()
        watcher = IntegrityWatcher(env, lost.set, Mock(), Mock(), Mock(), interval=0.01)

        watcher.start()
        try:
            env.visible = False
            assert lost.wait(2)
        finally:
            watcher.stop()
        assert not watcher.monitoring_active


class TestCountdownTimer:
    """Test the countdown thread."""

    def test_ticks_until_stopped(self):
        ticks = []
        timer = CountdownTimer(0.01, lambda: ticks.append(1))

        timer.start()
        deadline = time.monotonic() + 2
        while len(ticks) < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        timer.stop()
        count = len(ticks)
        time.sleep(0.05)

        assert count >= 3
        assert len(ticks) == count

    def test_stop_from_own_callback(self):
        holder = {}
        stopped = threading.Event()

        def on_tick():
            holder["timer"].stop()
            stopped.set()

        holder["timer"] = CountdownTimer(0.01, on_tick)
        holder["timer"].start()

        assert stopped.wait(2)
        holder["timer"]._thread.join(2)
        assert not holder["timer"]._thread.is_alive()

    def test_callback_errors_logged(self):
        logger = Mock()
        failed = threading.Event()

        def on_tick():
            failed.set()
            raise RuntimeError("boom")

        timer = CountdownTimer(0.01, on_tick, session_logger=logger)
        timer.start()
        try:
            assert failed.wait(2)
            time.sleep(0.05)
        finally:
            timer.stop()

        logger.assert_any_call("MONITOR_ERROR", "countdown-timer: boom")
