"""
Proctoring environment adapters.

The assessment session asks its environment for exclusive fullscreen and the
integrity watcher polls it for fullscreen and focus state. Probes return None
when the state cannot be determined; unknown is never reported as a
violation.
"""

import os
import platform
import subprocess
from typing import List, Optional


class ProctorEnvironment:
    """Interface of the presentation layer the session runs in."""

    def request_fullscreen(self) -> bool:
        """Ask for exclusive fullscreen. Returns True if granted."""
        raise NotImplementedError

    def exit_fullscreen(self) -> None:
        raise NotImplementedError

    def is_fullscreen(self) -> Optional[bool]:
        raise NotImplementedError

    def is_visible(self) -> Optional[bool]:
        """True while the session window is the focused, visible window."""
        raise NotImplementedError


class PermissiveEnvironment(ProctorEnvironment):
    """
    Environment for terminals without window-manager access.

    Fullscreen is always granted and focus is never reported as lost, so no
    integrity signal is raised.
    """

    def __init__(self):
        self._fullscreen = False

    def request_fullscreen(self) -> bool:
        self._fullscreen = True
        return True

    def exit_fullscreen(self) -> None:
        self._fullscreen = False

    def is_fullscreen(self) -> Optional[bool]:
        return self._fullscreen

    def is_visible(self) -> Optional[bool]:
        return True


class X11Environment(ProctorEnvironment):
    """
    Terminal window proctoring on X11 desktops.

    Uses the terminal's WINDOWID with `wmctrl` (fullscreen requests),
    `xprop` (fullscreen state) and `xdotool` (active window).
    """

    FULLSCREEN_ATOM = "_NET_WM_STATE_FULLSCREEN"

    def __init__(self, window_id: Optional[str] = None, command_timeout: float = 2.0):
        self.window_id = window_id or os.environ.get("WINDOWID")
        self.command_timeout = command_timeout

    @staticmethod
    def available() -> bool:
        return platform.system() == "Linux" and bool(os.environ.get("DISPLAY")) and bool(os.environ.get("WINDOWID"))

    def _run(self, command: List[str]) -> Optional[str]:
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.command_timeout
            )
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    def request_fullscreen(self) -> bool:
        if not self.window_id:
            return False
        if self._run(['wmctrl', '-i', '-r', self.window_id, '-b', 'add,fullscreen']) is None:
            return False
        return bool(self.is_fullscreen())

    def exit_fullscreen(self) -> None:
        if self.window_id:
            self._run(['wmctrl', '-i', '-r', self.window_id, '-b', 'remove,fullscreen'])

    def is_fullscreen(self) -> Optional[bool]:
        if not self.window_id:
            return None
        output = self._run(['xprop', '-id', self.window_id, '_NET_WM_STATE'])
        if output is None:
            return None
        return self.FULLSCREEN_ATOM in output

    def is_visible(self) -> Optional[bool]:
        if not self.window_id:
            return None
        output = self._run(['xdotool', 'getactivewindow'])
        if output is None or not output.strip():
            return None
        try:
            return int(output.strip()) == int(self.window_id, 0)
        except ValueError:
            return None


def detect_environment(name: str = "auto") -> ProctorEnvironment:
    """Pick an environment by name ("auto", "x11" or "permissive")."""
    if name == "x11":
        return X11Environment()
    if name == "permissive":
        return PermissiveEnvironment()
    if X11Environment.available():
        return X11Environment()
    return PermissiveEnvironment()
