"""
Focus restoration and paste keystroke simulation for Conduit.

The window that had focus when recording started is remembered through
xdotool and reactivated before Ctrl+V is sent. Keystrokes can come from
pynput or xdotool (X11), ydotool (Wayland, needs the ydotoold daemon) or
osascript (macOS, Cmd+V to the frontmost application).
"""

import importlib.util
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from ..exceptions import InputSimulationError
from .clipboard import DisplayServer

logger = logging.getLogger(__name__)

# Delay between focus restoration and the keystroke; without it the paste
# lands in whatever window had focus before activation took effect
FOCUS_SETTLE_SECONDS = 0.2

COMMAND_TIMEOUT = 5

# Linux input event codes used by ydotool
KEY_LEFTCTRL = 29
KEY_V = 47


def _run(cmd: Sequence[str], timeout: float = COMMAND_TIMEOUT) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        raise InputSimulationError(f"{cmd[0]} timed out")
    except FileNotFoundError:
        raise InputSimulationError(f"{cmd[0]} was not found")

    if result.returncode != 0:
        error_msg = result.stderr.strip() or "Unknown error"
        raise InputSimulationError(f"{cmd[0]} failed: {error_msg}")
    return result


class XdotoolFocus:
    """Captures and restores the active X11 window."""

    name = "xdotool"

    def is_available(self) -> bool:
        return shutil.which("xdotool") is not None

    def capture(self) -> Optional[str]:
        """
        Return the id of the currently active window.

        Returns:
            The window id, or None if it could not be determined.
        """
        try:
            result = _run(["xdotool", "getactivewindow"])
        except InputSimulationError as e:
            logger.debug(f"Could not capture active window: {e}")
            return None
        window_id = result.stdout.strip()
        return window_id or None

    def restore(self, window_id: str) -> None:
        """
        Reactivate a window and wait until the window manager has done so.

        Raises:
            InputSimulationError: If the window cannot be activated.
        """
        _run(["xdotool", "windowactivate", "--sync", window_id])


@dataclass(frozen=True)
class PasteKeystroke:
    """
    A way to send the paste shortcut to the focused window.

    Attributes:
        name: Tool name.
        needs_focus: Whether the target window must be restored first.
            False when the keystroke always reaches the frontmost app.
    """

    name: str
    needs_focus: bool = True

    def is_available(self, display: DisplayServer) -> bool:
        raise NotImplementedError

    def send(self) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class XdotoolPaste(PasteKeystroke):
    name: str = "xdotool"

    def is_available(self, display: DisplayServer) -> bool:
        return display in ("x11", "unknown") and shutil.which("xdotool") is not None

    def send(self) -> None:
        _run(["xdotool", "key", "--clearmodifiers", "ctrl+v"])


def ydotool_daemon_running() -> bool:
    """
    Check whether the ydotoold daemon can be reached.

    Looks for the daemon's socket in its usual locations, then for the
    process itself.
    """
    socket_paths = [
        os.environ.get("YDOTOOL_SOCKET", ""),
        os.path.expanduser("~/.ydotool_socket"),
        "/tmp/.ydotool_socket",
        f"/run/user/{os.getuid()}/.ydotool_socket",
    ]
    if any(p and os.path.exists(p) for p in socket_paths):
        return True

    try:
        result = subprocess.run(
            ["pgrep", "-x", "ydotoold"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=2,
            check=False,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


@dataclass(frozen=True)
class YdotoolPaste(PasteKeystroke):
    name: str = "ydotool"

    def is_available(self, display: DisplayServer) -> bool:
        if display == "macos" or shutil.which("ydotool") is None:
            return False
        return ydotool_daemon_running()

    def send(self) -> None:
        _run([
            "ydotool", "key",
            f"{KEY_LEFTCTRL}:1", f"{KEY_V}:1", f"{KEY_V}:0", f"{KEY_LEFTCTRL}:0",
        ])


@dataclass(frozen=True)
class PynputPaste(PasteKeystroke):
    name: str = "pynput"

    def is_available(self, display: DisplayServer) -> bool:
        return display == "x11" and importlib.util.find_spec("pynput") is not None

    def send(self) -> None:
        from pynput.keyboard import Controller, Key

        try:
            keyboard = Controller()
            with keyboard.pressed(Key.ctrl):
                keyboard.press("v")
                keyboard.release("v")
        except Exception as e:
            raise InputSimulationError(f"X11 paste keystroke failed: {e}") from e


@dataclass(frozen=True)
class OsascriptPaste(PasteKeystroke):
    name: str = "osascript"
    needs_focus: bool = False

    def is_available(self, display: DisplayServer) -> bool:
        return display == "macos" and shutil.which("osascript") is not None

    def send(self) -> None:
        _run([
            "osascript", "-e",
            'tell application "System Events" to keystroke "v" using command down',
        ])


# pynput first on X11; xdotool covers X11 sessions without it
PASTE_KEYSTROKES: Sequence[PasteKeystroke] = (
    PynputPaste(),
    XdotoolPaste(),
    YdotoolPaste(),
    OsascriptPaste(),
)


def select_paste(
    display: DisplayServer,
    candidates: Sequence[PasteKeystroke] = PASTE_KEYSTROKES,
) -> Optional[PasteKeystroke]:
    """Return the first usable paste mechanism for ``display``, or None."""
    for candidate in candidates:
        if candidate.is_available(display):
            logger.debug(f"Paste keystroke: {candidate.name}")
            return candidate
    logger.info("No paste keystroke tool available")
    return None

