"""
Clipboard access for Conduit.

Offers the command line clipboard tools that work under the current display
server, in order of preference, and detects which display server is running.
"""

import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Sequence, Tuple

from ..exceptions import ClipboardError

logger = logging.getLogger(__name__)

DisplayServer = Literal["wayland", "x11", "macos", "unknown"]

CLIPBOARD_TIMEOUT = 5


def detect_display_server(platform: Optional[str] = None) -> DisplayServer:
    """
    Detect the current display server (X11, Wayland or the macOS desktop).

    Args:
        platform: Value of sys.platform to assume; the running one if None.

    Returns:
        'wayland', 'x11', 'macos', or 'unknown'.

    Note:
        On Linux detection is based on environment variables. XDG_SESSION_TYPE
        is the most reliable; WAYLAND_DISPLAY and DISPLAY are used as fallbacks.
    """
    if (platform or sys.platform) == "darwin":
        return "macos"

    session_type = os.environ.get("XDG_SESSION_TYPE", "").lower()
    if session_type == "wayland":
        return "wayland"
    if session_type == "x11":
        return "x11"

    if os.environ.get("WAYLAND_DISPLAY"):
        return "wayland"
    if os.environ.get("DISPLAY"):
        return "x11"
    return "unknown"


@dataclass(frozen=True)
class ClipboardCapability:
    """
    A clipboard tool that reads the text to copy from stdin.

    Attributes:
        name: Tool name, also the executable looked up on PATH.
        args: Full command line.
        protocols: Display servers the tool can serve. X11 tools also work
            on Wayland through XWayland when DISPLAY is set.
    """

    name: str
    args: Tuple[str, ...]
    protocols: Tuple[DisplayServer, ...]

    def is_available(self, which: Callable[[str], Optional[str]] = shutil.which) -> bool:
        return which(self.name) is not None

    def supports(self, display: DisplayServer) -> bool:
        if display == "unknown" or display in self.protocols:
            return True
        return display == "wayland" and "x11" in self.protocols and bool(
            os.environ.get("DISPLAY")
        )

    def copy(self, text: str) -> None:
        """
        Put ``text`` on the clipboard.

        Raises:
            ClipboardError: If the tool fails or cannot be run.
        """
        # The tools fork a background owner of the selection; leaving their
        # stdout/stderr attached would keep run() waiting on it.
        try:
            result = subprocess.run(
                list(self.args),
                input=text.encode("utf-8"),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=CLIPBOARD_TIMEOUT,
                check=False,
            )
        except FileNotFoundError as e:
            raise ClipboardError(f"{self.name} was not found") from e
        except subprocess.TimeoutExpired as e:
            raise ClipboardError(f"{self.name} timed out") from e

        if result.returncode != 0:
            raise ClipboardError(f"{self.name} exited with status {result.returncode}")


CLIPBOARD_CAPABILITIES: Sequence[ClipboardCapability] = (
    ClipboardCapability("wl-copy", ("wl-copy",), ("wayland",)),
    ClipboardCapability("xclip", ("xclip", "-selection", "clipboard"), ("x11",)),
    ClipboardCapability("xsel", ("xsel", "--clipboard", "--input"), ("x11",)),
    ClipboardCapability("pbcopy", ("pbcopy",), ("macos",)),
)


def available_clipboards(
    display: DisplayServer,
    candidates: Sequence[ClipboardCapability] = CLIPBOARD_CAPABILITIES,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> List[ClipboardCapability]:
    """Return the installed clipboard tools usable on ``display``, best first."""
    return [c for c in candidates if c.supports(display) and c.is_available(which)]


def select_clipboard(
    display: DisplayServer,
    candidates: Sequence[ClipboardCapability] = CLIPBOARD_CAPABILITIES,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> Optional[ClipboardCapability]:
    """Return the preferred clipboard tool for ``display``, or None."""
    usable = available_clipboards(display, candidates, which)
    if not usable:
        logger.warning("No clipboard utility found")
        return None
    logger.debug(f"Clipboard tool: {usable[0].name}")
    return usable[0]
