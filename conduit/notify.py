"""
Desktop notifications for Conduit.

Tries the usual Linux notification tools, then osascript on macOS, in order
and remembers the first one that is installed. Without any of them, notifications go to the log.
"""

import logging
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Sequence

logger = logging.getLogger(__name__)

Urgency = Literal["low", "normal", "critical"]

# Seconds a popup stays visible for tools that need an explicit timeout
POPUP_SECONDS = 5


@dataclass(frozen=True)
class NotificationMethod:
    """A notification tool and how to call it."""

    name: str
    tool: str
    build: Callable[[str, str, Urgency], List[str]]
    blocking: bool = True

    def is_available(self) -> bool:
        return shutil.which(self.tool) is not None


def _notify_send(title: str, message: str, urgency: Urgency) -> List[str]:
    return ["notify-send", "-u", urgency, title, message]


def _kdialog(title: str, message: str, urgency: Urgency) -> List[str]:
    return ["kdialog", "--title", title, "--passivepopup", message, str(POPUP_SECONDS)]


def _zenity(title: str, message: str, urgency: Urgency) -> List[str]:
    kind = "--error" if urgency == "critical" else "--info"
    return [
        "zenity", kind, f"--title={title}", f"--text={message}",
        f"--timeout={POPUP_SECONDS}",
    ]


def _xmessage(title: str, message: str, urgency: Urgency) -> List[str]:
    return ["xmessage", "-timeout", str(POPUP_SECONDS), f"{title}: {message}"]


def _applescript_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _osascript(title: str, message: str, urgency: Urgency) -> List[str]:
    script = (
        f"display notification {_applescript_string(message)} "
        f"with title {_applescript_string(title)}"
    )
    return ["osascript", "-e", script]


NOTIFICATION_METHODS: List[NotificationMethod] = [
    NotificationMethod("notify-send", "notify-send", _notify_send),
    NotificationMethod("kdialog", "kdialog", _kdialog),
    # zenity and xmessage keep a window open until it times out
    NotificationMethod("zenity", "zenity", _zenity, blocking=False),
    NotificationMethod("xmessage", "xmessage", _xmessage, blocking=False),
    NotificationMethod("osascript", "osascript", _osascript),
]


class Notifier:
    """
    Best-effort desktop notifier.

    The method is chosen on first use and cached for the lifetime of the
    notifier. Failures are logged and never raised.

    Example:
        >>> notifier = Notifier()
        >>> notifier.notify("Recording Started", "Click the indicator to stop")
    """

    def __init__(self, methods: Optional[Sequence[NotificationMethod]] = None) -> None:
        self._methods = list(methods) if methods is not None else NOTIFICATION_METHODS
        self._method: Optional[NotificationMethod] = None
        self._selected = False
        self.background: List[subprocess.Popen] = []

    @property
    def method(self) -> Optional[NotificationMethod]:
        """The selected notification method, or None for log-only."""
        if not self._selected:
            self._method = next(
                (m for m in self._methods if m.is_available()), None
            )
            self._selected = True
            name = self._method.name if self._method else "log"
            logger.debug(f"Notification method: {name}")
        return self._method

    def notify(self, title: str, message: str, urgency: Urgency = "normal") -> None:
        """
        Show a notification.

        Args:
            title: Short summary line.
            message: Body text.
            urgency: "low", "normal" or "critical".
        """
        method = self.method
        if method is None:
            logger.info(f"NOTIFICATION: {title} - {message}")
            return

        cmd = method.build(title, message, urgency)
        try:
            if method.blocking:
                subprocess.run(
                    cmd,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    timeout=POPUP_SECONDS,
                    check=False,
                )
            else:
                process = subprocess.Popen(
                    cmd,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
                self._reap_later(process)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"{method.name} notification failed: {e}")
            logger.info(f"NOTIFICATION: {title} - {message}")

    def _reap_later(self, process: subprocess.Popen) -> None:
        # The popup outlives notify(); a waiter thread collects its status
        self.background.append(process)
        threading.Thread(
            target=process.wait, name=f"notify-reaper-{process.pid}", daemon=True
        ).start()
