"""
Delivery of transcribed text for Conduit.

Copies the text to the clipboard and, when the previously focused window is
known and can be reactivated, pastes it there. Every failure past the
clipboard degrades delivery instead of failing the session.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from ..exceptions import ClipboardError, InputSimulationError
from ..notify import Notifier
from .clipboard import (
    ClipboardCapability,
    DisplayServer,
    detect_display_server,
    select_clipboard,
)
from .paste import FOCUS_SETTLE_SECONDS, PasteKeystroke, XdotoolFocus, select_paste

logger = logging.getLogger(__name__)

_UNSET = object()


class DeliveryOutcome(Enum):
    """Result of delivering text to the user."""

    PASTED = "pasted"
    CLIPBOARD_ONLY = "clipboard_only"
    NO_CLIPBOARD = "no_clipboard"

    @property
    def degraded(self) -> bool:
        return self is not DeliveryOutcome.PASTED


class OutputDispatcher:
    """
    Puts transcribed text where the user wants it.

    The clipboard tool, paste mechanism and focus tool are looked up once, on
    first use, and reused for the rest of the session.

    Attributes:
        auto_paste: Whether to attempt the simulated paste at all.
        display: Display server the capabilities were chosen for.

    Example:
        >>> dispatcher = OutputDispatcher(notifier=Notifier())
        >>> dispatcher.capture_focus()  # before recording
        >>> outcome = dispatcher.deliver("hello world")
        >>> print(outcome)
        DeliveryOutcome.PASTED
    """

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        auto_paste: bool = True,
        display: Optional[DisplayServer] = None,
        clipboard: object = _UNSET,
        paste: object = _UNSET,
        focus: object = _UNSET,
        settle_delay: float = FOCUS_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.auto_paste = auto_paste
        self.display: DisplayServer = display or detect_display_server()
        self._notifier = notifier
        self._clipboard = clipboard
        self._paste = paste
        self._focus = focus
        self._settle_delay = settle_delay
        self._sleep = sleep
        self._focus_window: Optional[str] = None

        logger.debug(f"OutputDispatcher initialized (display={self.display})")

    @property
    def clipboard(self) -> Optional[ClipboardCapability]:
        if self._clipboard is _UNSET:
            self._clipboard = select_clipboard(self.display)
        return self._clipboard

    @property
    def paste(self) -> Optional[PasteKeystroke]:
        if self._paste is _UNSET:
            self._paste = select_paste(self.display) if self.auto_paste else None
        return self._paste

    @property
    def focus(self) -> Optional[XdotoolFocus]:
        if self._focus is _UNSET:
            tool = XdotoolFocus()
            self._focus = tool if tool.is_available() else None
        return self._focus

    @property
    def focus_window(self) -> Optional[str]:
        return self._focus_window

    def capture_focus(self) -> Optional[str]:
        """
        Remember the active window so the paste can go back to it.

        Call this before recording starts, while the user's target window
        still has focus.
        """
        if not self.auto_paste or self.focus is None:
            return None
        self._focus_window = self.focus.capture()
        if self._focus_window:
            logger.debug(f"Captured active window {self._focus_window}")
        else:
            logger.warning("No original window ID captured")
        return self._focus_window

    def deliver(self, text: str) -> DeliveryOutcome:
        """
        Copy ``text`` to the clipboard and paste it if possible.

        Args:
            text: The transcription to deliver.

        Returns:
            PASTED, CLIPBOARD_ONLY when the paste had to be skipped, or
            NO_CLIPBOARD when no clipboard tool worked.
        """
        if not self._copy(text):
            logger.info(f"Transcribed text: {text}")
            self._notify(
                "Text Ready",
                "No clipboard tool found. The text is shown in the terminal",
            )
            return DeliveryOutcome.NO_CLIPBOARD

        if self._paste_into_focus():
            return DeliveryOutcome.PASTED

        shortcut = "Cmd+V" if self.display == "macos" else "Ctrl+V"
        self._notify(
            "Text Ready", f"Transcribed text is in clipboard. Paste with {shortcut}"
        )
        return DeliveryOutcome.CLIPBOARD_ONLY

    def _copy(self, text: str) -> bool:
        clipboard = self.clipboard
        if clipboard is None:
            return False
        try:
            clipboard.copy(text)
        except ClipboardError as e:
            logger.warning(f"Clipboard copy failed: {e}")
            return False
        logger.debug(f"Copied {len(text)} chars with {clipboard.name}")
        return True

    def _paste_into_focus(self) -> bool:
        if not self.auto_paste:
            return False

        paste = self.paste
        if paste is None:
            return False
        if paste.needs_focus and (self.focus is None or not self._focus_window):
            logger.info("Cannot restore focus; leaving text in clipboard")
            return False

        try:
            if paste.needs_focus:
                self.focus.restore(self._focus_window)
                if self._settle_delay > 0:
                    self._sleep(self._settle_delay)
            paste.send()
        except InputSimulationError as e:
            logger.warning(f"Auto-paste failed: {e}")
            return False

        logger.info(f"Pasted text with {paste.name}")
        return True

    def _notify(self, title: str, message: str) -> None:
        if self._notifier is not None:
            self._notifier.notify(title, message)
