"""
Recording status indicators for Conduit.

An indicator is a small UI process that shows that recording is in progress
and lets the user stop it. Both variants stop the recorder themselves by
signalling its PID; the supervisor only has to tear them down afterwards.
"""

import importlib.util
import logging
import shutil
import signal
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndicatorCapability:
    """A status indicator program and how to launch it for a recorder PID."""

    name: str

    def is_available(self) -> bool:
        raise NotImplementedError

    def command(
        self, recorder_pid: int, max_duration: float, stop_signal: int = signal.SIGTERM
    ) -> List[str]:
        raise NotImplementedError


@dataclass(frozen=True)
class YadIndicator(IndicatorCapability):
    """System tray icon via ``yad --notification``; clicking it stops recording."""

    name: str = "yad"

    def is_available(self) -> bool:
        return shutil.which("yad") is not None

    def command(
        self, recorder_pid: int, max_duration: float, stop_signal: int = signal.SIGTERM
    ) -> List[str]:
        return [
            "yad",
            "--notification",
            "--image=audio-input-microphone",
            "--text=Recording in progress. Click to stop.",
            f"--command=kill -{int(stop_signal)} {recorder_pid}",
            "--no-middle",
        ]


@dataclass(frozen=True)
class QtIndicator(IndicatorCapability):
    """Conduit's own PyQt6 window with a Stop button."""

    name: str = "qt"

    def is_available(self) -> bool:
        return importlib.util.find_spec("PyQt6") is not None

    def command(
        self, recorder_pid: int, max_duration: float, stop_signal: int = signal.SIGTERM
    ) -> List[str]:
        return [
            sys.executable,
            "-m", "conduit.gui.indicator",
            "--pid", str(recorder_pid),
            "--max-duration", str(int(max_duration)),
            "--signal", str(int(stop_signal)),
        ]


DEFAULT_INDICATORS: Sequence[IndicatorCapability] = (
    YadIndicator(),
    QtIndicator(),
)


def select_indicator(
    candidates: Sequence[IndicatorCapability] = DEFAULT_INDICATORS,
) -> Optional[IndicatorCapability]:
    """
    Return the first available indicator, or None.

    Without an indicator the user stops recording with Ctrl+C or waits for
    the timeout.
    """
    for candidate in candidates:
        if candidate.is_available():
            logger.debug(f"Recording indicator: {candidate.name}")
            return candidate
    logger.info("No recording indicator available; press Ctrl+C to stop")
    return None
