"""
Recording indicator window for Conduit.

A small always-on-top PyQt6 window shown while the recorder runs. It shows
the elapsed time against the recording limit and offers a Stop button that
signals the recorder PID. The window closes by itself once the recorder has
exited.

Run as a separate process by the ProcessSupervisor:
    python -m conduit.gui.indicator --pid 1234 --max-duration 120
"""

import argparse
import logging
import os
import signal
import sys
import time
from typing import List, Optional

from PyQt6.QtCore import Qt, QTimer
from PyQt6.QtGui import QCloseEvent
from PyQt6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QWidget,
)

logger = logging.getLogger(__name__)

# GNOME palette red, as used for the recording state
RECORDING_COLOR = "#e01b24"

POLL_INTERVAL_MS = 250


def pid_alive(pid: int) -> bool:
    """Check whether a process exists without signalling it."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


class RecordingIndicator(QWidget):
    """
    Frameless window with elapsed time and a Stop button.

    Args:
        recorder_pid: PID of the recorder to watch and stop.
        max_duration: Recording limit in seconds, shown next to the timer.
        stop_signal: Signal sent to the recorder when Stop is clicked.
    """

    def __init__(
        self,
        recorder_pid: int,
        max_duration: int,
        stop_signal: int = signal.SIGTERM,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._pid = recorder_pid
        self._max_duration = max_duration
        self._stop_signal = stop_signal
        self._started = time.monotonic()
        self._stopping = False

        self._setup_ui()

        self._timer = QTimer(self)
        self._timer.timeout.connect(self._refresh)
        self._timer.start(POLL_INTERVAL_MS)

    def _setup_ui(self) -> None:
        self.setWindowTitle("Speech Recording")
        self.setWindowFlags(
            Qt.WindowType.WindowStaysOnTopHint
            | Qt.WindowType.FramelessWindowHint
            | Qt.WindowType.Tool
        )

        layout = QHBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 8)
        layout.setSpacing(10)

        dot = QLabel("●")
        dot.setStyleSheet(f"color: {RECORDING_COLOR}; font-size: 16px;")
        layout.addWidget(dot)

        self._time_label = QLabel(self._label_text(0))
        self._time_label.setStyleSheet("font-size: 13px;")
        layout.addWidget(self._time_label)

        stop_button = QPushButton("Stop")
        stop_button.setDefault(True)
        stop_button.clicked.connect(self.stop_recording)
        layout.addWidget(stop_button)

    def _label_text(self, elapsed: float) -> str:
        return (
            f"Recording {format_elapsed(elapsed)} / "
            f"{format_elapsed(self._max_duration)}"
        )

    def _refresh(self) -> None:
        if not pid_alive(self._pid):
            logger.debug(f"Recorder {self._pid} is gone, closing indicator")
            # Nothing left to stop; closeEvent must not signal a reused PID
            self._stopping = True
            self._timer.stop()
            QApplication.quit()
            return
        self._time_label.setText(self._label_text(time.monotonic() - self._started))

    def stop_recording(self) -> None:
        """Signal the recorder to finish and close the window."""
        if self._stopping:
            return
        self._stopping = True
        try:
            os.kill(self._pid, self._stop_signal)
            logger.info(f"Sent signal {self._stop_signal} to recorder {self._pid}")
        except ProcessLookupError:
            logger.debug("Recorder already exited")
        QApplication.quit()

    def closeEvent(self, event: QCloseEvent) -> None:
        # Closing the window means the user is done talking
        self.stop_recording()
        event.accept()


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Conduit recording indicator")
    parser.add_argument("--pid", type=int, required=True, help="recorder PID")
    parser.add_argument(
        "--max-duration", type=int, default=120, help="recording limit in seconds"
    )
    parser.add_argument(
        "--signal", type=int, default=int(signal.SIGTERM), help="stop signal number"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Indicator entry point.

    Returns:
        0 when the user stopped recording or the recorder exited, 1 when
        the window could not be shown.
    """
    args = _parse_args(argv)

    if not pid_alive(args.pid):
        return 0

    try:
        qt_app = QApplication(sys.argv[:1])
    except Exception as e:
        logger.error(f"Failed to start indicator: {e}")
        return 1
    qt_app.setApplicationName("Conduit")

    window = RecordingIndicator(args.pid, args.max_duration, args.signal)
    window.show()

    qt_app.exec()
    return 0


if __name__ == "__main__":
    sys.exit(main())
