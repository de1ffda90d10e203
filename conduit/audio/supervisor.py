"""
Recorder process supervision for Conduit.

Starts the recorder as a detached child, enforces the maximum recording
duration, links it with the optional status indicator, and classifies how
the recording ended.
"""

import logging
import signal
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Optional

from ..exceptions import RecordingFailedError
from ..session import (
    CancellationToken,
    RecordingSession,
    ResourceJanitor,
    ResourceKind,
    process_alive,
    terminate_process,
)
from .backends import AudioCapability
from .indicators import IndicatorCapability

logger = logging.getLogger(__name__)

DEFAULT_MAX_DURATION = 120
LONG_MAX_DURATION = 300

# Seconds between liveness checks while waiting for the recorder
POLL_INTERVAL = 0.1

# Return codes that mean "stopped by a signal", as reported by Popen (-N)
# or by a shell wrapper (128 + N)
_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)
_STOP_RETURNCODES = frozenset(
    [-int(s) for s in _STOP_SIGNALS] + [128 + int(s) for s in _STOP_SIGNALS]
)


class ExitKind(Enum):
    """How a recording ended."""

    COMPLETED = auto()
    STOPPED = auto()
    TIMED_OUT = auto()


@dataclass(frozen=True)
class ExitOutcome:
    kind: ExitKind
    returncode: Optional[int]
    duration: float

    @property
    def partial(self) -> bool:
        """True when recording was cut short by the time limit."""
        return self.kind is ExitKind.TIMED_OUT


@dataclass
class RecorderHandle:
    """Running recorder plus its optional indicator."""

    process: subprocess.Popen
    capability: AudioCapability
    output_path: Path
    max_duration: float
    started_at: float = field(default_factory=time.monotonic)
    indicator: Optional[subprocess.Popen] = None
    timed_out: bool = False
    stop_requested: bool = False
    stderr_path: Optional[Path] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def deadline(self) -> float:
        return self.started_at + self.max_duration

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


class ProcessSupervisor:
    """
    Supervisor for the recorder and status indicator of one session.

    The recorder runs in its own process session so terminal signals reach
    only Conduit, which then decides how to stop the child. Every process is
    registered with the session's ResourceJanitor as soon as it starts.

    Example:
        >>> supervisor = ProcessSupervisor(session, janitor)
        >>> handle = supervisor.start(capability, audio_path, 120)
        >>> outcome = supervisor.wait(handle, token)
        >>> print(outcome.kind)
        ExitKind.STOPPED
    """

    def __init__(
        self,
        session: RecordingSession,
        janitor: ResourceJanitor,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self._session = session
        self._janitor = janitor
        self._poll_interval = poll_interval

    def start(
        self,
        capability: AudioCapability,
        output_path: Path,
        max_duration: float = DEFAULT_MAX_DURATION,
    ) -> RecorderHandle:
        """
        Launch the recorder.

        Args:
            capability: Backend to record with.
            output_path: WAV file the recorder writes to.
            max_duration: Seconds after which the recorder is asked to stop.

        Returns:
            A RecorderHandle for wait() and stop().

        Raises:
            RecordingFailedError: If the recorder cannot be started.
            ValueError: If max_duration is not positive.
        """
        if max_duration <= 0:
            raise ValueError("max_duration must be positive")

        cmd = capability.command(output_path)
        logger.debug(f"Starting recorder: {' '.join(cmd)}")

        # stderr goes to a file so a chatty recorder never blocks on a full pipe
        stderr_path = self._janitor.acquire(ResourceKind.LOG_FILE)
        try:
            with open(stderr_path, "wb") as stderr_file:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr_file,
                    start_new_session=True,
                )
        except OSError as e:
            raise RecordingFailedError(
                f"Failed to start {capability.tool}: {e}"
            ) from e

        self._janitor.track(process, stop_signal=capability.stop_signal)
        self._session.recorder = process

        logger.info(
            f"Recording with {capability} (pid={process.pid}, "
            f"max {max_duration:.0f}s)"
        )
        return RecorderHandle(
            process=process,
            capability=capability,
            output_path=output_path,
            max_duration=max_duration,
            stderr_path=stderr_path,
        )

    def start_indicator(
        self, handle: RecorderHandle, indicator: IndicatorCapability
    ) -> Optional[subprocess.Popen]:
        """
        Launch a status indicator linked to the recorder.

        Failure to start the indicator is logged and ignored; the recording
        is still valid without it.
        """
        cmd = indicator.command(
            handle.pid, handle.max_duration, handle.capability.stop_signal
        )
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(f"Could not start {indicator.name} indicator: {e}")
            return None

        self._janitor.track(process)
        self._session.indicator = process
        handle.indicator = process
        logger.debug(f"Started {indicator.name} indicator (pid={process.pid})")
        return process

    def is_alive(self, process: Optional[subprocess.Popen]) -> bool:
        return process_alive(process)

    def stop(self, process: Optional[subprocess.Popen], sig: int = signal.SIGTERM) -> None:
        """Stop a process; a no-op when it already exited."""
        if not self.is_alive(process):
            return
        logger.debug(f"Stopping process {process.pid}")
        terminate_process(process, sig)

    def stop_recording(self, handle: RecorderHandle) -> None:
        """Ask the recorder to finish and flush its output."""
        handle.stop_requested = True
        self.stop(handle.process, handle.capability.stop_signal)

    def wait(
        self, handle: RecorderHandle, cancel_token: Optional[CancellationToken] = None
    ) -> ExitOutcome:
        """
        Block until the recorder exits.

        The wait ends when the recorder exits on its own or via the
        indicator, when the deadline passes (graceful stop, partial
        recording), or when the session is cancelled. The indicator is torn
        down only after the recorder's exit has been observed.

        Returns:
            The ExitOutcome of the recording.

        Raises:
            SessionCancelled: If the cancel token fires while waiting.
            RecordingFailedError: If the recorder exits with an error status.
        """
        indicator_gone = False

        while self.is_alive(handle.process):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            if time.monotonic() >= handle.deadline:
                logger.warning(
                    f"Recording reached the {handle.max_duration:.0f}s limit, stopping"
                )
                handle.timed_out = True
                self.stop(handle.process, handle.capability.stop_signal)
                break

            if handle.indicator is not None and not indicator_gone:
                code = handle.indicator.poll()
                if code is not None:
                    indicator_gone = True
                    if code == 0:
                        logger.info("Stop requested from recording indicator")
                        self.stop_recording(handle)
                        break
                    logger.debug(f"Indicator exited with status {code}")

            if cancel_token is not None:
                cancel_token.wait(self._poll_interval)
            else:
                time.sleep(self._poll_interval)

        returncode = handle.process.wait()
        duration = handle.elapsed

        # Indicator teardown strictly follows the recorder's exit
        self.stop(handle.indicator)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        outcome = self._classify(handle, returncode, duration)
        logger.info(
            f"Recording ended: {outcome.kind.name.lower()} after {duration:.1f}s "
            f"(rc={returncode})"
        )
        return outcome

    def _classify(
        self, handle: RecorderHandle, returncode: int, duration: float
    ) -> ExitOutcome:
        if handle.timed_out:
            return ExitOutcome(ExitKind.TIMED_OUT, returncode, duration)
        if returncode == 0:
            return ExitOutcome(ExitKind.COMPLETED, returncode, duration)
        if handle.stop_requested or returncode in _STOP_RETURNCODES:
            return ExitOutcome(ExitKind.STOPPED, returncode, duration)

        stderr = self._read_stderr(handle)
        detail = f": {stderr}" if stderr else ""
        raise RecordingFailedError(
            f"Recording failed with exit code {returncode}{detail}",
            returncode=returncode,
        )

    @staticmethod
    def _read_stderr(handle: RecorderHandle) -> str:
        if handle.stderr_path is None:
            return ""
        try:
            data = handle.stderr_path.read_bytes()
        except OSError:
            return ""
        return data.decode("utf-8", errors="ignore").strip()[-500:]
