"""
Session state, cancellation and resource cleanup for Conduit.

A RecordingSession describes one record -> transcribe -> deliver attempt.
The ResourceJanitor owns every temporary file and child process created for
that attempt and releases them exactly once, whichever way the session ends.
The CancellationToken carries user interrupts (SIGINT, SIGTERM, SIGHUP) to
the points where the pipeline blocks.
"""

import contextlib
import logging
import os
import signal
import subprocess
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Union

from .exceptions import SessionCancelled

if TYPE_CHECKING:
    from .audio.backends import AudioCapability
    from .notify import Notifier

logger = logging.getLogger(__name__)

# Seconds a process gets to exit after a graceful signal before it is killed
TERMINATE_GRACE_SECONDS = 2.0

CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class ResourceKind(Enum):
    """Kinds of resources tracked by the ResourceJanitor."""

    AUDIO_FILE = auto()
    TEXT_FILE = auto()
    RESPONSE_BUFFER = auto()
    LOG_FILE = auto()
    PROCESS = auto()


_FILE_SUFFIXES = {
    ResourceKind.AUDIO_FILE: ".wav",
    ResourceKind.TEXT_FILE: ".txt",
    ResourceKind.RESPONSE_BUFFER: ".json",
    ResourceKind.LOG_FILE: ".log",
}


class OutcomeKind(Enum):
    SUCCESS = auto()
    FAILED = auto()
    CANCELLED = auto()


@dataclass(frozen=True)
class SessionOutcome:
    """How a session ended, reported by the janitor after cleanup."""

    kind: OutcomeKind
    message: str = ""

    @classmethod
    def success(cls) -> "SessionOutcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def failed(cls, message: str) -> "SessionOutcome":
        return cls(OutcomeKind.FAILED, message)

    @classmethod
    def cancelled(cls) -> "SessionOutcome":
        return cls(OutcomeKind.CANCELLED, "Recording cancelled")


@dataclass
class RecordingSession:
    """
    State of one transcription attempt.

    The recorder and indicator handles are set by the ProcessSupervisor,
    the capability and focus window by the Pipeline, and ``released`` by
    the ResourceJanitor. Nothing here outlives the invocation.
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    audio_file: Optional[Path] = None
    response_file: Optional[Path] = None
    recorder: Optional[subprocess.Popen] = None
    indicator: Optional[subprocess.Popen] = None
    capability: Optional["AudioCapability"] = None
    focus_window: Optional[str] = None
    released: bool = False


def process_alive(process: Optional[subprocess.Popen]) -> bool:
    """Liveness check that also reaps a finished child."""
    return process is not None and process.poll() is None


def terminate_process(
    process: Optional[subprocess.Popen],
    sig: int = signal.SIGTERM,
    grace: float = TERMINATE_GRACE_SECONDS,
) -> Optional[int]:
    """
    Stop a child process, gracefully first.

    Sends ``sig``, waits up to ``grace`` seconds, then kills. Does nothing
    for a process that already exited.

    Returns:
        The return code, or None if there was no process.
    """
    if process is None:
        return None
    if not process_alive(process):
        return process.returncode

    try:
        process.send_signal(sig)
    except ProcessLookupError:
        return process.poll()

    try:
        return process.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning(f"Process {process.pid} ignored signal {sig}, killing it")
        process.kill()
        return process.wait()


@dataclass
class _Resource:
    kind: ResourceKind
    path: Optional[Path] = None
    process: Optional[subprocess.Popen] = None
    stop_signal: int = signal.SIGTERM


class ResourceJanitor:
    """
    Owner of the ephemeral resources of one RecordingSession.

    Resources are released in a fixed order: live processes first, in the
    order they were tracked, then temporary files. ``release_all`` runs at
    most once per session and never raises.

    Example:
        >>> session = RecordingSession()
        >>> janitor = ResourceJanitor(session)
        >>> audio = janitor.acquire(ResourceKind.AUDIO_FILE)
        >>> try:
        ...     pass  # record, transcribe, deliver
        ... finally:
        ...     janitor.release_all()
    """

    def __init__(
        self,
        session: RecordingSession,
        notifier: Optional["Notifier"] = None,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self._session = session
        self._notifier = notifier
        self._temp_dir = temp_dir
        self._registry: List[_Resource] = []
        self._lock = threading.Lock()

    @property
    def resources(self) -> List[Union[Path, subprocess.Popen]]:
        """Tracked handles in registration order."""
        return [r.path if r.process is None else r.process for r in self._registry]

    @property
    def released(self) -> bool:
        return self._session.released

    def acquire(self, kind: ResourceKind) -> Path:
        """
        Create a temporary file of the given kind and track it.

        Args:
            kind: AUDIO_FILE, TEXT_FILE, RESPONSE_BUFFER or LOG_FILE.

        Returns:
            Path of the new, empty file (mode 0600).

        Raises:
            ValueError: If asked for a PROCESS; use track() for those.
            RuntimeError: If the session was already released.
        """
        if kind is ResourceKind.PROCESS:
            raise ValueError("Processes are tracked with track(), not acquired")
        if self._session.released:
            raise RuntimeError("Session resources were already released")

        fd, name = tempfile.mkstemp(
            suffix=_FILE_SUFFIXES[kind],
            prefix=f"conduit_{self._session.session_id}_",
            dir=self._temp_dir,
        )
        os.close(fd)
        path = Path(name)

        with self._lock:
            self._registry.append(_Resource(kind=kind, path=path))
            if kind is ResourceKind.AUDIO_FILE:
                self._session.audio_file = path
            elif kind is ResourceKind.RESPONSE_BUFFER:
                self._session.response_file = path
        logger.debug(f"Acquired {kind.name.lower()}: {path}")
        return path

    def track(
        self, process: subprocess.Popen, stop_signal: int = signal.SIGTERM
    ) -> subprocess.Popen:
        """Register a child process to be stopped at release time."""
        with self._lock:
            self._registry.append(
                _Resource(kind=ResourceKind.PROCESS, process=process, stop_signal=stop_signal)
            )
        logger.debug(f"Tracking process {process.pid}")
        return process

    def release_all(self, outcome: Optional[SessionOutcome] = None) -> bool:
        """
        Release every tracked resource exactly once.

        Args:
            outcome: How the session ended. FAILED and CANCELLED outcomes
                produce an advisory notification after cleanup.

        Returns:
            True if this call performed the release, False if it had
            already happened.
        """
        with self._lock:
            if self._session.released:
                logger.debug("Resources already released")
                return False
            self._session.released = True
            registry = list(self._registry)

        logger.info("Cleaning up session resources...")

        for resource in registry:
            if resource.process is None:
                continue
            try:
                if process_alive(resource.process):
                    logger.debug(f"Terminating process {resource.process.pid}")
                terminate_process(resource.process, resource.stop_signal)
            except Exception as e:
                logger.warning(f"Failed to stop process {resource.process.pid}: {e}")

        for resource in registry:
            if resource.path is None:
                continue
            try:
                resource.path.unlink(missing_ok=True)
            except Exception as e:
                logger.warning(f"Failed to delete temp file {resource.path}: {e}")

        self._report(outcome)
        return True

    def _report(self, outcome: Optional[SessionOutcome]) -> None:
        if outcome is None or self._notifier is None:
            return
        try:
            if outcome.kind is OutcomeKind.FAILED:
                self._notifier.notify(
                    "Error",
                    outcome.message or "Transcription failed. Check the terminal for details.",
                    urgency="critical",
                )
            elif outcome.kind is OutcomeKind.CANCELLED:
                self._notifier.notify(
                    "Cancelled", outcome.message or "Recording cancelled", urgency="low"
                )
        except Exception as e:
            logger.warning(f"Failed to send outcome notification: {e}")


class CancellationToken:
    """
    Carries a user interrupt to the pipeline's blocking points.

    While the token is interruptible, a delivered signal raises
    SessionCancelled immediately in the main thread, which also aborts a
    pending HTTP request. Once shielded (during teardown) signals only mark
    the token.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._signum: Optional[int] = None
        self._interruptible = False

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def signum(self) -> Optional[int]:
        return self._signum

    @property
    def interruptible(self) -> bool:
        return self._interruptible

    def cancel(self, signum: Optional[int] = None) -> None:
        if not self._event.is_set():
            self._signum = signum
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SessionCancelled(self._signum)

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, returning early on cancellation."""
        return self._event.wait(timeout)

    def allow_interrupts(self) -> None:
        self._interruptible = True

    def shield(self) -> None:
        self._interruptible = False

    @contextlib.contextmanager
    def shielded(self) -> Iterator["CancellationToken"]:
        """
        Defer interrupts for the duration of the block.

        A signal arriving inside the block only marks the token; callers
        check raise_if_cancelled() afterwards.
        """
        previous = self._interruptible
        self._interruptible = False
        try:
            yield self
        finally:
            self._interruptible = previous

    def _handle_signal(self, signum: int, frame: object) -> None:
        logger.debug(f"Received signal {signum}")
        self.cancel(signum)
        if self._interruptible:
            self._interruptible = False
            raise SessionCancelled(signum)


@contextlib.contextmanager
def cancellation_scope(
    token: CancellationToken,
    signals: Sequence[int] = CANCEL_SIGNALS,
    interruptible: bool = True,
) -> Iterator[CancellationToken]:
    """
    Route interrupt signals to ``token`` for the duration of the block.

    Previous handlers are restored on exit. Outside the main thread signal
    handlers cannot be installed, so the token is only cancelled explicitly.

    Args:
        token: Token that receives the signals.
        signals: Signals to route.
        interruptible: Whether signals raise right away. With False the
            caller enables interrupts itself, inside its own try block.
    """
    previous = {}
    if threading.current_thread() is threading.main_thread():
        for sig in signals:
            previous[sig] = signal.signal(sig, token._handle_signal)
    else:
        logger.debug("Not in main thread; signal handlers not installed")

    if interruptible:
        token.allow_interrupts()
    try:
        yield token
    finally:
        token.shield()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
