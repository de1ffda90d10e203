from __future__ import annotations

import signal
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

import pytest

from conduit.audio.backends import AudioCapability
from conduit.audio.indicators import IndicatorCapability
from conduit.audio.supervisor import ExitKind, ProcessSupervisor
from conduit.exceptions import RecordingFailedError, SessionCancelled
from conduit.session import CancellationToken, RecordingSession, ResourceJanitor


@dataclass(frozen=True)
class ShellIndicator(IndicatorCapability):
    script: str = "exit 0"

    def is_available(self) -> bool:
        return True

    def command(self, recorder_pid, max_duration, stop_signal=signal.SIGTERM) -> List[str]:
        return ["sh", "-c", self.script]


@dataclass(frozen=True)
class MissingCapability(AudioCapability):
    def command(self, output_path: Path) -> List[str]:
        return ["/nonexistent/conduit-recorder", str(output_path)]


@pytest.fixture
def parts(tmp_path: Path):
    session = RecordingSession()
    janitor = ResourceJanitor(session, temp_dir=tmp_path)
    supervisor = ProcessSupervisor(session, janitor, poll_interval=0.02)
    yield session, janitor, supervisor
    janitor.release_all()


def test_recorder_that_finishes_is_completed(parts, tmp_path: Path, script_capability) -> None:
    session, janitor, supervisor = parts
    out = tmp_path / "out.wav"

    handle = supervisor.start(script_capability('printf x > "$1"'), out, 5)
    outcome = supervisor.wait(handle)

    assert outcome.kind is ExitKind.COMPLETED
    assert outcome.returncode == 0
    assert not outcome.partial
    assert out.read_bytes() == b"x"
    assert session.recorder is handle.process
    assert handle.process in janitor.resources


def test_recorder_error_status_fails(parts, tmp_path: Path, script_capability) -> None:
    _, _, supervisor = parts

    handle = supervisor.start(script_capability("echo no such device >&2; exit 3"), tmp_path / "o.wav", 5)
    with pytest.raises(RecordingFailedError) as excinfo:
        supervisor.wait(handle)

    assert excinfo.value.returncode == 3
    assert "no such device" in str(excinfo.value)


def test_chatty_recorder_does_not_block(parts, tmp_path: Path, script_capability) -> None:
    _, janitor, supervisor = parts

    handle = supervisor.start(
        script_capability("head -c 200000 /dev/zero >&2; exit 0"), tmp_path / "o.wav", 5
    )
    outcome = supervisor.wait(handle)

    assert outcome.kind is ExitKind.COMPLETED
    assert handle.stderr_path.stat().st_size == 200000
    assert handle.stderr_path in janitor.resources

    janitor.release_all()
    assert not handle.stderr_path.exists()


def test_recorder_that_cannot_start(parts, tmp_path: Path) -> None:
    _, _, supervisor = parts
    capability = MissingCapability(name="missing", tool="conduit-recorder")

    with pytest.raises(RecordingFailedError):
        supervisor.start(capability, tmp_path / "o.wav", 5)


def test_non_positive_limit_is_rejected(parts, tmp_path: Path, script_capability) -> None:
    _, _, supervisor = parts
    with pytest.raises(ValueError):
        supervisor.start(script_capability("exit 0"), tmp_path / "o.wav", 0)


def test_deadline_stops_recorder_as_partial(parts, tmp_path: Path, script_capability) -> None:
    _, _, supervisor = parts

    started = time.monotonic()
    handle = supervisor.start(script_capability("exec sleep 30"), tmp_path / "o.wav", 0.3)
    outcome = supervisor.wait(handle)

    assert outcome.kind is ExitKind.TIMED_OUT
    assert outcome.partial
    assert handle.process.poll() is not None
    assert time.monotonic() - started < 5


def test_external_stop_signal_is_not_a_failure(parts, tmp_path: Path, script_capability) -> None:
    _, _, supervisor = parts

    handle = supervisor.start(script_capability("exec sleep 30"), tmp_path / "o.wav", 10)
    timer = threading.Timer(0.2, handle.process.send_signal, args=(signal.SIGTERM,))
    timer.start()
    try:
        outcome = supervisor.wait(handle)
    finally:
        timer.cancel()

    assert outcome.kind is ExitKind.STOPPED
    assert outcome.returncode == -signal.SIGTERM


def test_indicator_exit_stops_recording(parts, tmp_path: Path, script_capability) -> None:
    session, _, supervisor = parts

    handle = supervisor.start(script_capability("exec sleep 30"), tmp_path / "o.wav", 10)
    indicator = supervisor.start_indicator(handle, ShellIndicator(name="shell", script="sleep 0.2"))
    outcome = supervisor.wait(handle)

    assert session.indicator is indicator
    assert handle.stop_requested
    assert outcome.kind is ExitKind.STOPPED
    assert handle.process.poll() is not None


def test_indicator_is_stopped_after_recorder(parts, tmp_path: Path, script_capability) -> None:
    _, _, supervisor = parts

    handle = supervisor.start(script_capability("sleep 0.2"), tmp_path / "o.wav", 10)
    indicator = supervisor.start_indicator(handle, ShellIndicator(name="shell", script="exec sleep 30"))
    outcome = supervisor.wait(handle)

    assert outcome.kind is ExitKind.COMPLETED
    assert indicator.poll() is not None


def test_cancel_interrupts_wait(parts, tmp_path: Path, script_capability) -> None:
    _, janitor, supervisor = parts
    token = CancellationToken()

    handle = supervisor.start(script_capability("exec sleep 30"), tmp_path / "o.wav", 10)
    timer = threading.Timer(0.2, token.cancel)
    timer.start()
    with pytest.raises(SessionCancelled):
        supervisor.wait(handle, token)

    assert janitor.release_all()
    assert handle.process.poll() is not None


def test_stop_is_idempotent(parts, tmp_path: Path, script_capability) -> None:
    _, _, supervisor = parts

    handle = supervisor.start(script_capability("exec sleep 30"), tmp_path / "o.wav", 10)
    supervisor.stop(handle.process)
    supervisor.stop(handle.process)
    supervisor.stop(None)

    assert not supervisor.is_alive(handle.process)
