from __future__ import annotations

import os
import signal
import subprocess
import threading
from pathlib import Path

import pytest

from conduit.exceptions import SessionCancelled
from conduit.session import (
    CancellationToken,
    RecordingSession,
    ResourceJanitor,
    ResourceKind,
    SessionOutcome,
    cancellation_scope,
    terminate_process,
)


def _sleeper() -> subprocess.Popen:
    return subprocess.Popen(["sleep", "30"], start_new_session=True)


def test_acquire_creates_private_session_files(tmp_path: Path) -> None:
    session = RecordingSession()
    janitor = ResourceJanitor(session, temp_dir=tmp_path)

    audio = janitor.acquire(ResourceKind.AUDIO_FILE)
    response = janitor.acquire(ResourceKind.RESPONSE_BUFFER)

    assert audio.exists() and audio.suffix == ".wav"
    assert response.suffix == ".json"
    assert session.session_id in audio.name
    assert (audio.stat().st_mode & 0o777) == 0o600
    assert session.audio_file == audio
    assert session.response_file == response
    assert janitor.resources == [audio, response]


def test_processes_cannot_be_acquired(tmp_path: Path) -> None:
    janitor = ResourceJanitor(RecordingSession(), temp_dir=tmp_path)
    with pytest.raises(ValueError):
        janitor.acquire(ResourceKind.PROCESS)


def test_release_stops_processes_then_removes_files(tmp_path: Path) -> None:
    session = RecordingSession()
    janitor = ResourceJanitor(session, temp_dir=tmp_path)
    audio = janitor.acquire(ResourceKind.AUDIO_FILE)
    text = janitor.acquire(ResourceKind.TEXT_FILE)
    first = janitor.track(_sleeper())
    second = janitor.track(_sleeper())

    assert janitor.release_all() is True

    assert first.poll() is not None
    assert second.poll() is not None
    assert not audio.exists()
    assert not text.exists()
    assert session.released


def test_release_happens_once(tmp_path: Path, notifier) -> None:
    janitor = ResourceJanitor(RecordingSession(), notifier=notifier, temp_dir=tmp_path)
    janitor.acquire(ResourceKind.AUDIO_FILE)

    assert janitor.release_all(SessionOutcome.cancelled()) is True
    assert janitor.release_all(SessionOutcome.cancelled()) is False
    assert notifier.titles == ["Cancelled"]


def test_acquire_after_release_is_refused(tmp_path: Path) -> None:
    janitor = ResourceJanitor(RecordingSession(), temp_dir=tmp_path)
    janitor.release_all()
    with pytest.raises(RuntimeError):
        janitor.acquire(ResourceKind.AUDIO_FILE)


def test_release_tolerates_vanished_resources(tmp_path: Path) -> None:
    janitor = ResourceJanitor(RecordingSession(), temp_dir=tmp_path)
    audio = janitor.acquire(ResourceKind.AUDIO_FILE)
    finished = janitor.track(subprocess.Popen(["true"]))
    finished.wait()
    audio.unlink()

    assert janitor.release_all() is True


def test_failure_outcome_is_reported(tmp_path: Path, notifier) -> None:
    janitor = ResourceJanitor(RecordingSession(), notifier=notifier, temp_dir=tmp_path)

    janitor.release_all(SessionOutcome.failed("Invalid API key"))

    assert notifier.sent == [("Error", "Invalid API key", "critical")]


def test_success_outcome_is_silent(tmp_path: Path, notifier) -> None:
    janitor = ResourceJanitor(RecordingSession(), notifier=notifier, temp_dir=tmp_path)
    janitor.release_all(SessionOutcome.success())
    assert notifier.sent == []


def test_terminate_kills_process_ignoring_signal() -> None:
    process = subprocess.Popen(
        ["sh", "-c", "trap '' TERM; while :; do sleep 0.1; done"],
        start_new_session=True,
    )
    try:
        returncode = terminate_process(process, grace=0.3)
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()

    assert returncode == -signal.SIGKILL


def test_token_wait_returns_early_on_cancel() -> None:
    token = CancellationToken()
    threading.Timer(0.05, token.cancel).start()

    assert token.wait(5) is True
    assert token.cancelled
    with pytest.raises(SessionCancelled):
        token.raise_if_cancelled()


def test_signal_raises_only_while_interruptible() -> None:
    token = CancellationToken()

    with cancellation_scope(token, signals=(signal.SIGUSR1,)):
        assert token.interruptible
        with pytest.raises(SessionCancelled) as excinfo:
            os.kill(os.getpid(), signal.SIGUSR1)
            token.wait(5)
        assert excinfo.value.signum == signal.SIGUSR1

    assert token.cancelled
    assert not token.interruptible


def test_shielded_token_only_records_signal() -> None:
    token = CancellationToken()

    with cancellation_scope(token, signals=(signal.SIGUSR1,)):
        token.shield()
        os.kill(os.getpid(), signal.SIGUSR1)
        token.wait(1)

    assert token.cancelled
    assert token.signum == signal.SIGUSR1


def test_shielded_block_defers_signal_until_checked() -> None:
    token = CancellationToken()

    with cancellation_scope(token, signals=(signal.SIGUSR1,)):
        with token.shielded():
            assert not token.interruptible
            os.kill(os.getpid(), signal.SIGUSR1)
            token.wait(1)
        assert token.interruptible
        with pytest.raises(SessionCancelled):
            token.raise_if_cancelled()


def test_scope_can_start_shielded() -> None:
    token = CancellationToken()

    with cancellation_scope(token, signals=(signal.SIGUSR1,), interruptible=False):
        assert not token.interruptible
        os.kill(os.getpid(), signal.SIGUSR1)
        token.wait(1)

    assert token.cancelled


def test_scope_restores_previous_handlers() -> None:
    previous = signal.getsignal(signal.SIGUSR1)
    with cancellation_scope(CancellationToken(), signals=(signal.SIGUSR1,)):
        assert signal.getsignal(signal.SIGUSR1) is not previous
    assert signal.getsignal(signal.SIGUSR1) == previous
