from __future__ import annotations

import signal
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

import numpy as np
import pytest
import soundfile as sf

from conduit.audio.backends import AudioCapability
from conduit.config import Config, Credential


@dataclass(frozen=True)
class ScriptCapability(AudioCapability):
    """Recorder stand-in running a shell snippet; ``$1`` is the output file."""

    script: str = "exit 0"

    def command(self, output_path: Path) -> List[str]:
        return ["sh", "-c", self.script, "sh", str(output_path)]


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, str]] = []

    def notify(self, title: str, message: str, urgency: str = "normal") -> None:
        self.sent.append((title, message, urgency))

    @property
    def titles(self) -> List[str]:
        return [title for title, _, _ in self.sent]


@pytest.fixture
def valid_key() -> str:
    return "gsk_" + "A1b2" * 13


@pytest.fixture
def config(valid_key: str) -> Config:
    return Config(source=None, credential=Credential(valid_key), indicator=False)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def tone_wav(tmp_path: Path) -> Path:
    """Half a second of 440 Hz at 16 kHz mono."""
    path = tmp_path / "tone.wav"
    t = np.arange(8000) / 16000
    sf.write(str(path), 0.3 * np.sin(2 * np.pi * 440 * t), 16000, subtype="PCM_16")
    return path


@pytest.fixture
def script_capability():
    def make(script: str, stop_signal: int = signal.SIGTERM) -> ScriptCapability:
        return ScriptCapability(name="script", tool="sh", script=script, stop_signal=stop_signal)

    return make
