"""
Audio backend detection for Conduit.

Provides the closed set of recorder capabilities (PipeWire, PulseAudio,
ALSA, SoX) and the selector that picks the best one that is both installed
and backed by a running sound server.
"""

import logging
import shutil
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..exceptions import NoBackendAvailableError

logger = logging.getLogger(__name__)

# Recording format required by the transcription API
SAMPLE_RATE = 16000
CHANNELS = 1
SAMPLE_FORMAT = "s16"


@dataclass(frozen=True)
class AudioCapability:
    """
    A recording mechanism and how to drive it.

    Subclasses only differ in their command line; everything else is data.

    Attributes:
        name: Short backend identifier ("pipewire", "pulseaudio", ...).
        tool: Recorder executable looked up on PATH.
        daemons: Process names proving the sound server is running. Empty
            for recorders that talk to the kernel driver directly.
        stop_signal: Signal that makes the recorder flush and exit cleanly.
    """

    name: str
    tool: str
    daemons: Tuple[str, ...] = ()
    stop_signal: int = signal.SIGTERM

    @property
    def needs_daemon(self) -> bool:
        return bool(self.daemons)

    def command(self, output_path: Path) -> List[str]:
        """Build the recorder command writing 16 kHz mono s16 WAV."""
        raise NotImplementedError

    def __str__(self) -> str:
        return f"{self.name} ({self.tool})"


@dataclass(frozen=True)
class PipeWireCapability(AudioCapability):
    name: str = "pipewire"
    tool: str = "pw-record"
    daemons: Tuple[str, ...] = ("pipewire",)

    def command(self, output_path: Path) -> List[str]:
        return [
            self.tool,
            f"--format={SAMPLE_FORMAT}",
            f"--rate={SAMPLE_RATE}",
            f"--channels={CHANNELS}",
            str(output_path),
        ]


@dataclass(frozen=True)
class PulseAudioCapability(AudioCapability):
    name: str = "pulseaudio"
    tool: str = "parecord"
    daemons: Tuple[str, ...] = ("pulseaudio", "pipewire-pulse")

    def command(self, output_path: Path) -> List[str]:
        return [
            self.tool,
            "--format=s16le",
            f"--rate={SAMPLE_RATE}",
            f"--channels={CHANNELS}",
            "--file-format=wav",
            str(output_path),
        ]


@dataclass(frozen=True)
class AlsaCapability(AudioCapability):
    name: str = "alsa"
    tool: str = "arecord"

    def command(self, output_path: Path) -> List[str]:
        return [
            self.tool,
            "-q",
            "-f", "S16_LE",
            "-r", str(SAMPLE_RATE),
            "-c", str(CHANNELS),
            "-t", "wav",
            str(output_path),
        ]


@dataclass(frozen=True)
class SoxCapability(AudioCapability):
    name: str = "sox"
    tool: str = "rec"
    # sox finalizes the WAV header on SIGINT, like Ctrl+C in a terminal
    stop_signal: int = signal.SIGINT

    def command(self, output_path: Path) -> List[str]:
        return [
            self.tool,
            "-q",
            "-b", "16",
            "-e", "signed-integer",
            "-r", str(SAMPLE_RATE),
            "-c", str(CHANNELS),
            str(output_path),
        ]


# Backends in descending order of preference
DEFAULT_CAPABILITIES: Tuple[AudioCapability, ...] = (
    PipeWireCapability(),
    PulseAudioCapability(),
    AlsaCapability(),
    SoxCapability(),
)


def process_running(name: str) -> bool:
    """
    Check whether a process with exactly this name is running.

    Uses ``pgrep -x``; without pgrep the daemon is assumed not to run.
    """
    try:
        result = subprocess.run(
            ["pgrep", "-x", name],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=2,
            check=False,
        )
    except FileNotFoundError:
        logger.debug("pgrep not found, cannot check sound daemons")
        return False
    except subprocess.TimeoutExpired:
        logger.debug(f"pgrep timed out looking for {name}")
        return False
    return result.returncode == 0


class AudioBackendSelector:
    """
    Chooses the recorder for a session.

    A backend qualifies when its tool is installed and, for sound-server
    backends, its daemon is running. Installed-but-idle servers are skipped
    because their recorders tend to block or record silence.

    Example:
        >>> capability = AudioBackendSelector().select()
        >>> print(capability)
        pipewire (pw-record)
    """

    def __init__(
        self,
        capabilities: Sequence[AudioCapability] = DEFAULT_CAPABILITIES,
        which: Callable[[str], Optional[str]] = shutil.which,
        is_running: Callable[[str], bool] = process_running,
    ) -> None:
        self._capabilities = list(capabilities)
        self._which = which
        self._is_running = is_running

    def is_installed(self, capability: AudioCapability) -> bool:
        return self._which(capability.tool) is not None

    def is_live(self, capability: AudioCapability) -> bool:
        if not capability.needs_daemon:
            return True
        return any(self._is_running(daemon) for daemon in capability.daemons)

    def select(self) -> AudioCapability:
        """
        Return the highest-preference backend that is installed and live.

        Returns:
            The selected AudioCapability.

        Raises:
            NoBackendAvailableError: If none of the recorder tools is installed.
        """
        installed = [c for c in self._capabilities if self.is_installed(c)]
        if not installed:
            raise NoBackendAvailableError(
                "No audio recording method found. Please install "
                "pipewire, pulseaudio-utils, alsa-utils or sox"
            )

        for capability in installed:
            if self.is_live(capability):
                logger.info(f"Detected audio system: {capability}")
                return capability
            logger.info(
                f"Skipping {capability}: {'/'.join(capability.daemons)} is not running"
            )

        fallback = installed[0]
        logger.warning(
            f"No sound server is running; trying {fallback} anyway"
        )
        return fallback
