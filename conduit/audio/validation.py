"""
Checks on a finished recording before it is uploaded.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf

from ..exceptions import EmptyAudioError

logger = logging.getLogger(__name__)

# Peak amplitude below which a recording is reported as silent
SILENCE_THRESHOLD = 0.001

# Canonical RIFF/WAVE header length
WAV_HEADER_SIZE = 44

# Bytes past the header that count as audio when the header declares none.
# Recorders killed mid-stream leave the data chunk size at 0.
MIN_UNDECLARED_PAYLOAD = 1024


@dataclass(frozen=True)
class AudioInfo:
    """What is known about a recorded file."""

    path: Path
    size_bytes: int
    frames: Optional[int] = None
    sample_rate: Optional[int] = None
    duration: Optional[float] = None
    peak: Optional[float] = None
    rms: Optional[float] = None

    @property
    def is_silent(self) -> bool:
        return self.peak is not None and self.peak < SILENCE_THRESHOLD


def validate_audio(path: Path) -> AudioInfo:
    """
    Make sure a recording contains audio.

    Zero-byte files and header-only WAV files are rejected. A file that
    libsndfile cannot parse, or whose header declares no frames while
    payload follows it, is passed through with a warning; the
    transcription service gets the final say on its format.

    Args:
        path: The recorded file.

    Returns:
        AudioInfo describing the recording.

    Raises:
        EmptyAudioError: If no audio was recorded.
    """
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        raise EmptyAudioError("No audio was recorded") from None

    if size == 0:
        raise EmptyAudioError("No audio was recorded")

    try:
        audio, sample_rate = sf.read(str(path), dtype="float32", always_2d=True)
    except (RuntimeError, sf.LibsndfileError) as e:
        logger.warning(f"Could not inspect recording {path.name}: {e}")
        return AudioInfo(path=path, size_bytes=size)

    frames = len(audio)
    if frames == 0:
        if size < WAV_HEADER_SIZE + MIN_UNDECLARED_PAYLOAD:
            raise EmptyAudioError("No audio was recorded")
        logger.warning(
            f"Recording {path.name} declares no frames but holds {size} bytes, "
            "sending it as is"
        )
        return AudioInfo(path=path, size_bytes=size, sample_rate=sample_rate)

    peak = float(np.max(np.abs(audio)))
    rms = float(np.sqrt(np.mean(audio ** 2)))
    duration = frames / sample_rate

    info = AudioInfo(
        path=path,
        size_bytes=size,
        frames=frames,
        sample_rate=sample_rate,
        duration=duration,
        peak=peak,
        rms=rms,
    )

    logger.info(
        f"Audio recorded successfully ({size} bytes, {duration:.2f}s, "
        f"max_amp={peak:.4f}, rms={rms:.6f})"
    )
    if info.is_silent:
        logger.warning("Audio is essentially silent!")

    return info
