"""
Custom exceptions for Conduit.

This module defines application-specific exceptions for the recording and
transcription pipeline. Every ConduitError carries the process exit code that
the command line entry point reports when the error aborts a session.
"""

from typing import Optional


class ExitCode:
    """Process exit codes reported by the ``conduit`` command."""

    OK = 0
    UNEXPECTED = 1
    CREDENTIAL = 2
    NO_BACKEND = 3
    RECORDING_FAILED = 4
    EMPTY_AUDIO = 5
    NETWORK_FAILURE = 6
    API_ERROR = 7
    NO_TEXT = 8
    CANCELLED = 130


class ConduitError(Exception):
    """Base exception for all Conduit errors."""

    exit_code: int = ExitCode.UNEXPECTED


class SessionCancelled(KeyboardInterrupt):
    """
    Raised when the user interrupts a running session.

    Derives from KeyboardInterrupt rather than ConduitError: cancellation is
    not a failure and must never be reported through the error channel.
    """

    def __init__(self, signum: Optional[int] = None) -> None:
        super().__init__(signum)
        self.signum = signum


# Configuration Exceptions
class ConfigurationError(ConduitError):
    """Raised when the configuration file cannot be found or read."""

    exit_code = ExitCode.CREDENTIAL


class CredentialMissingError(ConfigurationError):
    """Raised when the API key is absent or still set to the placeholder."""


# Audio Exceptions
class AudioError(ConduitError):
    """Base exception for audio-related errors."""


class NoBackendAvailableError(AudioError):
    """Raised when no supported recording tool is installed."""

    exit_code = ExitCode.NO_BACKEND


class RecordingFailedError(AudioError):
    """Raised when the recorder exits with an unexpected status."""

    exit_code = ExitCode.RECORDING_FAILED

    def __init__(self, message: str, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class EmptyAudioError(AudioError):
    """Raised when the recording produced no audio frames."""

    exit_code = ExitCode.EMPTY_AUDIO


# Transcription Exceptions
class TranscriptionError(ConduitError):
    """Base exception for transcription-related errors."""


class NetworkFailureError(TranscriptionError):
    """Raised when the transcription service could not be reached."""

    exit_code = ExitCode.NETWORK_FAILURE


class ApiError(TranscriptionError):
    """Raised when the transcription service answers with a non-200 status."""

    exit_code = ExitCode.API_ERROR

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class NoTextError(TranscriptionError):
    """Raised when the service accepted the audio but returned no text."""

    exit_code = ExitCode.NO_TEXT


# Output Exceptions
class OutputError(ConduitError):
    """
    Base exception for clipboard and paste errors.

    These never abort a session: the dispatcher catches them and degrades
    to clipboard-only delivery.
    """


class ClipboardError(OutputError):
    """Raised when copying text to the clipboard fails."""


class InputSimulationError(OutputError):
    """Raised when focus restoration or keystroke simulation fails."""
