"""
Groq Whisper API client for Conduit.

Uploads a recording to the OpenAI-compatible transcription endpoint and maps
every outcome onto a small TranscriptionResult union. The request is made
exactly once: failures are surfaced, never retried against the paid API.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

import requests

from ..config import PLACEHOLDER_KEY, Credential
from ..exceptions import (
    ApiError as ApiErrorException,
    CredentialMissingError,
    EmptyAudioError,
    NetworkFailureError,
    NoTextError,
    TranscriptionError,
)

logger = logging.getLogger(__name__)

API_URL = "https://api.groq.com/openai/v1/audio/transcriptions"
DEFAULT_MODEL = "whisper-large-v3"
DEFAULT_LANGUAGE = "en"
RESPONSE_FORMAT = "json"
REQUEST_TIMEOUT = 30

GENERIC_ERROR = "request failed"


@dataclass(frozen=True)
class Success:
    text: str


@dataclass(frozen=True)
class ApiError:
    status: int
    message: str


@dataclass(frozen=True)
class EmptyAudio:
    pass


@dataclass(frozen=True)
class NoText:
    pass


@dataclass(frozen=True)
class NetworkFailure:
    reason: str = ""


TranscriptionResult = Union[Success, ApiError, EmptyAudio, NoText, NetworkFailure]


# User-facing explanations for common HTTP statuses
_STATUS_HINTS = {
    401: "Invalid API key. Please check your .env file",
    413: "Recording is too large for the transcription service",
    429: "Rate limit exceeded. Please try again later",
    500: "Groq service temporarily unavailable",
    502: "Groq service temporarily unavailable",
    503: "Groq service temporarily unavailable",
}


def extract_error_message(body: Any) -> str:
    """
    Pull a human-readable message out of an error response body.

    Accepts the usual shapes ({"error": {"message": ...}}, {"error": "..."},
    {"message": ...}, {"detail": ...}) and falls back to a generic text.
    """
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return GENERIC_ERROR

    if not isinstance(body, dict):
        return GENERIC_ERROR

    error = body.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    elif isinstance(error, str) and error.strip():
        return error.strip()

    for key in ("message", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    return GENERIC_ERROR


def describe_result(result: TranscriptionResult) -> str:
    """Return the user-facing message for a non-success result."""
    if isinstance(result, Success):
        return "Transcription completed"
    if isinstance(result, EmptyAudio):
        return "No audio was recorded"
    if isinstance(result, NoText):
        return "No text was transcribed"
    if isinstance(result, NetworkFailure):
        return "Failed to connect to transcription service"
    hint = _STATUS_HINTS.get(result.status)
    base = f"API request failed (HTTP {result.status}): {result.message}"
    return f"{hint} ({base})" if hint else base


def result_to_error(result: TranscriptionResult) -> Optional[TranscriptionError]:
    """
    Convert a failed result into the exception that aborts the pipeline.

    Returns:
        None for Success, otherwise the matching ConduitError.
    """
    message = describe_result(result)
    if isinstance(result, Success):
        return None
    if isinstance(result, EmptyAudio):
        return EmptyAudioError(message)
    if isinstance(result, NoText):
        return NoTextError(message)
    if isinstance(result, NetworkFailure):
        return NetworkFailureError(message)
    return ApiErrorException(message, status=result.status)


class TranscriptionClient:
    """
    Client for the Groq audio transcription endpoint.

    Attributes:
        model: Whisper model identifier sent with every request.
        language: Language hint for the recognizer.
        timeout: Request timeout in seconds, separate from the recording limit.

    Callbacks:
        on_credential_warning: Called when the API key does not match the
            expected format. The request is still attempted.
            Signature: (message: str) -> None

    Example:
        >>> client = TranscriptionClient()
        >>> result = client.transcribe(Path("speech.wav"), credential)
        >>> if isinstance(result, Success):
        ...     print(result.text)
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        language: str = DEFAULT_LANGUAGE,
        timeout: float = REQUEST_TIMEOUT,
        url: str = API_URL,
    ) -> None:
        self.model = model
        self.language = language
        self.timeout = timeout
        self.url = url

        self._warned_credential: Optional[Credential] = None

        self.on_credential_warning: Optional[Callable[[str], None]] = None

    def check_credential(self, credential: Optional[Credential]) -> None:
        """
        Validate the credential before a request.

        Raises:
            CredentialMissingError: If there is no key or it is the placeholder.
        """
        if credential is None or not credential.reveal():
            raise CredentialMissingError("Groq API key not found or not configured")
        if credential.reveal() == PLACEHOLDER_KEY:
            raise CredentialMissingError(
                f"Please replace '{PLACEHOLDER_KEY}' with your actual Groq API key"
            )

        if not credential.is_well_formed() and credential != self._warned_credential:
            self._warned_credential = credential
            message = (
                "API key format appears invalid. Groq keys should start with "
                "'gsk_' followed by 52 letters and digits"
            )
            logger.warning(message)
            if self.on_credential_warning:
                try:
                    self.on_credential_warning(message)
                except Exception as e:
                    logger.warning(f"Error in on_credential_warning callback: {e}")

    def transcribe(
        self,
        audio_path: Path,
        credential: Credential,
        response_path: Optional[Path] = None,
    ) -> TranscriptionResult:
        """
        Transcribe a recording.

        Args:
            audio_path: WAV file to upload.
            credential: The API key.
            response_path: Optional file that receives the raw response body.

        Returns:
            Exactly one TranscriptionResult variant.

        Raises:
            CredentialMissingError: If the credential is missing.
        """
        try:
            size = audio_path.stat().st_size
        except FileNotFoundError:
            size = 0
        if size == 0:
            logger.error("Audio file is empty, not uploading")
            return EmptyAudio()

        self.check_credential(credential)

        logger.info(f"Sending audio to Groq API for transcription ({size} bytes)...")
        try:
            with open(audio_path, "rb") as audio:
                response = requests.post(
                    self.url,
                    headers={"Authorization": f"Bearer {credential.reveal()}"},
                    files={"file": (audio_path.name, audio, "audio/wav")},
                    data={
                        "model": self.model,
                        "response_format": RESPONSE_FORMAT,
                        "language": self.language,
                    },
                    timeout=self.timeout,
                )
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to call Groq API: {type(e).__name__}")
            logger.debug(f"Request error: {e}")
            return NetworkFailure(reason=type(e).__name__)

        if response_path is not None:
            self._store_response(response_path, response.content)

        return self._map_response(response)

    def _map_response(self, response: requests.Response) -> TranscriptionResult:
        status = response.status_code

        if status != 200:
            message = extract_error_message(response.content)
            logger.error(f"API Error (HTTP {status}): {message}")
            return ApiError(status=status, message=message)

        try:
            payload = response.json()
        except ValueError:
            logger.error("Transcription response is not valid JSON")
            return NoText()

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text.strip():
            logger.error("No text in API response")
            return NoText()

        text = text.strip()
        logger.info(f"Transcription completed ({len(text)} chars)")
        return Success(text=text)

    @staticmethod
    def _store_response(path: Path, content: bytes) -> None:
        try:
            path.write_bytes(content)
        except OSError as e:
            logger.warning(f"Could not write response buffer {path}: {e}")
