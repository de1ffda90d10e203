from __future__ import annotations

from pathlib import Path

import pytest
import requests

from conduit.config import Credential
from conduit.exceptions import (
    ApiError as ApiErrorException,
    CredentialMissingError,
    ExitCode,
    NetworkFailureError,
)
from conduit.transcription import (
    ApiError,
    EmptyAudio,
    NetworkFailure,
    NoText,
    Success,
    TranscriptionClient,
    describe_result,
    result_to_error,
)
from conduit.transcription.groq import extract_error_message


class FakeResponse:
    def __init__(self, status_code: int, content: bytes) -> None:
        self.status_code = status_code
        self.content = content

    def json(self):
        import json

        return json.loads(self.content)


@pytest.fixture
def audio(tmp_path: Path) -> Path:
    path = tmp_path / "speech.wav"
    path.write_bytes(b"RIFF....WAVEfmt ")
    return path


@pytest.fixture
def calls(monkeypatch):
    recorded = []
    responses = []

    def fake_post(url, **kwargs):
        recorded.append({"url": url, **kwargs})
        outcome = responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr("conduit.transcription.groq.requests.post", fake_post)
    return recorded, responses


def test_success_returns_stripped_text(calls, audio: Path, valid_key: str, tmp_path: Path) -> None:
    recorded, responses = calls
    responses.append(FakeResponse(200, b'{"text": "  hello world \\n"}'))
    response_file = tmp_path / "response.json"

    result = TranscriptionClient(language="de").transcribe(
        audio, Credential(valid_key), response_path=response_file
    )

    assert result == Success(text="hello world")
    assert len(recorded) == 1
    request = recorded[0]
    assert request["headers"] == {"Authorization": f"Bearer {valid_key}"}
    assert request["data"] == {
        "model": "whisper-large-v3",
        "response_format": "json",
        "language": "de",
    }
    assert request["files"]["file"][0] == "speech.wav"
    assert request["timeout"] == 30
    assert response_file.read_bytes() == b'{"text": "  hello world \\n"}'


def test_unauthorized_is_reported_once(calls, audio: Path, valid_key: str) -> None:
    recorded, responses = calls
    responses.append(FakeResponse(401, b'{"error": {"message": "Invalid API Key"}}'))

    result = TranscriptionClient().transcribe(audio, Credential(valid_key))

    assert result == ApiError(status=401, message="Invalid API Key")
    assert len(recorded) == 1

    error = result_to_error(result)
    assert isinstance(error, ApiErrorException)
    assert error.status == 401
    assert error.exit_code == ExitCode.API_ERROR
    assert "Invalid API key" in str(error)


@pytest.mark.parametrize("body", [b'{"text": ""}', b'{"text": "   "}', b"{}", b"[]"])
def test_missing_text_is_no_text(calls, audio: Path, valid_key: str, body: bytes) -> None:
    _, responses = calls
    responses.append(FakeResponse(200, body))

    assert TranscriptionClient().transcribe(audio, Credential(valid_key)) == NoText()


def test_non_json_success_is_no_text(calls, audio: Path, valid_key: str) -> None:
    _, responses = calls
    responses.append(FakeResponse(200, b"<html>gateway</html>"))

    assert TranscriptionClient().transcribe(audio, Credential(valid_key)) == NoText()


def test_connection_error_is_network_failure(calls, audio: Path, valid_key: str) -> None:
    recorded, responses = calls
    responses.append(requests.exceptions.ConnectionError("no route to host"))

    result = TranscriptionClient().transcribe(audio, Credential(valid_key))

    assert result == NetworkFailure(reason="ConnectionError")
    assert len(recorded) == 1
    assert isinstance(result_to_error(result), NetworkFailureError)


def test_empty_audio_makes_no_request(calls, tmp_path: Path, valid_key: str) -> None:
    recorded, _ = calls
    audio = tmp_path / "empty.wav"
    audio.write_bytes(b"")

    assert TranscriptionClient().transcribe(audio, Credential(valid_key)) == EmptyAudio()
    assert recorded == []


def test_missing_credential_is_refused(calls, audio: Path) -> None:
    recorded, _ = calls
    with pytest.raises(CredentialMissingError):
        TranscriptionClient().transcribe(audio, Credential(""))
    assert recorded == []


def test_malformed_key_warns_and_still_sends(calls, audio: Path) -> None:
    recorded, responses = calls
    responses.append(FakeResponse(200, b'{"text": "hi"}'))
    warnings = []
    client = TranscriptionClient()
    client.on_credential_warning = warnings.append

    result = client.transcribe(audio, Credential("sk-something-else"))

    assert result == Success(text="hi")
    assert len(warnings) == 1
    assert len(recorded) == 1


@pytest.mark.parametrize(
    "body, expected",
    [
        (b'{"error": {"message": "Rate limited"}}', "Rate limited"),
        (b'{"error": "Bad file"}', "Bad file"),
        (b'{"message": "Too large"}', "Too large"),
        (b'{"detail": "Not found"}', "Not found"),
        (b'{"error": {"code": 5}}', "request failed"),
        (b"Internal Server Error", "request failed"),
        (b"", "request failed"),
    ],
)
def test_extract_error_message(body: bytes, expected: str) -> None:
    assert extract_error_message(body) == expected


def test_describe_result_adds_status_hint() -> None:
    message = describe_result(ApiError(status=429, message="slow down"))
    assert message.startswith("Rate limit exceeded")
    assert "HTTP 429" in message
    assert describe_result(ApiError(status=418, message="teapot")) == (
        "API request failed (HTTP 418): teapot"
    )
    assert result_to_error(Success(text="ok")) is None


def test_format_warning_is_sent_once_per_key(calls, audio: Path) -> None:
    _, responses = calls
    responses.extend([FakeResponse(200, b'{"text": "a"}'), FakeResponse(200, b'{"text": "b"}')])
    warnings = []
    client = TranscriptionClient()
    client.on_credential_warning = warnings.append
    credential = Credential("sk-something-else")

    client.check_credential(credential)
    client.transcribe(audio, credential)
    client.transcribe(audio, credential)

    assert len(warnings) == 1


def test_placeholder_key_is_refused(calls, audio: Path) -> None:
    recorded, _ = calls
    with pytest.raises(CredentialMissingError):
        TranscriptionClient().transcribe(audio, Credential("your_api_key_here"))
    assert recorded == []
