"""
Transcription module for Conduit.

Provides speech-to-text transcription through the Groq Whisper API.
"""

from .groq import (
    ApiError,
    EmptyAudio,
    NetworkFailure,
    NoText,
    Success,
    TranscriptionClient,
    TranscriptionResult,
    describe_result,
    result_to_error,
)

__all__ = [
    'ApiError',
    'EmptyAudio',
    'NetworkFailure',
    'NoText',
    'Success',
    'TranscriptionClient',
    'TranscriptionResult',
    'describe_result',
    'result_to_error',
]
