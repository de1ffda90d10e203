"""
Audio module for Conduit.

Provides backend detection, recorder supervision and recording validation.
"""

from .backends import AudioBackendSelector, AudioCapability
from .indicators import IndicatorCapability, select_indicator
from .supervisor import ExitKind, ExitOutcome, ProcessSupervisor, RecorderHandle
from .validation import AudioInfo, validate_audio

__all__ = [
    'AudioBackendSelector',
    'AudioCapability',
    'AudioInfo',
    'ExitKind',
    'ExitOutcome',
    'IndicatorCapability',
    'ProcessSupervisor',
    'RecorderHandle',
    'select_indicator',
    'validate_audio',
]
