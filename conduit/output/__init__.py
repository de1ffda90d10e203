"""
Output module for Conduit.

Provides clipboard access and paste simulation for transcribed text.
"""

from .dispatcher import DeliveryOutcome, OutputDispatcher

__all__ = ['DeliveryOutcome', 'OutputDispatcher']
