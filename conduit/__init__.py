"""
Conduit - Voice-to-Text for the Linux Desktop

Records a short voice note through the host's audio server, transcribes it
with the Groq Whisper API and places the text on the clipboard, pasting it
into the window that was focused before recording started.

Modules:
    audio: Backend detection, recorder supervision and audio validation
    transcription: Groq transcription API client
    output: Clipboard, focus restoration and paste keystrokes
    gui: PyQt6 recording indicator
    pipeline: Session orchestration
"""

__version__ = "0.3.0"
__author__ = "Conduit Team"
