"""
Voice Package

Gateway listeners and the /voice slash commands for temp voice channels.
"""

from .commands import VoiceCommands
from .events import VoiceEvents

__all__ = ["VoiceCommands", "VoiceEvents"]
