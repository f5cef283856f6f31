"""audiorelay: stream microphone audio to a relay that persists it per session."""

__version__ = "0.1.0"
