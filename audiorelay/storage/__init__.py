"""Session recording storage."""

from .file_manager import AudioSink, FileManager

__all__ = [
    "AudioSink",
    "FileManager",
]
