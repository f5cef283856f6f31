"""File management module for per-session audio sinks."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, BinaryIO

from ..exceptions import SinkError


logger = logging.getLogger(__name__)


class AudioSink:
    """Append-only file that receives the binary frames of one session.

    Blocking file calls run on the loop's default executor, so a slow disk only
    holds up the session doing the write.
    """

    def __init__(self, file_path: Path):
        self.file_path = Path(file_path)
        self._file: Optional[BinaryIO] = None
        self.bytes_written = 0
        self.closed = True

    async def open(self) -> None:
        """Open the sink file for appending."""
        loop = asyncio.get_running_loop()
        try:
            self._file = await loop.run_in_executor(None, self._open_blocking)
        except OSError as e:
            raise SinkError(f"Cannot open sink {self.file_path}: {e}") from e
        self.closed = False
        logger.debug(f"Sink opened: {self.file_path}")

    def _open_blocking(self) -> BinaryIO:
        # Unbuffered: a returned write has reached the OS
        return open(self.file_path, 'ab', buffering=0)

    async def write(self, data: bytes) -> int:
        """Append data to the sink.

        Returns once every byte was handed to the file, so callers awaiting
        this never run ahead of the disk.

        Raises:
            SinkError: sink is closed or the write failed
        """
        if self.closed or self._file is None:
            raise SinkError(f"Sink is closed: {self.file_path}")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write_blocking, data)
        except OSError as e:
            raise SinkError(f"Write to {self.file_path} failed: {e}") from e

        self.bytes_written += len(data)
        return len(data)

    def _write_blocking(self, data: bytes) -> None:
        start = self._file.tell()
        view = memoryview(data)
        try:
            while view:
                written = self._file.write(view)
                if written is None:
                    # Non-blocking raw file with a full buffer
                    raise BlockingIOError(f"Sink {self.file_path} would block")
                view = view[written:]
        except OSError:
            # A frame is stored whole or not at all
            self._file.truncate(start)
            self._file.seek(start)
            raise

    async def close(self) -> None:
        """Close the sink. Closing an already closed sink is a no-op."""
        if self.closed:
            return
        self.closed = True
        file, self._file = self._file, None
        if file is None:
            return

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, file.close)
        except OSError as e:
            logger.error(f"Error closing sink {self.file_path}: {e}")
            return
        logger.info(f"Audio data saved to: {self.file_path} ({self.bytes_written} bytes)")


class FileManager:
    """Manages the output directory and file naming for session recordings."""

    def __init__(self, data_dir: str = "./audio-data", file_extension: str = ".pcm"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Directory receiving one recording file per session
            file_extension: Extension appended to every recording file
        """
        self.data_dir = Path(data_dir)
        if file_extension and not file_extension.startswith('.'):
            file_extension = '.' + file_extension
        self.file_extension = file_extension

        self._ensure_directories()

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure the data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directory exists: {self.data_dir}")

    def get_session_file_path(self, session_id: str) -> Path:
        """Get the recording file path of a session.

        Args:
            session_id: Session identifier

        Returns:
            Path of the session's recording file
        """
        return self.data_dir / f"audio-{session_id}{self.file_extension}"

    async def open_sink(self, session_id: str) -> AudioSink:
        """Create and open the sink of a new session.

        Raises:
            SinkError: the file could not be created
        """
        sink = AudioSink(self.get_session_file_path(session_id))
        await sink.open()
        return sink
