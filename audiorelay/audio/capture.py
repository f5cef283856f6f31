"""PyAudio capture source emitting fixed-interval PCM chunks."""

import pyaudio
import time
import logging
from threading import Thread, Event
from typing import Optional
from datetime import datetime
import numpy as np

from .base import (
    CaptureSource,
    ChunkCallback,
    StopCallback,
    ErrorCallback,
    classify_capture_error,
    validate_constraints,
)
from ..exceptions import CaptureError, CaptureErrorCategory
from ..models.audio import CaptureConstraints, CaptureStats
from ..models.events import AudioEvent


logger = logging.getLogger(__name__)

NOISE_GATE_LEVEL = 0.01   # peak below this is treated as silence
AUTO_GAIN_TARGET = 0.5    # peak level auto gain aims for
AUTO_GAIN_MAX = 4.0


class PyAudioCaptureSource(CaptureSource):
    """Continuous microphone capture in a background thread."""

    def __init__(
        self,
        constraints: Optional[CaptureConstraints] = None,
        format: int = pyaudio.paInt16,
        input_device_index: Optional[int] = None,
    ):
        """Initialize capture source with specified parameters.

        Args:
            constraints: Requested format and processing settings
            format: Audio format (16-bit signed int)
            input_device_index: PyAudio device index, None for the default input
        """
        super().__init__(constraints or CaptureConstraints())
        self.format = format
        self.input_device_index = input_device_index

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self._active = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.total_bytes = 0
        self.peak_level = 0.0

        # PyAudio resources
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream: Optional[pyaudio.Stream] = None

    @classmethod
    def acquire(cls, constraints: CaptureConstraints) -> "PyAudioCaptureSource":
        """Open the microphone with the given constraints.

        Raises:
            CaptureError: the microphone could not be opened
        """
        source = cls(constraints)
        source.open()
        return source

    @property
    def is_active(self) -> bool:
        return self._active

    def open(self) -> None:
        """Open the PyAudio input stream without starting it."""
        validate_constraints(self.constraints)
        if not self.constraints.echo_cancellation:
            logger.debug("Echo cancellation disabled")
        else:
            logger.debug("Echo cancellation is left to the host audio stack")

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            if self.input_device_index is None:
                try:
                    self.pyaudio_instance.get_default_input_device_info()
                except OSError as e:
                    raise CaptureError(CaptureErrorCategory.DEVICE_NOT_FOUND, str(e)) from e
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.constraints.channels,
                rate=self.constraints.sample_rate,
                input=True,
                input_device_index=self.input_device_index,
                frames_per_buffer=self.constraints.frames_per_buffer,
                start=False,
            )
        except (OSError, ValueError, TypeError, CaptureError) as e:
            self.release()
            raise classify_capture_error(e) from e

        logger.info(f"Audio stream opened: {self.constraints.sample_rate}Hz, "
                    f"{self.constraints.channels} channel(s)")

    def start(self, timeslice_ms: int, on_chunk: ChunkCallback,
              on_stop: StopCallback, on_error: ErrorCallback) -> None:
        """Start continuous recording in background thread."""
        if self._active:
            logger.warning("Recording already in progress")
            return
        if self.stream is None:
            raise CaptureError(CaptureErrorCategory.UNKNOWN, "capture source is not open")

        bytes_per_frame = self.constraints.channels * self.pyaudio_instance.get_sample_size(self.format)
        frames_per_chunk = max(1, self.constraints.sample_rate * timeslice_ms // 1000)
        self._chunk_bytes = frames_per_chunk * bytes_per_frame
        self._on_chunk = on_chunk
        self._on_stop = on_stop
        self._on_error = on_error

        logger.info(f"Starting audio capture with {timeslice_ms}ms chunks")
        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_chunks = 0
        self.total_bytes = 0

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self._active = True
        self.recording_thread.start()

    def stop(self) -> None:
        """Stop recording; the final partial chunk is emitted before this returns."""
        if not self._active:
            return

        logger.info("Stopping audio capture")
        self.stop_event.set()

        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        logger.info(f"Capture stopped. Total chunks: {self.total_chunks}")

    def release(self) -> None:
        """Close the stream and terminate PyAudio."""
        if self._active:
            self.stop()
        stream, self.stream = self.stream, None
        if stream is not None:
            try:
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing audio stream: {e}")
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def _process_chunk(self, audio_chunk: bytes) -> bytes:
        """Apply noise gate and auto gain to 16-bit PCM."""
        samples = np.frombuffer(audio_chunk, dtype=np.int16).astype(np.float32) / 32768.0
        if samples.size == 0:
            return audio_chunk

        peak = float(np.max(np.abs(samples)))
        self.peak_level = peak

        if self.constraints.noise_suppression and peak < NOISE_GATE_LEVEL:
            return bytes(len(audio_chunk))

        if self.constraints.auto_gain_control and 0.0 < peak < AUTO_GAIN_TARGET:
            gain = min(AUTO_GAIN_TARGET / peak, AUTO_GAIN_MAX)
            samples = np.clip(samples * gain, -1.0, 32767.0 / 32768.0)
            return (samples * 32768.0).astype(np.int16).tobytes()

        return audio_chunk

    def __publish_chunk(self, audio_chunk: bytes, final: bool = False) -> None:
        if self.format == pyaudio.paInt16:
            audio_chunk = self._process_chunk(audio_chunk)

        self.total_chunks += 1
        self.total_bytes += len(audio_chunk)
        self._on_chunk(AudioEvent(
            chunk_id=f"chunk_{self.total_chunks}",
            audio_data=audio_chunk,
            timestamp=time.time(),
            sequence_number=self.total_chunks,
            final=final,
        ))

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        error: Optional[CaptureError] = None
        pending = bytearray()
        try:
            self.stream.start_stream()
            while not self.stop_event.is_set():
                pending += self.stream.read(
                    self.constraints.frames_per_buffer,
                    exception_on_overflow=False
                )
                if len(pending) >= self._chunk_bytes:
                    self.__publish_chunk(bytes(pending))
                    pending.clear()
            # Publish final partial chunk, so consumers get everything captured
            if pending:
                self.__publish_chunk(bytes(pending), final=True)
        except (OSError, ValueError) as e:
            logger.error(f"Audio capture failed: {e}")
            error = classify_capture_error(e)
        finally:
            if self.stream is not None and self.stream.is_active():
                try:
                    self.stream.stop_stream()
                except OSError as e:
                    logger.warning(f"Error stopping audio stream: {e}")
            self._active = False

        if error is not None:
            self._on_error(error)
        else:
            self._on_stop()

    def get_capture_stats(self) -> CaptureStats:
        """Get current capture statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return CaptureStats(
            is_active=self._active,
            duration_seconds=duration,
            sample_rate=self.constraints.sample_rate,
            channels=self.constraints.channels,
            total_chunks=self.total_chunks,
            total_bytes=self.total_bytes,
            peak_level=self.peak_level,
        )
