"""
Audio capture for Local Dictation.

Records from the default microphone while the hotkey is held and writes the
result as a 16 kHz mono 16-bit WAV artifact.
"""

import itertools
import threading
import time
import wave
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import numpy as np
import sounddevice as sd

from .artifact import AudioArtifact, move_to_failed, validate_wav
from .config import CONFIG_DIR, AudioConfig, get_config
from .errors import CaptureError, InvalidArtifactError
from .utils import log

RECORDINGS_DIR = CONFIG_DIR / "recordings"

# Number of recordings kept on disk for retry/inspection
RECORDINGS_KEPT = 20

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class CaptureHandle:
    id: int
    started: float


class Recorder:
    """Microphone audio recorder with thread-safe start/finish."""

    def __init__(self, directory: Optional[Path] = None, settings: Optional[AudioConfig] = None):
        self._settings = settings if settings is not None else get_config().audio
        self._dir = Path(directory) if directory is not None else RECORDINGS_DIR
        self._recording = threading.Event()
        self._chunks = []
        self._chunks_lock = threading.Lock()
        self._stream = None
        self._state_lock = threading.Lock()
        self._handle: Optional[CaptureHandle] = None

    @property
    def recording(self) -> bool:
        """Whether recording is currently active."""
        return self._recording.is_set()

    @property
    def duration(self) -> float:
        """Get current recording duration in seconds."""
        handle = self._handle
        if handle and self._recording.is_set():
            return time.time() - handle.started
        return 0.0

    def start_capture(self) -> CaptureHandle:
        """Start recording audio from microphone."""
        with self._state_lock:
            if self._recording.is_set():
                raise CaptureError("Recording already active")
            try:
                with self._chunks_lock:
                    self._chunks = []
                self._stream = sd.InputStream(
                    samplerate=self._settings.sample_rate,
                    channels=1,
                    dtype=np.float32,
                    callback=self._callback,
                    blocksize=1024
                )
                self._stream.start()
            except Exception as e:
                self._stream = None
                raise CaptureError(f"Mic error: {e}") from e
            self._handle = CaptureHandle(id=next(_handle_ids), started=time.time())
            self._recording.set()
            log("Recording...", "REC")
            return self._handle

    def finish_capture(self, handle: CaptureHandle) -> AudioArtifact:
        """
        Stop recording and write the WAV artifact.

        Raises:
            CaptureError: Unknown handle, no audio, or the file could not be written.
        """
        with self._state_lock:
            if self._handle is None or handle.id != self._handle.id:
                raise CaptureError("Capture handle is not active")
            self._handle = None
            self._recording.clear()
            if self._stream:
                try:
                    self._stream.stop()
                    self._stream.close()
                except Exception as e:
                    log(f"Stream cleanup warning: {e}", "WARN")
                self._stream = None
            with self._chunks_lock:
                chunks, self._chunks = self._chunks, []

        if not chunks:
            raise CaptureError("No audio captured")
        data = np.concatenate(chunks).reshape(-1)

        max_duration = self._settings.max_duration
        if max_duration > 0 and len(data) > max_duration * self._settings.sample_rate:
            log(f"Recording trimmed to {max_duration}s", "WARN")
            data = data[:max_duration * self._settings.sample_rate]

        try:
            path = self._write_wav(data)
        except OSError as e:
            raise CaptureError(f"Save failed: {e}") from e
        duration = len(data) / self._settings.sample_rate
        log(f"Recorded {duration:.1f}s", "OK")
        self._prune()
        return AudioArtifact(path=path, duration=duration)

    def validate(self, artifact: AudioArtifact) -> AudioArtifact:
        """
        Check the artifact's format and length.

        Raises:
            InvalidArtifactError: The recording is unusable; it is moved to failed/.
        """
        try:
            validate_wav(artifact.path, self._settings.min_duration)
        except InvalidArtifactError:
            try:
                move_to_failed(artifact.path)
            except OSError as e:
                log(f"Could not move rejected recording: {e}", "WARN")
            raise
        return artifact

    def _callback(self, data, frames, time_info, status):
        """Audio stream callback - accumulate chunks (thread-safe)."""
        # Check recording flag inside lock to prevent race with finish_capture()
        with self._chunks_lock:
            if self._recording.is_set():
                self._chunks.append(data.copy())

    def _write_wav(self, data: np.ndarray) -> Path:
        self._dir.mkdir(parents=True, exist_ok=True)
        safe = np.nan_to_num(data, nan=0.0, posinf=0.0, neginf=0.0)
        safe = np.clip(safe, -1.0, 1.0)
        audio_int16 = (safe * 32767).astype(np.int16)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        path = self._dir / f"recording_{ts}.wav"
        with wave.open(str(path), 'wb') as w:
            w.setnchannels(1)
            w.setsampwidth(2)
            w.setframerate(self._settings.sample_rate)
            w.writeframes(audio_int16.tobytes())
        return path

    def _prune(self):
        """Keep only the most recent RECORDINGS_KEPT recordings."""
        try:
            files = sorted(self._dir.glob("recording_*.wav"))
            for old in files[:-RECORDINGS_KEPT]:
                old.unlink(missing_ok=True)
        except OSError as e:
            log(f"Recording prune warning: {e}", "WARN")
