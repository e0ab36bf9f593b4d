# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Audio artifacts handed from capture to transcription.

whisper.cpp expects 16 kHz, mono, 16-bit PCM WAV. Anything else, or a
recording too short to contain speech, is rejected before the engine runs
and moved to a failed/ directory next to it for inspection.
"""

import shutil
import wave
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidArtifactError
from .utils import log

EXPECTED_SAMPLE_RATE = 16000
EXPECTED_CHANNELS = 1
EXPECTED_SAMPLE_WIDTH = 2  # bytes (16-bit)
MIN_FILE_SIZE = 44  # RIFF header without data

FAILED_DIR_NAME = "failed"


@dataclass(frozen=True)
class AudioArtifact:
    path: Path
    duration: float


def validate_wav(path: Path, min_duration: float = 0.0) -> float:
    """
    Check that path is a usable recording.

    Returns:
        Duration in seconds.

    Raises:
        InvalidArtifactError: Missing file, wrong format or too short.
    """
    path = Path(path)
    if not path.is_file():
        raise InvalidArtifactError(f"Recording not found: {path}")
    if path.stat().st_size < MIN_FILE_SIZE:
        raise InvalidArtifactError("Invalid WAV file: file too small")

    try:
        with wave.open(str(path), "rb") as w:
            channels = w.getnchannels()
            sample_width = w.getsampwidth()
            sample_rate = w.getframerate()
            frames = w.getnframes()
    except (wave.Error, EOFError) as e:
        raise InvalidArtifactError(f"Invalid WAV file: {e}")

    if channels != EXPECTED_CHANNELS:
        raise InvalidArtifactError(f"Invalid channel count: expected mono, got {channels}")
    if sample_rate != EXPECTED_SAMPLE_RATE:
        raise InvalidArtifactError(f"Invalid sample rate: expected {EXPECTED_SAMPLE_RATE} Hz, got {sample_rate} Hz")
    if sample_width != EXPECTED_SAMPLE_WIDTH:
        raise InvalidArtifactError(f"Invalid bit depth: expected 16 bits, got {sample_width * 8} bits")
    if frames == 0:
        raise InvalidArtifactError("Recording contains no audio")

    duration = frames / sample_rate
    if duration < min_duration:
        raise InvalidArtifactError(f"Recording too short ({duration:.2f}s < {min_duration:g}s)")
    return duration


def move_to_failed(path: Path) -> Path:
    """Move a rejected recording into failed/ beside it. Returns the new path."""
    path = Path(path)
    failed_dir = path.parent / FAILED_DIR_NAME
    failed_dir.mkdir(parents=True, exist_ok=True)
    target = failed_dir / path.name
    counter = 2
    while target.exists():
        target = failed_dir / f"{path.stem}_{counter}{path.suffix}"
        counter += 1
    shutil.move(str(path), str(target))
    log(f"Moved rejected recording to {target}", "WARN")
    return target
