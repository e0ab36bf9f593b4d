# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Base transcription engine interface for Local Dictation.

All transcription engines must inherit from TranscriptionEngine
and implement the required methods.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass(frozen=True)
class Segment:
    start: float
    end: float
    text: str


@dataclass(frozen=True)
class TranscriptionRequest:
    audio_path: Path
    model_path: Path
    language: str
    timeout: float


@dataclass
class TranscriptionResult:
    text: str
    language: str = ""
    duration: float = 0.0
    segments: List[Segment] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when no speech was recognized."""
        return not self.text or not self.text.strip()


class TranscriptionEngine(ABC):
    """
    Abstract base class for transcription engines.

    Defines the interface that all transcription engines must implement.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the engine."""
        pass

    @abstractmethod
    def start(self) -> bool:
        """
        Verify the engine can run (executable and model present).

        Returns True if engine is ready, False otherwise.
        """
        pass

    @abstractmethod
    def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        """
        Transcribe an audio file.

        Args:
            request: Audio path, model, language and timeout.

        Returns:
            The parsed result. An empty text is a valid result.

        Raises:
            BackendError: Or one of its subclasses, classified from the
                process exit code and output.
        """
        pass

    def close(self) -> None:
        """Release all resources."""
        pass
