# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Transcription module for Local Dictation.

Wraps the configured engine and turns an audio path into a request with
the model, language and timeout from the [transcription] section.

Usage:
    from local_dictation.transcriber import Transcriber

    transcriber = Transcriber()
    if transcriber.start():
        result = transcriber.transcribe(Path("recording.wav"))
"""

from pathlib import Path
from typing import Optional

from .config import TranscriptionConfig, get_config
from .engines import TranscriptionEngine, TranscriptionRequest, TranscriptionResult, create_engine
from .utils import log


class Transcriber:
    """Unified transcription interface."""

    def __init__(self, settings: Optional[TranscriptionConfig] = None,
                 engine: Optional[TranscriptionEngine] = None):
        self._settings = settings if settings is not None else get_config().transcription
        if engine is None:
            try:
                engine = create_engine(self._settings.engine, self._settings)
            except ValueError as e:
                log(f"Failed to create transcription engine '{self._settings.engine}': {e}", "ERR")
                raise
        self._engine = engine
        log(f"Transcription engine: {self._engine.name}", "INFO")

    @property
    def name(self) -> str:
        return self._engine.name

    @property
    def model_name(self) -> str:
        """Model file name, recorded in history entries."""
        return self._settings.model.name

    def start(self) -> bool:
        return self._engine.start()

    def close(self) -> None:
        self._engine.close()

    def build_request(self, audio_path: Path) -> TranscriptionRequest:
        return TranscriptionRequest(
            audio_path=Path(audio_path),
            model_path=self._settings.model,
            language=self._settings.language,
            timeout=self._settings.timeout,
        )

    def transcribe(self, audio_path: Path) -> TranscriptionResult:
        """
        Transcribe one recording.

        Raises:
            BackendError: Classified engine failure.
        """
        return self._engine.transcribe(self.build_request(audio_path))
