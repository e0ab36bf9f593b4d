# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
whisper.cpp command line transcription engine.

Invocation:
    whisper-cli --model <model> --language <lang> --output-format json
                --output-file <stt_result_*.json> <recording.wav>

The result is read from the JSON side-channel file, not from stdout:
    {"text": "...", "language": "en", "duration_sec": 5.0,
     "segments": [{"start": 0.0, "end": 2.1, "text": "..."}]}

Exit codes: 0 success, 2 model not found, 3 audio device error,
4 engine timeout, 5 invalid audio, anything else generic failure.
"""

import json
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..config import TranscriptionConfig, get_config
from ..errors import (
    BackendError,
    DeviceError,
    InvalidInputError,
    MalformedOutputError,
    ModelNotFoundError,
    ProcessTimeoutError,
)
from ..runner import ExitClass, invoke, log_classification
from ..utils import log
from .base import Segment, TranscriptionEngine, TranscriptionRequest, TranscriptionResult

EXIT_CODES = {
    0: ExitClass.SUCCESS,
    2: ExitClass.MODEL_NOT_FOUND,
    3: ExitClass.DEVICE_ERROR,
    4: ExitClass.TIMEOUT,
    5: ExitClass.INVALID_INPUT,
}

# Older builds exit 1 when the model cannot be loaded
_MODEL_LOAD_FAILURE = re.compile(
    r"failed to (?:load|open|initialize)(?: the)? model|model (?:file )?not found",
    re.IGNORECASE,
)

_MESSAGES = {
    ExitClass.MODEL_NOT_FOUND: "Transcription model not found",
    ExitClass.DEVICE_ERROR: "Audio device not available",
    ExitClass.TIMEOUT: "Transcription engine gave up",
    ExitClass.INVALID_INPUT: "Audio file rejected by engine",
    ExitClass.GENERIC_ERROR: "Transcription failed",
}


def classify(exit_code: int, stderr: str) -> ExitClass:
    """Map a whisper-cli exit status to an ExitClass."""
    exit_class = EXIT_CODES.get(exit_code, ExitClass.GENERIC_ERROR)
    if exit_class is ExitClass.GENERIC_ERROR and _MODEL_LOAD_FAILURE.search(stderr or ""):
        return ExitClass.MODEL_NOT_FOUND
    return exit_class


def error_for(exit_class: ExitClass, exit_code: int, stderr: str, timeout: float) -> BackendError:
    """Build the typed error for a failed invocation."""
    message = f"{_MESSAGES.get(exit_class, 'Transcription failed')} (exit code {exit_code})"
    if exit_class is ExitClass.MODEL_NOT_FOUND:
        return ModelNotFoundError(message, exit_code=exit_code, stderr=stderr)
    if exit_class is ExitClass.DEVICE_ERROR:
        return DeviceError(message, exit_code=exit_code, stderr=stderr)
    if exit_class is ExitClass.TIMEOUT:
        return ProcessTimeoutError(message, timeout=timeout, stderr=stderr, exit_code=exit_code)
    if exit_class is ExitClass.INVALID_INPUT:
        return InvalidInputError(message, exit_code=exit_code, stderr=stderr)
    return BackendError(message, exit_code=exit_code, stderr=stderr)


def _number(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedOutputError(f"STT output field '{name}' is not a number: {value!r}")
    return float(value)


def _parse_segments(raw) -> List[Segment]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MalformedOutputError("STT output field 'segments' is not a list")
    segments = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("text", ""), str):
            raise MalformedOutputError(f"Invalid segment in STT output: {item!r}")
        segments.append(Segment(
            start=_number(item.get("start", 0.0), "start"),
            end=_number(item.get("end", 0.0), "end"),
            text=item.get("text", ""),
        ))
    return segments


def parse_output(json_path: Path) -> TranscriptionResult:
    """
    Parse the JSON side-channel file.

    Raises:
        MalformedOutputError: Missing file, invalid JSON, not an object,
            or no string "text" field.
    """
    try:
        content = json_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise MalformedOutputError(f"STT output file not found: {json_path.name}")
    except OSError as e:
        raise MalformedOutputError(f"STT output file unreadable: {e}")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"Invalid JSON in STT output: {e}")

    if not isinstance(data, dict):
        raise MalformedOutputError("STT output is not a JSON object")
    text = data.get("text")
    if not isinstance(text, str):
        raise MalformedOutputError("STT output has no 'text' field")

    language = data.get("language") or ""
    if not isinstance(language, str):
        raise MalformedOutputError(f"STT output field 'language' is not a string: {language!r}")

    return TranscriptionResult(
        text=text.strip(),
        language=language,
        duration=_number(data.get("duration_sec", 0.0), "duration_sec"),
        segments=_parse_segments(data.get("segments")),
    )


class WhisperCLIEngine(TranscriptionEngine):
    """whisper.cpp CLI adapter with exit-code classification."""

    def __init__(self, settings: Optional[TranscriptionConfig] = None):
        self._settings = settings if settings is not None else get_config().transcription

    @property
    def name(self) -> str:
        return "whisper.cpp"

    @property
    def cli_path(self) -> str:
        return self._settings.cli_path

    def start(self) -> bool:
        ready = True
        if not shutil.which(self.cli_path) and not Path(self.cli_path).expanduser().is_file():
            log(f"whisper.cpp executable not found: {self.cli_path}", "ERR")
            ready = False
        if not self._settings.model.is_file():
            log(f"Whisper model not found: {self._settings.model}", "ERR")
            ready = False
        if ready:
            log(f"Transcription engine ready: {self.name} ({self._settings.model.name})", "OK")
        return ready

    def build_args(self, request: TranscriptionRequest, json_path: Path) -> List[str]:
        return [
            "--model", str(request.model_path),
            "--language", request.language,
            "--output-format", "json",
            "--output-file", str(json_path),
            str(request.audio_path),
        ]

    def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        audio_path = Path(request.audio_path)
        if not audio_path.is_file():
            raise InvalidInputError(f"Audio file not found: {audio_path}")

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        json_path = audio_path.parent / f"stt_result_{timestamp}.json"
        cli_path = str(Path(self.cli_path).expanduser()) if "/" in self.cli_path else self.cli_path

        try:
            result = invoke(cli_path, self.build_args(request, json_path), timeout=request.timeout)
            exit_class = classify(result.exit_code, result.stderr)
            log_classification(cli_path, result, exit_class)
            if exit_class is not ExitClass.SUCCESS:
                raise error_for(exit_class, result.exit_code, result.stderr, request.timeout)

            # whisper.cpp proper appends ".json" to the --output-file base name
            appended = json_path.with_name(json_path.name + ".json")
            transcription = parse_output(appended if not json_path.exists() and appended.exists() else json_path)
        finally:
            json_path.unlink(missing_ok=True)
            json_path.with_name(json_path.name + ".json").unlink(missing_ok=True)

        log(f"Transcribed {transcription.duration:.1f}s of audio "
            f"({transcription.language or 'unknown'}, {len(transcription.text)} chars)", "OK")
        log(f"Transcript: {transcription.text}", "DEBUG")
        return transcription
