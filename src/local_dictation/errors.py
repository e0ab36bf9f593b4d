# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Error types for Local Dictation.

Adapters raise these; the pipeline orchestrator is the only place that turns
them into state transitions and notifications.
"""

from typing import Optional


class DictationError(Exception):
    """Base class for all dictation errors."""

    def user_message(self) -> str:
        """Short, human-readable text for a notification."""
        return str(self) or self.__class__.__name__


class ConflictError(DictationError):
    """The hotkey chord is already owned by someone else."""

    def __init__(self, chord: str):
        super().__init__(f"Hotkey {chord} is already registered")
        self.chord = chord

    def user_message(self) -> str:
        return f"Hotkey {self.chord} is in use"


class CaptureError(DictationError):
    def user_message(self) -> str:
        return "Recording failed"


class InvalidArtifactError(DictationError):
    def user_message(self) -> str:
        return "Recording unusable"


class BackendError(DictationError):
    """An external backend process failed."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr

    def user_message(self) -> str:
        return "Transcription failed"


class ModelNotFoundError(BackendError):
    def user_message(self) -> str:
        return "Model not found"


class DeviceError(BackendError):
    def user_message(self) -> str:
        return "Audio device error"


class ProcessTimeoutError(BackendError, TimeoutError):
    """The backend did not finish in time and was killed with its descendants."""

    def __init__(self, message: str, timeout: float, stderr: str = "", exit_code: Optional[int] = None):
        super().__init__(message, exit_code=exit_code, stderr=stderr)
        self.timeout = timeout

    def user_message(self) -> str:
        return f"Timed out after {self.timeout:g}s"


class InvalidInputError(BackendError):
    def user_message(self) -> str:
        return "Invalid audio"


class MalformedOutputError(BackendError):
    def user_message(self) -> str:
        return "Unreadable transcription output"


class EmptyOutputError(BackendError):
    def user_message(self) -> str:
        return "Empty model output"


class ClipboardLockedError(DictationError):
    """Clipboard could not be written, even after retrying."""

    def __init__(self, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(f"Clipboard locked after {attempts} attempt(s): {cause}")
        self.attempts = attempts
        self.cause = cause

    def user_message(self) -> str:
        return "Clipboard unavailable"


class HistoryWriteError(DictationError):
    def user_message(self) -> str:
        return "History not saved"


class InvalidTransitionError(DictationError):
    """Programming defect: a state change outside the transition table."""

    def __init__(self, from_state, to_state, trigger=None):
        detail = f" on {trigger.name}" if trigger is not None else ""
        super().__init__(f"Invalid transition {from_state.name} -> {to_state.name}{detail}")
        self.from_state = from_state
        self.to_state = to_state
        self.trigger = trigger
