# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Pipeline orchestrator for Local Dictation.

One dictation session per hotkey gesture:

    activate()   -> IDLE -> RECORDING, microphone on
    deactivate() -> RECORDING -> PROCESSING
                    capture -> validate -> transcribe
                    (-> POST_PROCESSING -> refine)
                    -> clipboard -> history -> notify -> IDLE

Both entry points return immediately with a Future; all stages run on a
single worker thread, in order. A session holds the single-flight guard from
activate() until it is back in IDLE. Gestures that arrive while it is held
are dropped.
"""

import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .errors import (
    BackendError,
    CaptureError,
    ClipboardLockedError,
    HistoryWriteError,
    InvalidArtifactError,
    InvalidTransitionError,
)
from .history import HistoryMetadata
from .notify import NotificationKind, Notifier
from .state import SessionState, StateMachine, Trigger
from .utils import LOG_TRUNCATE, PREVIEW_TRUNCATE, log, truncate


@dataclass(frozen=True)
class PipelineOutcome:
    final_text: str
    post_processed: bool
    clipboard_ok: bool
    history_path: Optional[Path]
    raw_text: str = ""
    language: str = ""
    duration: float = 0.0


# Trigger used to force a state back to IDLE after an unexpected error
_ABORT_TRIGGERS = {
    SessionState.RECORDING: Trigger.CAPTURE_ERROR,
    SessionState.PROCESSING: Trigger.FAILED,
    SessionState.POST_PROCESSING: Trigger.FAILED,
}


class Orchestrator:
    """
    Drives one dictation session at a time through every stage.

    Collaborators:
        capture:     start_capture() / finish_capture(handle) / validate(artifact)
        transcriber: transcribe(path) -> TranscriptionResult, model_name
        refiner:     refine(text) -> RefinementResult, or None to skip
        clipboard:   write(text)
        history:     write(text, metadata) -> Path
        notifier:    notify(message, kind)
    """

    def __init__(self, state: StateMachine, capture, transcriber, clipboard, history,
                 notifier: Notifier, refiner=None):
        self._state = state
        self._capture = capture
        self._transcriber = transcriber
        self._refiner = refiner
        self._clipboard = clipboard
        self._history = history
        self._notifier = notifier

        self._guard = threading.Semaphore(1)
        self._lock = threading.Lock()
        self._session_ids = itertools.count(1)
        self._session: Optional[int] = None
        self._deactivated = False
        self._handle = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pipeline")
        self._last_future: Optional[Future] = None

    @property
    def state(self) -> StateMachine:
        return self._state

    @property
    def refiner(self):
        return self._refiner

    @refiner.setter
    def refiner(self, refiner) -> None:
        """Takes effect from the next session."""
        self._refiner = refiner

    @property
    def busy(self) -> bool:
        """Whether a session currently holds the single-flight guard."""
        with self._lock:
            return self._session is not None

    # ------------------------------------------------------------------
    # Entry points (called from the hotkey dispatcher)
    # ------------------------------------------------------------------

    def activate(self) -> Optional[Future]:
        """Start a session. Returns None when one is already in flight or the worker has stopped."""
        if not self._guard.acquire(blocking=False):
            log("Session already in progress, ignoring hotkey", "WARN")
            return None
        with self._lock:
            session = next(self._session_ids)
            self._session = session
            self._deactivated = False
            self._handle = None
            try:
                return self._submit(self._start_session, session)
            except RuntimeError as e:
                # Executor already shut down
                log(f"Cannot start session: {e}", "WARN")
                self._session = None
        self._guard.release()
        return None

    def deactivate(self) -> Optional[Future]:
        """
        Finish the active session.

        Returns:
            Future resolving to a PipelineOutcome, or to None when the
            session ended without output. None if no session is active.
        """
        with self._lock:
            if self._session is None or self._deactivated:
                log("No active recording, ignoring release", "DEBUG")
                return None
            self._deactivated = True
            return self._submit(self._run_session, self._session)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the last submitted stage has finished."""
        future = self._last_future
        if future is None:
            return True
        done, _ = wait([future], timeout=timeout)
        return bool(done)

    def shutdown(self) -> None:
        """Let the in-flight session finish, then stop the worker."""
        self._executor.shutdown(wait=True)

    def _submit(self, fn, session: int) -> Future:
        future = self._executor.submit(fn, session)
        self._last_future = future
        return future

    # ------------------------------------------------------------------
    # Session stages (worker thread)
    # ------------------------------------------------------------------

    def _start_session(self, session: int) -> None:
        try:
            self._state.transition(SessionState.RECORDING, Trigger.ACTIVATE)
            handle = self._capture.start_capture()
        except CaptureError as e:
            log(f"Capture failed: {e}", "ERR")
            self._to_idle(Trigger.CAPTURE_ERROR)
            self._notify(e.user_message(), NotificationKind.ERROR)
            self._end_session(session)
            return
        except Exception as e:
            log(f"Session start error: {e}", "ERR")
            self._abort()
            self._notify("Recording failed", NotificationKind.ERROR)
            self._end_session(session)
            raise
        with self._lock:
            if self._session == session:
                self._handle = handle

    def _run_session(self, session: int) -> Optional[PipelineOutcome]:
        with self._lock:
            handle = self._handle if self._session == session else None
        if handle is None:
            # Start failed and the session already ended
            return None

        try:
            return self._process(handle)
        except Exception as e:
            log(f"Processing error: {e}", "ERR")
            self._notify("Dictation failed", NotificationKind.ERROR)
            return None
        finally:
            if self._state.current is not SessionState.IDLE:
                self._abort()
            self._end_session(session)

    def _process(self, handle) -> Optional[PipelineOutcome]:
        self._state.transition(SessionState.PROCESSING, Trigger.DEACTIVATE)

        # 1. Capture and artifact validation
        try:
            artifact = self._capture.finish_capture(handle)
            self._capture.validate(artifact)
        except (CaptureError, InvalidArtifactError) as e:
            log(f"Recording rejected: {e}", "ERR")
            self._to_idle(Trigger.FAILED)
            self._notify(e.user_message(), NotificationKind.ERROR)
            return None

        # 2. Transcription
        log("Transcribing...")
        try:
            transcription = self._transcriber.transcribe(artifact.path)
        except BackendError as e:
            log(f"Transcription failed: {e}", "ERR")
            self._to_idle(Trigger.FAILED)
            self._notify(e.user_message(), NotificationKind.ERROR)
            return None

        if transcription.is_empty:
            log("No speech detected", "WARN")
            self._to_idle(Trigger.COMPLETED)
            self._notify("No speech detected", NotificationKind.WARNING)
            return None

        raw_text = transcription.text
        log(f"Raw: {truncate(raw_text, LOG_TRUNCATE)}", "DEBUG")

        # 3. Refinement (optional, never fatal)
        final_text, post_processed = raw_text, False
        if self._refiner is not None:
            self._state.transition(SessionState.POST_PROCESSING, Trigger.REFINE)
            log("Refining text...", "AI")
            final_text, post_processed = self._refine(raw_text)

        # 4. Outputs, independent of each other
        clipboard_ok = self._copy(final_text)
        history_path = self._save(final_text, HistoryMetadata(
            created=datetime.now().astimezone(),
            language=transcription.language,
            model=self._transcriber.model_name,
            duration=transcription.duration or artifact.duration,
            post_processed=post_processed,
        ))

        # 5. Completion
        if clipboard_ok:
            self._notify(f"Copied: {truncate(final_text, PREVIEW_TRUNCATE)}", NotificationKind.SUCCESS)
        elif history_path is not None:
            self._notify("Clipboard unavailable, transcript saved to history", NotificationKind.WARNING)
        else:
            self._notify("Clipboard unavailable", NotificationKind.WARNING)

        outcome = PipelineOutcome(
            final_text=final_text,
            post_processed=post_processed,
            clipboard_ok=clipboard_ok,
            history_path=history_path,
            raw_text=raw_text,
            language=transcription.language,
            duration=transcription.duration,
        )
        self._to_idle(Trigger.COMPLETED)
        return outcome

    def _refine(self, raw_text: str):
        """Returns (text, post_processed); falls back to raw_text on any failure."""
        try:
            result = self._refiner.refine(raw_text)
        except Exception as e:
            log(f"Refinement error: {e}", "ERR")
            result = None
        if result is None or not result.succeeded or not result.text.strip():
            reason = result.error if result is not None and result.error else "error"
            log(f"Refinement skipped ({reason}), using raw transcript", "WARN")
            self._notify("Refinement failed, raw transcript used", NotificationKind.WARNING)
            return raw_text, False
        log(f"Refined: {truncate(result.text, LOG_TRUNCATE)}", "DEBUG")
        return result.text, True

    def _copy(self, text: str) -> bool:
        try:
            self._clipboard.write(text)
            log(f"Copied to clipboard ({len(text)} chars)", "OK")
            return True
        except ClipboardLockedError as e:
            log(f"Copy failed: {e}", "WARN")
        except Exception as e:
            log(f"Copy failed: {e}", "ERR")
        return False

    def _save(self, text: str, metadata: HistoryMetadata) -> Optional[Path]:
        try:
            return self._history.write(text, metadata)
        except (HistoryWriteError, OSError) as e:
            log(f"History not saved: {e}", "WARN")
        except Exception as e:
            log(f"History error: {e}", "ERR")
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _to_idle(self, trigger: Trigger) -> None:
        self._state.transition(SessionState.IDLE, trigger)

    def _abort(self) -> None:
        """Force the state machine back to IDLE after an unexpected error."""
        current = self._state.current
        trigger = _ABORT_TRIGGERS.get(current)
        if trigger is None:
            return
        try:
            self._state.transition(SessionState.IDLE, trigger)
        except InvalidTransitionError:
            pass  # Already logged as a bug by the state machine

    def _end_session(self, session: int) -> None:
        with self._lock:
            if self._session != session:
                return
            self._session = None
            self._handle = None
            self._deactivated = False
        self._guard.release()

    def _notify(self, message: str, kind: NotificationKind) -> None:
        try:
            self._notifier.notify(message, kind)
        except Exception as e:
            log(f"Notification failed: {e}", "WARN")

