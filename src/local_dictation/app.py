# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Local Dictation service.

Wires the hotkey listener to the pipeline orchestrator and runs until
SIGINT/SIGTERM. Hotkey callbacks only enqueue events; a dispatcher thread
feeds them to the orchestrator so the keyboard hook never blocks.
"""

import atexit
import fcntl
import os
import queue
import signal
import sys
import threading
from typing import Optional

from .audio import Recorder
from .backends import BACKEND_REGISTRY
from .clipboard import ClipboardWriter
from .config import CONFIG_DIR, CONFIG_FILE, Config, get_config
from .errors import ConflictError
from .history import HistoryWriter
from .hotkey import Chord, HotkeyCorrelator, HotkeyEvent, HotkeySource
from .notify import ConsoleNotifier, DesktopNotifier, NotificationKind, Notifier
from .pipeline import Orchestrator
from .refiner import Refiner
from .state import SessionState, StateMachine, Transition
from .transcriber import Transcriber
from .utils import C_BOLD, C_CYAN, C_DIM, C_GREEN, C_RESET, C_YELLOW, log, set_verbose

# Status line shown for each session state
STATUS_TEXT = {
    SessionState.IDLE: "Ready",
    SessionState.RECORDING: "Recording...",
    SessionState.PROCESSING: "Transcribing...",
    SessionState.POST_PROCESSING: "Refining...",
}

# Seconds the main loop sleeps between stop checks; keeps signals responsive
STOP_POLL_INTERVAL = 0.5


class App:
    """Hands-free dictation service."""

    def __init__(self, config: Optional[Config] = None, source: Optional[HotkeySource] = None,
                 notifier: Optional[Notifier] = None, recorder=None, transcriber=None,
                 refiner=None, clipboard=None, history=None):
        self.config = config if config is not None else get_config()
        set_verbose(self.config.logging.verbose)

        self.state = StateMachine()
        self.state.subscribe(self._on_transition)
        self._status = STATUS_TEXT[SessionState.IDLE]

        self.recorder = recorder if recorder is not None else Recorder(settings=self.config.audio)
        self.transcriber = transcriber if transcriber is not None else Transcriber(self.config.transcription)
        self.refiner = refiner if refiner is not None else self._create_refiner()
        if notifier is None:
            notifier = DesktopNotifier() if self.config.ui.notifications_enabled else ConsoleNotifier()
        self.notifier = notifier

        self.pipeline = Orchestrator(
            state=self.state,
            capture=self.recorder,
            transcriber=self.transcriber,
            refiner=self.refiner,
            clipboard=clipboard if clipboard is not None else ClipboardWriter(self.config.clipboard.retry_delay),
            history=history if history is not None else HistoryWriter(self.config.history.path),
            notifier=notifier,
        )

        self._source = source
        self._hotkey = None
        self._events: "queue.Queue[Optional[HotkeyEvent]]" = queue.Queue()
        self._dispatcher: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._cleaned_up = False

    @property
    def status(self) -> str:
        return self._status

    def _create_refiner(self) -> Optional[Refiner]:
        if not self.config.refinement.enabled:
            return None
        try:
            return Refiner(self.config.refinement)
        except ValueError:
            log("Refinement disabled", "WARN")
            return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Check backends, register the hotkey and start dispatching.

        A chord held by another owner leaves the service running without a
        hotkey. Returns False only when the configured chord is invalid.
        """
        if not self.transcriber.start():
            log("Transcription engine not ready; dictations will fail until this is fixed", "ERR")
        if self.refiner is not None and not self.refiner.start():
            log(f"{self.refiner.name} unavailable, refinement disabled", "WARN")
            self.refiner.close()
            self.refiner = None
            self.pipeline.refiner = None

        try:
            chord = Chord.parse(self.config.hotkey.chord)
        except ValueError as e:
            log(f"Invalid hotkey: {e}", "ERR")
            self._notify(f"Invalid hotkey: {self.config.hotkey.chord}")
            return False

        if self._source is None:
            from .listener import PynputHotkeySource
            self._source = PynputHotkeySource()

        correlator = HotkeyCorrelator(chord, self._events.put_nowait)
        try:
            self._hotkey = self._source.register(correlator)
        except ConflictError as e:
            log(f"Hotkey registration failed: {e}", "WARN")
            self._notify(e.user_message(), NotificationKind.WARNING)
            self._hotkey = None

        self._dispatcher = threading.Thread(target=self._dispatch, name="hotkey-dispatch", daemon=True)
        self._dispatcher.start()
        if self._hotkey is None:
            log("Running without a hotkey; change [hotkey] in the config and restart", "WARN")
        else:
            log(f"Ready. Hold {chord} to dictate", "OK")
        return True

    def run(self) -> int:
        """Start and block until stopped. Returns the process exit code."""
        if not self.start():
            self._cleanup()
            return 1
        while not self._stop_event.wait(STOP_POLL_INTERVAL):
            pass
        self._cleanup()
        return 0

    def stop(self) -> None:
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def _dispatch(self):
        """Drain hotkey events in order; None stops the loop."""
        while True:
            event = self._events.get()
            if event is None:
                break
            if event is HotkeyEvent.ACTIVATE:
                future = self.pipeline.activate()
            else:
                future = self.pipeline.deactivate()
            if future is not None:
                future.add_done_callback(self._on_stage_done)

    def _on_stage_done(self, future):
        error = future.exception()
        if error is not None:
            log(f"Session error: {error}", "ERR")

    def _on_transition(self, record: Transition):
        self._status = STATUS_TEXT.get(record.to_state, "Ready")
        if record.to_state is SessionState.IDLE:
            log(self._status, "INFO")

    def _notify(self, message: str, kind: NotificationKind = NotificationKind.ERROR):
        try:
            self.notifier.notify(message, kind)
        except Exception as e:
            log(f"Notification failed: {e}", "WARN")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _cleanup(self):
        """Clean up all resources before exit."""
        with self._lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True
        log("Shutting down...", "INFO")

        if self._hotkey is not None:
            try:
                self._source.unregister(self._hotkey)
                log("Hotkey listener stopped", "OK")
            except Exception as e:
                log(f"Error stopping hotkey listener: {e}", "WARN")
            self._hotkey = None

        if self._dispatcher is not None:
            self._events.put(None)
            self._dispatcher.join(timeout=2.0)
            self._dispatcher = None

        # A recording still open is finished normally so nothing is lost
        if self.pipeline.busy:
            log("Finishing active session...", "INFO")
            self.pipeline.deactivate()
        self.pipeline.shutdown()

        if self.refiner is not None:
            try:
                self.refiner.close()
            except Exception as e:
                log(f"Error closing refinement backend: {e}", "WARN")
        try:
            self.transcriber.close()
        except Exception as e:
            log(f"Error closing transcription engine: {e}", "ERR")

        log("Goodbye!", "OK")


# ---------------------------------------------------------------------------
# Service logging
# ---------------------------------------------------------------------------

LOG_FILE = CONFIG_DIR / "service.log"
LOG_MAX_SIZE = 1_000_000  # ~1MB
LOCK_FILE = CONFIG_DIR / "service.lock"


def _setup_service_logging():
    """Redirect stdout/stderr to service log when not attached to a terminal."""
    if sys.stdout.isatty():
        return
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    if LOG_FILE.exists() and LOG_FILE.stat().st_size > LOG_MAX_SIZE:
        LOG_FILE.write_text("")
    log_fd = open(LOG_FILE, "a", buffering=1, encoding="utf-8")
    sys.stdout = log_fd
    sys.stderr = log_fd


def _print_banner(config: Config):
    if config.refinement.enabled:
        info = BACKEND_REGISTRY.get(config.refinement.backend)
        refinement = info.name if info else config.refinement.backend
    else:
        refinement = "Disabled"

    print()
    print(f"  {C_BOLD}╭────────────────────────────────────────╮{C_RESET}")
    print(f"  {C_BOLD}│{C_RESET}  {C_CYAN}Dictation{C_RESET} · Voice -> Clipboard        {C_BOLD}│{C_RESET}")
    print(f"  {C_BOLD}│{C_RESET}  {C_GREEN}100% Local{C_RESET} · No Cloud · Private      {C_BOLD}│{C_RESET}")
    print(f"  {C_BOLD}╰────────────────────────────────────────╯{C_RESET}")
    print()
    print(f"  {C_DIM}Hotkey:{C_RESET}     {C_YELLOW}{config.hotkey.chord}{C_RESET} (hold to record)")
    print(f"  {C_DIM}Engine:{C_RESET}     {config.transcription.engine} ({config.transcription.model.name})")
    print(f"  {C_DIM}Refinement:{C_RESET} {refinement}")
    print(f"  {C_DIM}Config:{C_RESET}     {CONFIG_FILE}")
    print(f"  {C_DIM}History:{C_RESET}    {config.history.path}")
    print()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def service_main():
    """Entry point for the service (local-dictation run)."""
    _setup_service_logging()

    # Single-instance lock
    LOCK_FILE.parent.mkdir(parents=True, exist_ok=True)
    lock_fd = os.open(str(LOCK_FILE), os.O_CREAT | os.O_WRONLY, 0o600)
    lock_file = os.fdopen(lock_fd, "w")
    try:
        fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        print("Local Dictation is already running.", file=sys.stderr)
        sys.exit(0)
    atexit.register(lambda: (fcntl.flock(lock_file, fcntl.LOCK_UN), lock_file.close()))

    config = get_config()
    _print_banner(config)

    app = App(config)

    def handle_signal(*_):
        app.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    sys.exit(app.run())


if __name__ == "__main__":
    service_main()
