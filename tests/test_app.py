# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Tests for the App wiring: hotkey registration, event dispatch and shutdown.

The microphone, engines and outputs are fakes; the hotkey source is a
HotkeySource whose correlator the tests drive by hand.
"""

import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import import_stubbed
from local_dictation.artifact import AudioArtifact
from local_dictation.config import Config
from local_dictation.engines import TranscriptionResult
from local_dictation.hotkey import Chord, HotkeySource, claim_chord, release_chord
from local_dictation.notify import NotificationKind, RecordingNotifier
from local_dictation.state import SessionState, Transition, Trigger


app_mod = import_stubbed("local_dictation.app", {"sounddevice": MagicMock()}, reload=("local_dictation.audio",))

TIMEOUT = 5


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeSource(HotkeySource):
    def __init__(self):
        self.correlator = None
        self.stopped = False

    @property
    def name(self):
        return "fake"

    def _start(self, correlator):
        self.correlator = correlator

    def _stop(self):
        self.stopped = True


class FakeRecorder:
    def start_capture(self):
        return object()

    def finish_capture(self, handle):
        return AudioArtifact(path=Path("/tmp/recording.wav"), duration=1.0)

    def validate(self, artifact):
        return artifact


class FakeTranscriber:
    model_name = "ggml-small.bin"

    def __init__(self, ready=True):
        self.ready = ready
        self.closed = False

    def start(self):
        return self.ready

    def transcribe(self, path):
        return TranscriptionResult(text="hello world", language="en", duration=1.0)

    def close(self):
        self.closed = True


class FakeRefiner:
    name = "fake-llm"

    def __init__(self, ready=True):
        self.ready = ready
        self.closed = False

    def start(self):
        return self.ready

    def close(self):
        self.closed = True


class Sink:
    def __init__(self):
        self.items = []

    def write(self, text, metadata=None):
        self.items.append(text)
        return Path("/history/entry.md")


def _wait_for(predicate, timeout=TIMEOUT):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_app():
    apps = []

    def _make(config=None, **overrides):
        kwargs = dict(
            source=FakeSource(),
            notifier=RecordingNotifier(),
            recorder=FakeRecorder(),
            transcriber=FakeTranscriber(),
            clipboard=Sink(),
            history=Sink(),
        )
        kwargs.update(overrides)
        app = app_mod.App(config=config or Config(), **kwargs)
        apps.append(app)
        return app

    yield _make
    for app in apps:
        app._cleanup()


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

class TestStart:
    def test_registers_hotkey(self, make_app):
        app = make_app()
        assert app.start()
        assert app._source.correlator.chord == Chord.parse("ctrl+shift+d")
        assert app.status == "Ready"

    def test_conflict_keeps_running_with_one_warning(self, make_app):
        chord = Chord.parse("ctrl+shift+d")
        claim_chord(chord, "another-app")
        try:
            app = make_app()
            assert app.start()
            warnings = app.notifier.of_kind(NotificationKind.WARNING)
            assert len(warnings) == 1
            assert "ctrl+shift+d" in warnings[0]
            assert app.notifier.of_kind(NotificationKind.ERROR) == []
            assert app._hotkey is None
            assert app._source.correlator is None
            assert app.status == "Ready"
        finally:
            release_chord(chord)

    def test_invalid_chord(self, make_app):
        config = Config()
        config.hotkey.modifiers = ["hyper"]
        app = make_app(config=config)
        assert app.start() is False
        assert app.notifier.of_kind(NotificationKind.ERROR) == ["Invalid hotkey: hyper+d"]

    def test_unavailable_refiner_disabled(self, make_app):
        refiner = FakeRefiner(ready=False)
        app = make_app(refiner=refiner)
        assert app.start()
        assert refiner.closed
        assert app.refiner is None
        assert app.pipeline.refiner is None

    def test_engine_not_ready_still_starts(self, make_app):
        assert make_app(transcriber=FakeTranscriber(ready=False)).start()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class TestDispatch:
    def test_gesture_runs_a_session(self, make_app):
        app = make_app()
        assert app.start()
        correlator = app._source.correlator

        correlator.on_hotkey_down()
        assert _wait_for(lambda: app.state.current is SessionState.RECORDING)
        assert app.status == "Recording..."
        correlator.on_key_up("d")
        assert _wait_for(lambda: app.pipeline._history.items == ["hello world"])
        assert _wait_for(lambda: app.state.current is SessionState.IDLE)
        assert app.status == "Ready"
        assert app.notifier.messages == [(NotificationKind.SUCCESS, "Copied: hello world")]

    def test_key_repeat_starts_one_session(self, make_app):
        app = make_app()
        assert app.start()
        correlator = app._source.correlator
        for _ in range(5):
            correlator.on_hotkey_down()
        correlator.on_key_up("shift")
        correlator.on_key_up("d")
        assert _wait_for(lambda: len(app.pipeline._history.items) == 1)
        app.pipeline.wait_idle(TIMEOUT)
        assert len(app.pipeline._history.items) == 1

    def test_status_follows_transitions(self, make_app):
        app = make_app()
        now = datetime.now(timezone.utc)
        app._on_transition(Transition(SessionState.PROCESSING, SessionState.POST_PROCESSING, now, Trigger.REFINE))
        assert app.status == "Refining..."


# ---------------------------------------------------------------------------
# Run loop and shutdown
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_run_until_stopped(self, make_app):
        app = make_app()
        codes = []
        runner = threading.Thread(target=lambda: codes.append(app.run()))
        runner.start()
        assert _wait_for(lambda: app._source.correlator is not None)
        app.stop()
        runner.join(TIMEOUT)
        assert codes == [0]
        assert app._source.stopped
        assert app.transcriber.closed

    def test_run_survives_conflict(self, make_app):
        chord = Chord.parse("ctrl+shift+d")
        claim_chord(chord, "another-app")
        try:
            app = make_app()
            codes = []
            runner = threading.Thread(target=lambda: codes.append(app.run()))
            runner.start()
            assert _wait_for(lambda: app._dispatcher is not None)
            time.sleep(0.1)
            assert runner.is_alive()
            app.stop()
            runner.join(TIMEOUT)
            assert codes == [0]
            assert len(app.notifier.of_kind(NotificationKind.WARNING)) == 1
        finally:
            release_chord(chord)

    def test_run_returns_one_on_invalid_chord(self, make_app):
        config = Config()
        config.hotkey.modifiers = ["hyper"]
        assert make_app(config=config).run() == 1

    def test_cleanup_releases_chord(self, make_app):
        first = make_app()
        assert first.start()
        first._cleanup()
        second = make_app()
        assert second.start()

    def test_cleanup_finishes_open_recording(self, make_app):
        app = make_app()
        assert app.start()
        app._source.correlator.on_hotkey_down()
        assert _wait_for(lambda: app.state.current is SessionState.RECORDING)
        app._cleanup()
        assert app.pipeline._history.items == ["hello world"]
        assert app.state.current is SessionState.IDLE

    def test_cleanup_idempotent(self, make_app):
        app = make_app()
        app._cleanup()
        app._cleanup()
