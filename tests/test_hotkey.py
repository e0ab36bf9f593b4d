# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Unit tests for hotkey correlation, chord ownership and the pynput listener.

pynput is replaced by a stub, so no display or input device is needed.
"""

import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from local_dictation.errors import ConflictError
from local_dictation.hotkey import (
    Chord,
    HotkeyCorrelator,
    HotkeyEvent,
    HotkeySource,
    claim_chord,
    key_name,
    release_chord,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _correlator(chord: str = "ctrl+shift+d"):
    events = []
    return HotkeyCorrelator(Chord.parse(chord), events.append), events


def _key(name=None, char=None):
    """Stand-in for a pynput Key / KeyCode."""
    if name is not None:
        return SimpleNamespace(name=name)
    return SimpleNamespace(char=char)


class _FakeSource(HotkeySource):
    def __init__(self, name="fake"):
        self._name = name
        self.started = None
        self.stopped = False

    @property
    def name(self):
        return self._name

    def _start(self, correlator):
        self.started = correlator

    def _stop(self):
        self.stopped = True


def _import_listener():
    """Import listener.py against a stubbed pynput."""
    keyboard = MagicMock()
    pynput = MagicMock(keyboard=keyboard)
    sys.modules.pop("local_dictation.listener", None)
    with patch.dict("sys.modules", {"pynput": pynput, "pynput.keyboard": keyboard}):
        import local_dictation.listener as listener
    return listener, keyboard


# ---------------------------------------------------------------------------
# Chord parsing
# ---------------------------------------------------------------------------

class TestChord:
    def test_parse_and_str_order(self):
        chord = Chord.parse("Shift+Ctrl+D")
        assert chord.modifiers == frozenset({"ctrl", "shift"})
        assert chord.key == "d"
        assert str(chord) == "ctrl+shift+d"

    def test_aliases(self):
        chord = Chord.parse("control+option+k")
        assert chord.modifiers == frozenset({"ctrl", "alt"})

    @pytest.mark.parametrize("text", ["", "ctrl+shift", "d", "hyper+d"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            Chord.parse(text)


class TestKeyName:
    def test_named_modifier_variants(self):
        assert key_name(_key(name="ctrl_l")) == "ctrl"
        assert key_name(_key(name="shift_r")) == "shift"

    def test_character_key(self):
        assert key_name(_key(char="D")) == "d"

    def test_control_character_mapped_back(self):
        # With ctrl held some platforms report "\x04" for d
        assert key_name(_key(char="\x04")) == "d"

    def test_unknown_key(self):
        assert key_name(SimpleNamespace()) is None


# ---------------------------------------------------------------------------
# HotkeyCorrelator
# ---------------------------------------------------------------------------

class TestCorrelator:
    def test_down_then_main_key_up(self):
        correlator, events = _correlator()
        assert correlator.on_hotkey_down()
        assert correlator.on_key_up("d")
        assert events == [HotkeyEvent.ACTIVATE, HotkeyEvent.DEACTIVATE]
        assert not correlator.armed

    def test_repeated_down_emits_once(self):
        correlator, events = _correlator()
        for _ in range(5):
            correlator.on_hotkey_down()
        assert events == [HotkeyEvent.ACTIVATE]

    def test_deactivate_never_without_activate(self):
        correlator, events = _correlator()
        assert not correlator.on_key_up("d")
        assert not correlator.on_key_up("ctrl")
        assert events == []

    def test_deactivate_only_once_per_gesture(self):
        correlator, events = _correlator()
        correlator.on_hotkey_down()
        correlator.on_key_up("d")
        correlator.on_key_up("shift")
        correlator.on_key_up("ctrl")
        assert events == [HotkeyEvent.ACTIVATE, HotkeyEvent.DEACTIVATE]

    def test_modifier_release_first_ends_gesture_early(self):
        # Lifting a modifier before the main key stops recording right away
        correlator, events = _correlator()
        correlator.on_hotkey_down()
        assert correlator.on_key_up("shift")
        assert not correlator.on_key_up("d")
        assert events == [HotkeyEvent.ACTIVATE, HotkeyEvent.DEACTIVATE]

    def test_modifier_alias_release(self):
        correlator, events = _correlator()
        correlator.on_hotkey_down()
        assert correlator.on_key_up("control")
        assert events[-1] is HotkeyEvent.DEACTIVATE

    def test_unrelated_key_ignored(self):
        correlator, events = _correlator()
        correlator.on_hotkey_down()
        assert not correlator.on_key_up("x")
        assert not correlator.on_key_up("alt")
        assert not correlator.on_key_up(None)
        assert correlator.armed

    def test_reset_disarms_silently(self):
        correlator, events = _correlator()
        correlator.on_hotkey_down()
        correlator.reset()
        assert not correlator.on_key_up("d")
        assert events == [HotkeyEvent.ACTIVATE]

    def test_second_gesture(self):
        correlator, events = _correlator()
        for _ in range(2):
            correlator.on_hotkey_down()
            correlator.on_key_up("d")
        assert events == [HotkeyEvent.ACTIVATE, HotkeyEvent.DEACTIVATE] * 2


# ---------------------------------------------------------------------------
# Registration and conflicts
# ---------------------------------------------------------------------------

class TestRegistration:
    def test_register_starts_and_unregister_releases(self):
        correlator, _ = _correlator("ctrl+alt+r")
        source = _FakeSource()
        handle = source.register(correlator)
        assert source.started is correlator
        assert str(handle.chord) == "ctrl+alt+r"
        source.unregister(handle)
        assert source.stopped
        # Chord is free again for another owner
        claim_chord(handle.chord, "other")
        release_chord(handle.chord)

    def test_conflict_with_other_owner(self):
        chord = Chord.parse("ctrl+alt+m")
        claim_chord(chord, "someone-else")
        try:
            correlator = HotkeyCorrelator(chord, lambda e: None)
            source = _FakeSource()
            with pytest.raises(ConflictError) as exc_info:
                source.register(correlator)
            assert source.started is None
            assert "ctrl+alt+m" in exc_info.value.user_message()
        finally:
            release_chord(chord)

    def test_reserved_chord_rejected(self):
        correlator = HotkeyCorrelator(Chord.parse("ctrl+c"), lambda e: None)
        with pytest.raises(ConflictError):
            _FakeSource().register(correlator)

    def test_start_failure_releases_claim(self):
        class Broken(_FakeSource):
            def _start(self, correlator):
                raise RuntimeError("no display")

        chord = Chord.parse("ctrl+alt+b")
        with pytest.raises(RuntimeError):
            Broken().register(HotkeyCorrelator(chord, lambda e: None))
        claim_chord(chord, "other")
        release_chord(chord)


# ---------------------------------------------------------------------------
# PynputHotkeySource
# ---------------------------------------------------------------------------

class TestPynputSource:
    def _started(self, chord="ctrl+shift+d"):
        listener_mod, keyboard = _import_listener()
        correlator, events = _correlator(chord)
        source = listener_mod.PynputHotkeySource()
        handle = source.register(correlator)
        return source, handle, events, keyboard

    def test_listener_started_as_daemon(self):
        source, handle, _, keyboard = self._started()
        try:
            keyboard.Listener.assert_called_once()
            keyboard.Listener.return_value.start.assert_called_once()
        finally:
            source.unregister(handle)
        keyboard.Listener.return_value.stop.assert_called_once()

    def test_chord_press_and_release(self):
        source, handle, events, _ = self._started()
        try:
            source._on_press(_key(name="ctrl_l"))
            source._on_press(_key(name="shift"))
            source._on_press(_key(char="D"))
            source._on_press(_key(char="D"))  # auto-repeat
            source._on_release(_key(char="D"))
            source._on_release(_key(name="shift"))
            source._on_release(_key(name="ctrl_l"))
        finally:
            source.unregister(handle)
        assert events == [HotkeyEvent.ACTIVATE, HotkeyEvent.DEACTIVATE]

    def test_extra_modifier_does_not_activate(self):
        source, handle, events, _ = self._started()
        try:
            for name in ("ctrl", "shift", "alt"):
                source._on_press(_key(name=name))
            source._on_press(_key(char="d"))
        finally:
            source.unregister(handle)
        assert events == []

    def test_main_key_alone_does_not_activate(self):
        source, handle, events, _ = self._started()
        try:
            source._on_press(_key(char="d"))
            source._on_release(_key(char="d"))
        finally:
            source.unregister(handle)
        assert events == []

    def test_modifier_released_first(self):
        source, handle, events, _ = self._started()
        try:
            source._on_press(_key(name="ctrl"))
            source._on_press(_key(name="shift"))
            source._on_press(_key(char="d"))
            source._on_release(_key(name="ctrl"))
            source._on_release(_key(char="d"))
        finally:
            source.unregister(handle)
        assert events == [HotkeyEvent.ACTIVATE, HotkeyEvent.DEACTIVATE]
