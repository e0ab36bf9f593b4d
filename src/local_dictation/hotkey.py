# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Hotkey event correlation for Local Dictation.

Turns raw keyboard signals into two logical edges for one chord:

    ACTIVATE    the chord went down (once per press-and-hold, key repeat ignored)
    DEACTIVATE  the main key or the first required modifier came up

The correlator never blocks: it hands events to an emit callable that is
expected to enqueue them (queue.Queue.put_nowait in the app).
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional

from .errors import ConflictError
from .utils import log

MODIFIER_NAMES = ("ctrl", "shift", "alt", "cmd")

# Left/right variants reported by keyboard hooks
_MODIFIER_ALIASES = {
    "ctrl": "ctrl", "ctrl_l": "ctrl", "ctrl_r": "ctrl", "control": "ctrl",
    "shift": "shift", "shift_l": "shift", "shift_r": "shift",
    "alt": "alt", "alt_l": "alt", "alt_r": "alt", "alt_gr": "alt", "option": "alt",
    "cmd": "cmd", "cmd_l": "cmd", "cmd_r": "cmd", "super": "cmd", "win": "cmd",
}


class HotkeyEvent(Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"


@dataclass(frozen=True)
class Chord:
    """Modifier keys plus one main key, e.g. ctrl+shift+d."""
    modifiers: FrozenSet[str]
    key: str

    @classmethod
    def parse(cls, text: str) -> "Chord":
        parts = [p.strip().lower() for p in text.split("+") if p.strip()]
        if not parts:
            raise ValueError("Empty hotkey")
        key = parts[-1]
        if key in _MODIFIER_ALIASES:
            raise ValueError(f"Hotkey '{text}' has no main key")
        modifiers = set()
        for part in parts[:-1]:
            if part not in _MODIFIER_ALIASES:
                raise ValueError(f"Unknown modifier '{part}' in hotkey '{text}'")
            modifiers.add(_MODIFIER_ALIASES[part])
        if not modifiers:
            raise ValueError(f"Hotkey '{text}' needs at least one modifier")
        return cls(frozenset(modifiers), key)

    def __str__(self) -> str:
        ordered = [m for m in MODIFIER_NAMES if m in self.modifiers]
        return "+".join([*ordered, self.key])


def key_name(key) -> Optional[str]:
    """
    Normalize a keyboard-hook key object to a chord name.

    Special keys expose .name (ctrl_l, f5, ...), character keys expose .char.
    Control characters produced while ctrl is held map back to their letter.
    """
    name = getattr(key, "name", None)
    if isinstance(name, str):
        return _MODIFIER_ALIASES.get(name, name)
    char = getattr(key, "char", None)
    if isinstance(char, str) and len(char) == 1:
        if ord(char) < 32:
            char = chr(ord(char) + 96)
        return char.lower()
    return None


class HotkeyCorrelator:
    """
    Derives ACTIVATE/DEACTIVATE from "hotkey down" and "key up" signals.

    An armed flag makes both edges idempotent: repeated hotkey-down
    notifications while held emit nothing, and only the first relevant
    key-up after an ACTIVATE emits DEACTIVATE. Releasing a modifier before
    the main key therefore ends the gesture early.
    """

    def __init__(self, chord: Chord, emit: Callable[[HotkeyEvent], None]):
        self._chord = chord
        self._emit = emit
        self._armed = False
        self._lock = threading.Lock()

    @property
    def chord(self) -> Chord:
        return self._chord

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._armed

    def on_hotkey_down(self) -> bool:
        """Feed a chord-down notification. Returns True if ACTIVATE was emitted."""
        with self._lock:
            if self._armed:
                return False
            self._armed = True
        self._emit(HotkeyEvent.ACTIVATE)
        return True

    def on_key_up(self, name: Optional[str]) -> bool:
        """Feed a key release. Returns True if DEACTIVATE was emitted."""
        if name is None:
            return False
        name = _MODIFIER_ALIASES.get(name, name)
        if name != self._chord.key and name not in self._chord.modifiers:
            return False
        with self._lock:
            if not self._armed:
                return False
            self._armed = False
        self._emit(HotkeyEvent.DEACTIVATE)
        return True

    def reset(self) -> None:
        """Disarm without emitting (listener restart)."""
        with self._lock:
            self._armed = False


# ---------------------------------------------------------------------------
# Chord ownership
# ---------------------------------------------------------------------------

# Chords the desktop environment already uses
RESERVED_CHORDS = frozenset({
    "ctrl+c", "ctrl+v", "ctrl+x", "ctrl+z", "ctrl+a", "ctrl+s",
    "ctrl+alt+delete", "ctrl+alt+t", "alt+tab", "alt+f4",
    "cmd+c", "cmd+v", "cmd+x", "cmd+z", "cmd+q", "cmd+w", "cmd+tab", "cmd+space",
})

_owned: Dict[Chord, str] = {}
_owned_lock = threading.Lock()


def claim_chord(chord: Chord, owner: str) -> None:
    """Record ownership of a chord. Raises ConflictError if already taken."""
    with _owned_lock:
        if str(chord) in RESERVED_CHORDS:
            raise ConflictError(str(chord))
        holder = _owned.get(chord)
        if holder is not None and holder != owner:
            raise ConflictError(str(chord))
        _owned[chord] = owner


def release_chord(chord: Chord) -> None:
    with _owned_lock:
        _owned.pop(chord, None)


@dataclass(frozen=True)
class HotkeyHandle:
    chord: Chord
    owner: str


class HotkeySource(ABC):
    """
    Backing keyboard hook for one correlator.

    Implementations call correlator.on_hotkey_down() when the chord is
    pressed and correlator.on_key_up() for every key release.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the hook."""
        pass

    def register(self, correlator: HotkeyCorrelator) -> HotkeyHandle:
        """
        Claim the correlator's chord and start delivering events.

        Raises:
            ConflictError: If the chord is already owned.
        """
        chord = correlator.chord
        claim_chord(chord, self.name)
        try:
            self._start(correlator)
        except Exception:
            release_chord(chord)
            raise
        log(f"Hotkey registered: {chord}", "OK")
        return HotkeyHandle(chord=chord, owner=self.name)

    def unregister(self, handle: HotkeyHandle) -> None:
        try:
            self._stop()
        finally:
            release_chord(handle.chord)

    @abstractmethod
    def _start(self, correlator: HotkeyCorrelator) -> None:
        pass

    @abstractmethod
    def _stop(self) -> None:
        pass
