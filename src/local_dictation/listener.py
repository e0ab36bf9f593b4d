# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
pynput keyboard hook feeding a HotkeyCorrelator.
"""

import threading
from typing import Optional, Set

from pynput import keyboard

from .hotkey import MODIFIER_NAMES, HotkeyCorrelator, HotkeySource, key_name
from .utils import log


class PynputHotkeySource(HotkeySource):
    """
    Global keyboard listener.

    Tracks which keys are down, reports "hotkey down" when the main key is
    pressed with exactly the chord's modifiers held, and forwards every
    release. Callbacks run on the listener thread and must return quickly.
    """

    def __init__(self):
        self._listener: Optional[keyboard.Listener] = None
        self._correlator: Optional[HotkeyCorrelator] = None
        self._pressed: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "pynput"

    def _start(self, correlator: HotkeyCorrelator) -> None:
        self._correlator = correlator
        self._listener = keyboard.Listener(
            on_press=self._on_press,
            on_release=self._on_release,
        )
        self._listener.daemon = True
        self._listener.start()

    def _stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
        if self._correlator is not None:
            self._correlator.reset()
        with self._lock:
            self._pressed.clear()

    def _on_press(self, key):
        name = key_name(key)
        correlator = self._correlator
        if name is None or correlator is None:
            return
        with self._lock:
            self._pressed.add(name)
            held = {n for n in self._pressed if n in MODIFIER_NAMES}
        chord = correlator.chord
        if name == chord.key and held == chord.modifiers:
            correlator.on_hotkey_down()

    def _on_release(self, key):
        name = key_name(key)
        correlator = self._correlator
        if name is None or correlator is None:
            return
        with self._lock:
            self._pressed.discard(name)
        try:
            correlator.on_key_up(name)
        except Exception as e:
            log(f"Hotkey release handling failed: {e}", "ERR")
