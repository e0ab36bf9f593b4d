# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Shared fixtures: fake backend executables and WAV files.

Fake executables are /bin/sh wrappers that exec the current interpreter on
a script written into tmp_path, so the subprocess adapters run real
processes with real exit codes and timeouts.
"""

import importlib
import os
import stat
import sys
import textwrap
import time
import wave
from pathlib import Path

import pytest


@pytest.fixture
def make_cli(tmp_path):
    """Return a factory: make_cli(name, body) -> path of an executable."""
    def _make(name: str, body: str) -> Path:
        script = tmp_path / f"{name}_impl.py"
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        exe = tmp_path / name
        exe.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n', encoding="utf-8")
        exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return exe
    return _make


def write_wav(path: Path, seconds: float = 1.0, rate: int = 16000,
              channels: int = 1, sample_width: int = 2) -> Path:
    """Write a silent PCM WAV file."""
    frames = int(seconds * rate)
    with wave.open(str(path), "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(sample_width)
        w.setframerate(rate)
        w.writeframes(b"\x00" * frames * channels * sample_width)
    return path


@pytest.fixture
def wav_file(tmp_path):
    return write_wav(tmp_path / "recording.wav", seconds=1.0)


def process_alive(pid: int) -> bool:
    """True while pid exists and is not a zombie."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    try:
        with open(f"/proc/{pid}/stat", encoding="utf-8") as f:
            # Field 3 is the state; the command name in field 2 may contain spaces
            state = f.read().rsplit(")", 1)[1].split()[0]
        return state != "Z"
    except (OSError, IndexError):
        return True


def wait_dead(pid: int, timeout: float = 1.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not process_alive(pid):
            return True
        time.sleep(0.02)
    return not process_alive(pid)


def import_stubbed(module: str, stubs: dict, reload: tuple = ()):
    """
    Import module with some third-party modules replaced by stubs.

    Only the stubbed entries of sys.modules are swapped and restored;
    everything else imported along the way stays loaded.
    """
    saved = {name: sys.modules.get(name) for name in stubs}
    sys.modules.update(stubs)
    try:
        for name in (*reload, module):
            sys.modules.pop(name, None)
        return importlib.import_module(module)
    finally:
        for name, original in saved.items():
            if original is None:
                sys.modules.pop(name, None)
            else:
                sys.modules[name] = original
