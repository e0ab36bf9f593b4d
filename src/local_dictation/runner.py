# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Subprocess runner shared by the transcription and refinement adapters.

Each backend runs in its own session (process group). On timeout the whole
group is killed with SIGKILL and reaped before ProcessTimeoutError is raised,
so worker processes spawned by a backend never outlive the stage.
"""

import os
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Collection, Optional, Sequence

from .errors import BackendError, ProcessTimeoutError
from .utils import log, truncate

# Seconds to wait for a killed process group to be reaped
REAP_TIMEOUT = 2.0

STDERR_PREVIEW = 200


class ExitClass(Enum):
    SUCCESS = "success"
    MODEL_NOT_FOUND = "model_not_found"
    DEVICE_ERROR = "device_error"
    TIMEOUT = "timeout"
    INVALID_INPUT = "invalid_input"
    GENERIC_ERROR = "generic_error"


@dataclass
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str
    duration: float


def format_argv(argv: Sequence[str], sensitive: Collection[str] = ()) -> str:
    """
    Shell-quoted command line for the log.

    The value following any option in sensitive is replaced by its length.
    """
    parts = []
    hide_next = False
    for arg in argv:
        arg = str(arg)
        parts.append(f"<{len(arg)} chars>" if hide_next else shlex.quote(arg))
        hide_next = not hide_next and arg in sensitive
    return " ".join(parts)


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        proc.kill()


def invoke(path: str, args: Sequence[str], stdin: Optional[str] = None,
           timeout: float = 60, sensitive: Collection[str] = ()) -> ProcessResult:
    """
    Run an executable to completion or timeout.

    Args:
        path: Executable name or path.
        args: Arguments after the executable.
        stdin: Text written to the process's stdin, if any.
        timeout: Seconds before the process group is killed.
        sensitive: Options whose values carry user text; they are only
            logged in full at DEBUG level.

    Returns:
        ProcessResult with exit code, decoded output and wall-clock duration.

    Raises:
        ProcessTimeoutError: The process did not exit in time.
        BackendError: The executable could not be started.
    """
    argv = [str(path), *[str(a) for a in args]]
    log(f"Running: {format_argv(argv, sensitive)}", "INFO")
    if sensitive:
        log(f"Full command: {format_argv(argv)}", "DEBUG")
    start = time.monotonic()
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )
    except FileNotFoundError:
        raise BackendError(f"Executable not found: {path}", exit_code=None)
    except PermissionError as e:
        raise BackendError(f"Executable not runnable: {path} ({e})", exit_code=None)

    try:
        stdout, stderr = proc.communicate(input=stdin, timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        try:
            _, stderr = proc.communicate(timeout=REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            stderr = ""
            proc.wait()
        elapsed = time.monotonic() - start
        log(f"{os.path.basename(str(path))} timed out after {elapsed:.2f}s (killed process group)", "ERR")
        raise ProcessTimeoutError(
            f"{os.path.basename(str(path))} timed out after {timeout:g}s",
            timeout=timeout,
            stderr=stderr or "",
        )
    except BaseException:
        _kill_group(proc)
        proc.wait()
        raise

    elapsed = time.monotonic() - start
    result = ProcessResult(
        exit_code=proc.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
        duration=elapsed,
    )
    log(f"{os.path.basename(str(path))} exited {result.exit_code} in {elapsed:.2f}s", "INFO")
    if result.stderr:
        log(f"stderr: {result.stderr.strip()}", "DEBUG")
    return result


def log_classification(path: str, result: ProcessResult, exit_class: ExitClass) -> None:
    """Log an adapter's exit classification at the matching level."""
    name = os.path.basename(str(path))
    if exit_class is ExitClass.SUCCESS:
        log(f"{name}: {exit_class.value} ({result.duration:.2f}s)", "OK")
        return
    last_line = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ""
    log(f"{name}: {exit_class.value} (exit {result.exit_code}) {truncate(last_line, STDERR_PREVIEW)}", "WARN")
