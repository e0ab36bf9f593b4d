# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Clipboard output for Local Dictation.
"""

import time

import pyperclip

from .errors import ClipboardLockedError
from .utils import log

# One retry after a short delay; another process may hold the clipboard briefly
MAX_ATTEMPTS = 2


class ClipboardWriter:
    """Writes text to the system clipboard with a single delayed retry."""

    def __init__(self, retry_delay: float = 0.1):
        self._retry_delay = retry_delay

    def write(self, text: str) -> None:
        """
        Copy text to the clipboard.

        Raises:
            ClipboardLockedError: Both attempts failed.
        """
        last_error = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                pyperclip.copy(text)
                return
            except (pyperclip.PyperclipException, OSError) as e:
                last_error = e
                if attempt < MAX_ATTEMPTS:
                    log(f"Clipboard busy ({e}), retrying in {self._retry_delay:g}s", "WARN")
                    time.sleep(self._retry_delay)
        raise ClipboardLockedError(MAX_ATTEMPTS, last_error)
