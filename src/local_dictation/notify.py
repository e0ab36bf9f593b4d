# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Operator notifications for Local Dictation.

Notifications are fire-and-forget: a notifier must never raise into the
pipeline and never block it.
"""

import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Tuple

from .utils import log

APP_TITLE = "Local Dictation"


class NotificationKind(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    NotificationKind.WARNING: "WARN",
    NotificationKind.ERROR: "ERR",
}


class Notifier(ABC):
    """Receives user-visible session outcomes."""

    @abstractmethod
    def notify(self, message: str, kind: NotificationKind = NotificationKind.SUCCESS) -> None:
        pass


class ConsoleNotifier(Notifier):
    """
    Logs notifications to the console.

    Success messages carry a transcript preview, so they are only logged
    in verbose mode.
    """

    def notify(self, message: str, kind: NotificationKind = NotificationKind.SUCCESS) -> None:
        if kind is NotificationKind.SUCCESS:
            log(message, "DEBUG")
        else:
            log(message, _LOG_LEVELS.get(kind, "INFO"))


class DesktopNotifier(ConsoleNotifier):
    """Console log plus a desktop notification (notify-send or osascript)."""

    def notify(self, message: str, kind: NotificationKind = NotificationKind.SUCCESS) -> None:
        super().notify(message, kind)
        if sys.platform == "darwin":
            escaped = message.replace("\\", "\\\\").replace('"', '\\"')
            argv = ["osascript", "-e", f'display notification "{escaped}" with title "{APP_TITLE}"']
        else:
            urgency = "critical" if kind is NotificationKind.ERROR else "normal"
            argv = ["notify-send", "-u", urgency, APP_TITLE, message]
        try:
            subprocess.Popen(
                argv,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True
            )
        except OSError:
            pass  # No notification daemon; the log line is enough


class RecordingNotifier(Notifier):
    """Keeps every notification in memory (CLI summaries and tests)."""

    def __init__(self):
        self._lock = threading.Lock()
        self.messages: List[Tuple[NotificationKind, str]] = []

    def notify(self, message: str, kind: NotificationKind = NotificationKind.SUCCESS) -> None:
        with self._lock:
            self.messages.append((kind, message))

    def of_kind(self, kind: NotificationKind) -> List[str]:
        with self._lock:
            return [m for k, m in self.messages if k is kind]
