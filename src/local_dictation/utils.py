# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Utility functions for Local Dictation.

Includes logging and small text helpers.
"""

import re
import threading
import unicodedata
from datetime import datetime

# Console colors
C_RESET = "\033[0m"
C_BOLD = "\033[1m"
C_DIM = "\033[2m"
C_RED = "\033[91m"
C_GREEN = "\033[92m"
C_YELLOW = "\033[93m"
C_CYAN = "\033[96m"
C_MAGENTA = "\033[95m"

# Log level styles
LOG_STYLES = {
    "DEBUG": (C_DIM, "·"),
    "INFO": (C_DIM, "›"),
    "OK": (C_GREEN, "✓"),
    "WARN": (C_YELLOW, "⚠"),
    "ERR": (C_RED, "✗"),
    "REC": (C_RED + C_BOLD, "●"),
    "AI": (C_MAGENTA, "✦"),
    "APP": (C_CYAN, "◆"),
}

# Display truncation
LOG_TRUNCATE = 60
PREVIEW_TRUNCATE = 70

# Slugs for history file names
SLUG_MAX_LENGTH = 50
DEFAULT_SLUG = "transcript"

_verbose = False
_log_lock = threading.Lock()


def set_verbose(enabled: bool):
    """Enable or disable DEBUG output (transcript text, full stderr)."""
    global _verbose
    _verbose = bool(enabled)


def is_verbose() -> bool:
    return _verbose


def log(msg: str, level: str = "INFO"):
    """Print a timestamped, colored log message."""
    if level == "DEBUG" and not _verbose:
        return
    ts = datetime.now().strftime("%H:%M:%S")
    color, sym = LOG_STYLES.get(level, (C_DIM, "›"))
    with _log_lock:
        print(f"  {C_DIM}{ts}{C_RESET}  {color}{sym}{C_RESET}  {msg}", flush=True)


def truncate(text: str, length: int = LOG_TRUNCATE) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) > length:
        return text[:length] + "..."
    return text


_UMLAUTS = str.maketrans({
    "ä": "a", "ö": "o", "ü": "u",
    "Ä": "A", "Ö": "O", "Ü": "U",
    "ß": "ss",
})


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Build a file-name-safe slug from transcript text.

    Folds umlauts and other accents to ASCII, lowercases, joins words with
    hyphens and cuts at a hyphen in the latter half when longer than
    max_length. Falls back to "transcript" when nothing usable remains.
    """
    if not text or not text.strip():
        return DEFAULT_SLUG

    normalized = text.translate(_UMLAUTS)
    normalized = unicodedata.normalize("NFD", normalized)
    normalized = "".join(c for c in normalized if unicodedata.category(c) != "Mn")
    normalized = normalized.lower()
    normalized = re.sub(r"[\s_]+", "-", normalized)
    normalized = re.sub(r"[^a-z0-9\-]", "", normalized)
    normalized = re.sub(r"-+", "-", normalized).strip("-")

    if not normalized:
        return DEFAULT_SLUG

    if len(normalized) > max_length:
        cut = normalized[:max_length]
        last_hyphen = cut.rfind("-")
        if last_hyphen > max_length // 2:
            cut = cut[:last_hyphen]
        normalized = cut.rstrip("-")

    return normalized or DEFAULT_SLUG
