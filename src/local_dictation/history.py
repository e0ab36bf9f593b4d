# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Durable transcript history.

Each transcript becomes one Markdown file with YAML front matter:

    <history dir>/2026/2026-10/2026-10-16/20261016_142501123_hello-world.md

    ---
    created: 2026-10-16T14:25:01+02:00
    lang: en
    stt_model: ggml-small.bin
    duration_sec: 5.0
    post_processed: false
    ---

    # Dictation – 16.10.2026 14:25

    hello world
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .errors import HistoryWriteError
from .utils import log, slugify

# Give up on numbered suffixes after this many collisions
MAX_SUFFIX = 1000


@dataclass(frozen=True)
class HistoryMetadata:
    created: datetime
    language: str
    model: str
    duration: float
    post_processed: bool


def render_markdown(text: str, metadata: HistoryMetadata) -> str:
    created = metadata.created.astimezone()
    return (
        "---\n"
        f"created: {created.isoformat(timespec='seconds')}\n"
        f"lang: {metadata.language}\n"
        f"stt_model: {metadata.model}\n"
        f"duration_sec: {metadata.duration:.1f}\n"
        f"post_processed: {'true' if metadata.post_processed else 'false'}\n"
        "---\n"
        "\n"
        f"# Dictation – {created.strftime('%d.%m.%Y %H:%M')}\n"
        "\n"
        f"{text}\n"
    )


def _unique_path(path: Path) -> Path:
    if not path.exists():
        return path
    for counter in range(2, MAX_SUFFIX):
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        if not candidate.exists():
            return candidate
    return path.with_name(f"{path.stem}_{uuid.uuid4().hex}{path.suffix}")


class HistoryWriter:
    """Stores transcripts under a year/month/day directory tree."""

    def __init__(self, root: Path):
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def directory_for(self, created: datetime) -> Path:
        local = created.astimezone()
        return (self._root / local.strftime("%Y") / local.strftime("%Y-%m")
                / local.strftime("%Y-%m-%d"))

    def write(self, text: str, metadata: HistoryMetadata) -> Path:
        """
        Write one history entry.

        Returns:
            Path of the new file.

        Raises:
            HistoryWriteError: The directory or file could not be written.
        """
        local = metadata.created.astimezone()
        directory = self.directory_for(metadata.created)
        name = f"{local.strftime('%Y%m%d_%H%M%S')}{local.microsecond // 1000:03d}_{slugify(text)}.md"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path = _unique_path(directory / name)
            # "x" refuses to overwrite a file created since the existence check
            with open(path, "x", encoding="utf-8") as f:
                f.write(render_markdown(text, metadata))
        except OSError as e:
            raise HistoryWriteError(f"History write failed: {e}") from e
        log(f"History saved ({len(text)} chars)", "OK")
        log(f"History file: {path}", "DEBUG")
        return path
