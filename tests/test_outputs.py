# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Tests for the output sinks (clipboard, history) and notifiers.
"""

from datetime import datetime
from unittest.mock import patch

import pyperclip
import pytest

from local_dictation import clipboard as clipboard_mod
from local_dictation.clipboard import ClipboardWriter
from local_dictation.errors import ClipboardLockedError, HistoryWriteError
from local_dictation.history import HistoryMetadata, HistoryWriter, render_markdown
from local_dictation.notify import ConsoleNotifier, NotificationKind, RecordingNotifier
from local_dictation.utils import set_verbose


def _metadata(**overrides):
    values = dict(
        created=datetime(2026, 3, 14, 9, 26, 53, 589000).astimezone(),
        language="en",
        model="ggml-small.bin",
        duration=5.04,
        post_processed=False,
    )
    values.update(overrides)
    return HistoryMetadata(**values)


# ---------------------------------------------------------------------------
# Clipboard
# ---------------------------------------------------------------------------

class TestClipboard:
    def test_write(self):
        with patch.object(clipboard_mod.pyperclip, "copy") as copy:
            ClipboardWriter(retry_delay=0).write("hello")
        copy.assert_called_once_with("hello")

    def test_retry_once_then_succeed(self):
        with patch.object(clipboard_mod.pyperclip, "copy",
                          side_effect=[pyperclip.PyperclipException("busy"), None]) as copy, \
             patch.object(clipboard_mod.time, "sleep") as sleep:
            ClipboardWriter(retry_delay=0.25).write("hello")
        assert copy.call_count == 2
        sleep.assert_called_once_with(0.25)

    def test_locked_after_two_attempts(self):
        with patch.object(clipboard_mod.pyperclip, "copy",
                          side_effect=OSError("locked")) as copy, \
             patch.object(clipboard_mod.time, "sleep"):
            with pytest.raises(ClipboardLockedError) as exc_info:
                ClipboardWriter(retry_delay=0.1).write("hello")
        assert copy.call_count == 2
        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.cause, OSError)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class TestHistory:
    def test_text_not_logged(self, tmp_path, capsys):
        set_verbose(False)
        HistoryWriter(tmp_path).write("Secret words", _metadata())
        out = capsys.readouterr().out
        assert "secret-words" not in out
        assert "Secret words" not in out
        assert "History saved (12 chars)" in out

    def test_layout_and_name(self, tmp_path):
        writer = HistoryWriter(tmp_path)
        path = writer.write("Hello world", _metadata())
        assert path.parent == tmp_path / "2026" / "2026-03" / "2026-03-14"
        assert path.name == "20260314_092653589_hello-world.md"

    def test_front_matter(self, tmp_path):
        path = HistoryWriter(tmp_path).write("Hello world", _metadata(post_processed=True))
        content = path.read_text(encoding="utf-8")
        lines = content.splitlines()
        assert lines[0] == "---"
        assert lines[1].startswith("created: 2026-03-14T09:26:53")
        assert "lang: en" in lines
        assert "stt_model: ggml-small.bin" in lines
        assert "duration_sec: 5.0" in lines
        assert "post_processed: true" in lines
        assert "# Dictation – 14.03.2026 09:26" in lines
        assert content.endswith("Hello world\n")

    def test_duplicate_names_get_suffix(self, tmp_path):
        writer = HistoryWriter(tmp_path)
        first = writer.write("same", _metadata())
        second = writer.write("same", _metadata())
        third = writer.write("same", _metadata())
        assert first != second != third
        assert second.name == "20260314_092653589_same_2.md"
        assert third.name == "20260314_092653589_same_3.md"

    def test_empty_slug_fallback(self, tmp_path):
        path = HistoryWriter(tmp_path).write("?!", _metadata())
        assert path.name.endswith("_transcript.md")

    def test_unwritable_root(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(HistoryWriteError):
            HistoryWriter(blocker).write("hello", _metadata())

    def test_render_markdown_unknown_language(self):
        text = render_markdown("hi", _metadata(language=""))
        assert "lang: \n" in text


# ---------------------------------------------------------------------------
# Notifiers
# ---------------------------------------------------------------------------

class TestNotifiers:
    def test_recording_notifier(self):
        notifier = RecordingNotifier()
        notifier.notify("done")
        notifier.notify("careful", NotificationKind.WARNING)
        assert notifier.messages == [
            (NotificationKind.SUCCESS, "done"),
            (NotificationKind.WARNING, "careful"),
        ]
        assert notifier.of_kind(NotificationKind.WARNING) == ["careful"]

    def test_console_notifier_logs_warnings(self, capsys):
        ConsoleNotifier().notify("Refinement failed, raw transcript used", NotificationKind.WARNING)
        assert "Refinement failed" in capsys.readouterr().out

    def test_console_notifier_hides_transcript_unless_verbose(self, capsys):
        set_verbose(False)
        ConsoleNotifier().notify("Copied: secret words", NotificationKind.SUCCESS)
        assert "secret words" not in capsys.readouterr().out
        set_verbose(True)
        try:
            ConsoleNotifier().notify("Copied: secret words", NotificationKind.SUCCESS)
        finally:
            set_verbose(False)
        assert "secret words" in capsys.readouterr().out
