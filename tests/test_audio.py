# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Tests for WAV artifact validation and the microphone recorder.

The recorder runs against a stubbed sounddevice; audio chunks are fed
through its stream callback directly.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from conftest import import_stubbed, write_wav
from local_dictation.artifact import FAILED_DIR_NAME, AudioArtifact, move_to_failed, validate_wav
from local_dictation.config import AudioConfig
from local_dictation.errors import CaptureError, InvalidArtifactError


audio = import_stubbed("local_dictation.audio", {"sounddevice": MagicMock()})


def _recorder(tmp_path, **overrides):
    return audio.Recorder(directory=tmp_path / "recordings", settings=AudioConfig(**overrides))


def _feed(recorder, seconds, rate=16000):
    block = np.full((1024, 1), 0.1, dtype=np.float32)
    for _ in range(int(seconds * rate) // 1024):
        recorder._callback(block, 1024, None, None)


# ---------------------------------------------------------------------------
# validate_wav
# ---------------------------------------------------------------------------

class TestValidateWav:
    def test_valid(self, wav_file):
        assert validate_wav(wav_file) == pytest.approx(1.0)

    @pytest.mark.parametrize("kwargs,message", [
        ({"channels": 2}, "channel"),
        ({"rate": 44100}, "sample rate"),
        ({"sample_width": 1}, "bit depth"),
        ({"seconds": 0}, "no audio"),
    ])
    def test_wrong_format(self, tmp_path, kwargs, message):
        path = write_wav(tmp_path / "bad.wav", **kwargs)
        with pytest.raises(InvalidArtifactError, match=message):
            validate_wav(path)

    def test_too_short(self, tmp_path):
        path = write_wav(tmp_path / "short.wav", seconds=0.1)
        with pytest.raises(InvalidArtifactError, match="too short"):
            validate_wav(path, min_duration=0.3)

    def test_tiny_file(self, tmp_path):
        path = tmp_path / "tiny.wav"
        path.write_bytes(b"RIFF")
        with pytest.raises(InvalidArtifactError, match="too small"):
            validate_wav(path)

    def test_not_a_wav(self, tmp_path):
        path = tmp_path / "noise.wav"
        path.write_bytes(b"\x01" * 100)
        with pytest.raises(InvalidArtifactError):
            validate_wav(path)

    def test_missing(self, tmp_path):
        with pytest.raises(InvalidArtifactError, match="not found"):
            validate_wav(tmp_path / "absent.wav")


class TestMoveToFailed:
    def test_unique_names(self, tmp_path):
        first = move_to_failed(write_wav(tmp_path / "rec.wav"))
        second = move_to_failed(write_wav(tmp_path / "rec.wav"))
        assert first == tmp_path / FAILED_DIR_NAME / "rec.wav"
        assert second == tmp_path / FAILED_DIR_NAME / "rec_2.wav"
        assert not (tmp_path / "rec.wav").exists()


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------

class TestRecorder:
    def test_capture_writes_valid_wav(self, tmp_path):
        recorder = _recorder(tmp_path)
        handle = recorder.start_capture()
        assert recorder.recording
        _feed(recorder, 1.0)
        artifact = recorder.finish_capture(handle)
        assert not recorder.recording
        assert artifact.path.parent == tmp_path / "recordings"
        assert artifact.duration == pytest.approx(1.0, abs=0.1)
        assert recorder.validate(artifact) is artifact

    def test_second_start_rejected(self, tmp_path):
        recorder = _recorder(tmp_path)
        recorder.start_capture()
        with pytest.raises(CaptureError):
            recorder.start_capture()

    def test_stale_handle_rejected(self, tmp_path):
        recorder = _recorder(tmp_path)
        old = recorder.start_capture()
        _feed(recorder, 0.5)
        recorder.finish_capture(old)
        recorder.start_capture()
        with pytest.raises(CaptureError, match="not active"):
            recorder.finish_capture(old)

    def test_no_audio(self, tmp_path):
        recorder = _recorder(tmp_path)
        handle = recorder.start_capture()
        with pytest.raises(CaptureError, match="No audio"):
            recorder.finish_capture(handle)

    def test_chunks_after_finish_ignored(self, tmp_path):
        recorder = _recorder(tmp_path)
        handle = recorder.start_capture()
        _feed(recorder, 0.5)
        recorder.finish_capture(handle)
        _feed(recorder, 0.5)
        assert recorder._chunks == []

    def test_max_duration_trims(self, tmp_path):
        recorder = _recorder(tmp_path, max_duration=1)
        handle = recorder.start_capture()
        _feed(recorder, 2.0)
        artifact = recorder.finish_capture(handle)
        assert artifact.duration == pytest.approx(1.0)

    def test_device_failure(self, tmp_path):
        recorder = _recorder(tmp_path)
        with patch.object(audio.sd, "InputStream", side_effect=OSError("no input device")):
            with pytest.raises(CaptureError, match="Mic error"):
                recorder.start_capture()
        assert not recorder.recording

    def test_short_recording_moved_to_failed(self, tmp_path):
        recorder = _recorder(tmp_path, min_duration=0.3)
        path = write_wav(tmp_path / "short.wav", seconds=0.1)
        with pytest.raises(InvalidArtifactError):
            recorder.validate(AudioArtifact(path=path, duration=0.1))
        assert not path.exists()
        assert (tmp_path / FAILED_DIR_NAME / "short.wav").exists()
