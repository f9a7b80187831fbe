"""
Frame Source Tests
==================

Tests for VideoCaptureSource over files written with OpenCV.
"""

import cv2
import numpy as np
import pytest


def _write_video(path, seconds: int = 3, fps: int = 10) -> None:
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, (64, 48))
    assert writer.isOpened()
    for index in range(seconds * fps):
        writer.write(np.full((48, 64, 3), (index * 8) % 256, dtype=np.uint8))
    writer.release()


class TestParseSource:
    """Tests for parse_source."""

    def test_camera_index(self):
        from carbonlens.capture import parse_source

        assert parse_source("0") == 0
        assert parse_source(" 2 ") == 2

    def test_paths_and_urls(self):
        from carbonlens.capture import parse_source

        assert parse_source("clip.mp4") == "clip.mp4"
        assert parse_source("rtsp://camera/stream") == "rtsp://camera/stream"


class TestVideoCaptureSource:
    """Tests for file-backed sources."""

    def test_missing_file(self, tmp_path):
        from carbonlens.capture import SourceUnavailable, VideoCaptureSource

        source = VideoCaptureSource(str(tmp_path / "missing.avi"))
        with pytest.raises(SourceUnavailable):
            source.open()

    def test_read_before_open(self):
        from carbonlens.capture import SourceUnavailable, VideoCaptureSource

        with pytest.raises(SourceUnavailable):
            VideoCaptureSource("clip.avi").read()

    def test_file_sampled_until_exhausted(self, tmp_path):
        """A file is stepped in media time and then reports exhaustion."""
        from carbonlens.capture import VideoCaptureSource

        path = tmp_path / "clip.avi"
        _write_video(path)

        source = VideoCaptureSource(str(path), sample_interval_seconds=1.0)
        assert source.is_file is True
        source.open()

        frames = []
        for _ in range(10):
            frame = source.read()
            if frame is None:
                break
            frames.append(frame)
        after_end = source.read()
        source.close()

        assert 2 <= len(frames) <= 4
        assert source.exhausted is True
        assert frames[0].shape == (48, 64, 3)
        assert after_end is None
