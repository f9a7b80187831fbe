"""
Grid Batcher and Codec Tests
============================

Tests for grid composition, labels and image encoding helpers.
"""

import numpy as np
import pytest


class TestGridBatcher:
    """Tests for GridBatcher.compose."""

    def test_grid_shape(self, sample_frames):
        """A 4x3 grid of 80x60 frames is 320x180 pixels."""
        from carbonlens.batching import GridBatcher

        grid = GridBatcher(cols=4, rows=3).compose(sample_frames)

        assert grid.shape == (180, 320, 3)
        assert grid.dtype == np.uint8

    def test_wrong_count_rejected(self, sample_frames):
        """Fewer or more frames than cells is an error, never padded."""
        from carbonlens.batching import GridBatcher

        batcher = GridBatcher(cols=4, rows=3)
        with pytest.raises(ValueError):
            batcher.compose(sample_frames[:11])
        with pytest.raises(ValueError):
            batcher.compose(sample_frames + sample_frames[:1])

    def test_labels_drawn_top_left_only(self, sample_frames):
        """Each cell gets a label in its top-left corner; the rest is the frame."""
        from carbonlens.batching import GridBatcher

        grid = GridBatcher(cols=4, rows=3).compose(sample_frames)

        for index in range(12):
            x, y = (index % 4) * 80, (index // 4) * 60
            cell = grid[y:y + 60, x:x + 80]
            # pill darkens, text brightens
            assert cell[:40, :].min() < 128
            assert cell[:40, :].max() > 128
            assert cell[-1, -1].tolist() == [128, 128, 128]

    def test_mismatched_frames_scaled_to_first(self, sample_frames):
        """Frames of other sizes are scaled into the first frame's cell size."""
        from carbonlens.batching import GridBatcher
        from carbonlens.models.frame import Frame

        frames = list(sample_frames)
        frames[5] = Frame(
            image=np.full((30, 40, 3), 128, dtype=np.uint8),
            captured_at=0.0,
            timestamp_label="12:00:05",
        )

        grid = GridBatcher(cols=4, rows=3).compose(frames)
        assert grid.shape == (180, 320, 3)

    def test_greyscale_frames_accepted(self):
        """Single-channel frames are converted to BGR cells."""
        from carbonlens.batching import GridBatcher
        from carbonlens.models.frame import Frame

        frames = [
            Frame(image=np.full((20, 30), 200, dtype=np.uint8), captured_at=0.0, timestamp_label="t")
            for _ in range(4)
        ]
        grid = GridBatcher(cols=2, rows=2).compose(frames)
        assert grid.shape == (40, 60, 3)

    def test_label_text(self, sample_frames):
        """Labels are one-based index plus timestamp."""
        from carbonlens.batching import GridBatcher

        labels = GridBatcher().labels(sample_frames)
        assert labels[0] == "1 12:00:00"
        assert labels[11] == "12 12:00:11"


class TestLabelGeometry:
    """Tests for label sizing."""

    def test_minimum_size(self):
        """Narrow cells still get 20 px labels."""
        from carbonlens.batching.grid import label_geometry

        geometry = label_geometry("1 12:00:00", 80)
        assert geometry.size == 20
        assert geometry.padding == 8
        assert geometry.pill_height == 32
        assert geometry.radius == 5

    def test_scales_with_cell_width(self):
        """Wide cells get labels at 4% of the width."""
        from carbonlens.batching.grid import label_geometry

        geometry = label_geometry("1 12:00:00", 1280)
        assert geometry.size == 51
        assert geometry.padding == 20
        assert geometry.pill_width > geometry.size


class TestCodec:
    """Tests for the imaging codec helpers."""

    def test_data_url_round_trip_shape(self, sample_image):
        """A JPEG data URL decodes back to an image of the same shape."""
        from carbonlens.imaging import decode_data_url, encode_data_url

        url = encode_data_url(sample_image)
        assert url.startswith("data:image/jpeg;base64,")
        assert decode_data_url(url).shape == sample_image.shape

    def test_split_data_url(self):
        """MIME type and payload are separated."""
        from carbonlens.imaging import split_data_url

        mime, data = split_data_url("data:image/png;base64,aGVsbG8=")
        assert mime == "image/png"
        assert data == b"hello"

    def test_malformed_data_urls(self):
        """Non data URLs and bad base64 raise InvalidImage."""
        from carbonlens.imaging import InvalidImage, split_data_url

        with pytest.raises(InvalidImage):
            split_data_url("http://example.com/a.jpg")
        with pytest.raises(InvalidImage):
            split_data_url("data:image/png;base64,!!!")
