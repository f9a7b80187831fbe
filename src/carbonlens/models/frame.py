"""
Frame Data Model
================

Internal frame representation for the capture pipeline.

Design Rules:
    - This is the ONLY frame format passed between capture stages
    - Frames are never mutated after creation
    - The image is kept decoded (BGR uint8) so hashing and grid
      composition do not decode twice
"""

import time
from dataclasses import dataclass
from typing import Optional

import numpy as np


def format_clock(timestamp: float) -> str:
    """Format a UNIX timestamp as local 24h ``HH:MM:SS``."""
    return time.strftime("%H:%M:%S", time.localtime(timestamp))


@dataclass(frozen=True, slots=True, eq=False)
class Frame:
    """
    Sampled video frame.

    Attributes:
        image: Decoded BGR (or greyscale) pixel array, dtype=uint8
        captured_at: UNIX timestamp when the frame was sampled
        timestamp_label: Optional explicit label; defaults to the
            wall-clock time of ``captured_at``
    """

    image: np.ndarray
    captured_at: float
    timestamp_label: Optional[str] = None

    @property
    def label(self) -> str:
        """Timestamp text used in grid labels and analyzer requests."""
        if self.timestamp_label is not None:
            return self.timestamp_label
        return format_clock(self.captured_at)

    @property
    def shape(self) -> tuple:
        return self.image.shape

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(shape={self.image.shape}, "
            f"captured_at={self.captured_at:.3f}, "
            f"label={self.label!r})"
        )
