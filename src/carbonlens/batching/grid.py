"""
Grid Batcher
============

Composes a full batch of accepted frames into one labelled grid image.

Layout:
    - Row-major cells, ``cols x rows`` (4 x 3 for a 12-frame batch)
    - Cell size is the size of the first frame; other frames are scaled
    - Each cell carries a ``"{n} {HH:MM:SS}"`` label on a 60% opaque
      black pill, inset from the cell's top-left corner

Design Rules:
    - All-or-nothing: exactly ``cols * rows`` frames, never padded
    - Returns raw pixels; JPEG encoding lives in carbonlens.imaging
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from carbonlens.models.frame import Frame
from carbonlens.imaging.codec import to_bgr


logger = logging.getLogger(__name__)


LABEL_FONT = cv2.FONT_HERSHEY_SIMPLEX
LABEL_THICKNESS = 2
LABEL_MIN_SIZE = 20
LABEL_WIDTH_RATIO = 0.04
PILL_OPACITY = 0.6


@dataclass(frozen=True, slots=True)
class LabelGeometry:
    """Pixel geometry of one cell label, relative to the cell origin."""

    size: int
    padding: int
    pill_width: int
    pill_height: int
    radius: int
    text_origin: Tuple[int, int]
    font_scale: float


def label_text(index: int, frame: Frame) -> str:
    """Label for the frame at zero-based ``index``."""
    return f"{index + 1} {frame.label}"


def label_geometry(text: str, cell_width: int) -> LabelGeometry:
    """
    Compute label size and placement for a cell of the given width.

    The text height scales with the cell width (4%, at least 20 px);
    the pill is one text-height wider than the text and 1.6 heights tall.
    """
    size = max(LABEL_MIN_SIZE, int(round(cell_width * LABEL_WIDTH_RATIO)))
    padding = int(round(size * 0.4))

    # Hershey glyph height covers cap height; scale it to ~70% of the em size
    font_scale = cv2.getFontScaleFromHeight(LABEL_FONT, int(round(size * 0.7)), LABEL_THICKNESS)
    (text_width, text_height), _ = cv2.getTextSize(text, LABEL_FONT, font_scale, LABEL_THICKNESS)

    pill_width = int(text_width + size)
    pill_height = int(round(size * 1.6))
    text_x = padding + int(round(size * 0.5))
    text_y = padding + int(round(size * 0.8 + text_height / 2))

    return LabelGeometry(
        size=size,
        padding=padding,
        pill_width=pill_width,
        pill_height=pill_height,
        radius=max(1, int(round(size * 0.25))),
        text_origin=(text_x, text_y),
        font_scale=font_scale,
    )


def _fill_rounded_rect(
    canvas: np.ndarray,
    top_left: Tuple[int, int],
    bottom_right: Tuple[int, int],
    radius: int,
    color,
) -> None:
    x0, y0 = top_left
    x1, y1 = bottom_right
    radius = max(0, min(radius, (x1 - x0) // 2, (y1 - y0) // 2))

    cv2.rectangle(canvas, (x0 + radius, y0), (x1 - radius, y1), color, -1)
    cv2.rectangle(canvas, (x0, y0 + radius), (x1, y1 - radius), color, -1)
    for cx, cy in (
        (x0 + radius, y0 + radius),
        (x1 - radius, y0 + radius),
        (x0 + radius, y1 - radius),
        (x1 - radius, y1 - radius),
    ):
        cv2.circle(canvas, (cx, cy), radius, color, -1, cv2.LINE_AA)


class GridBatcher:
    """
    Composes fixed-size frame batches into a single grid image.

    Attributes:
        cols: Number of grid columns
        rows: Number of grid rows
        batch_size: Frames per grid (cols * rows)

    Example:
        batcher = GridBatcher(cols=4, rows=3)
        grid = batcher.compose(frames)   # exactly 12 frames
        jpeg = encode_jpeg(grid)
    """

    def __init__(self, cols: int = 4, rows: int = 3) -> None:
        if cols < 1 or rows < 1:
            raise ValueError("cols and rows must be >= 1")
        self.cols = cols
        self.rows = rows

    @property
    def batch_size(self) -> int:
        return self.cols * self.rows

    def cell_origin(self, index: int, cell_size: Tuple[int, int]) -> Tuple[int, int]:
        """Top-left pixel (x, y) of the cell at ``index``."""
        cell_w, cell_h = cell_size
        return (index % self.cols) * cell_w, (index // self.cols) * cell_h

    def labels(self, frames: Sequence[Frame]) -> List[str]:
        return [label_text(i, frame) for i, frame in enumerate(frames)]

    def compose(self, frames: Sequence[Frame]) -> np.ndarray:
        """
        Compose frames into a labelled grid.

        Args:
            frames: Exactly ``batch_size`` frames in capture order

        Returns:
            BGR image of shape (rows * cell_h, cols * cell_w, 3)

        Raises:
            ValueError: If the frame count is not exactly ``batch_size``
            InvalidImage: If a frame image is unusable
        """
        if len(frames) != self.batch_size:
            raise ValueError(
                f"Grid needs exactly {self.batch_size} frames, got {len(frames)}"
            )

        first = to_bgr(frames[0].image)
        cell_h, cell_w = first.shape[:2]

        canvas = np.zeros((cell_h * self.rows, cell_w * self.cols, 3), dtype=np.uint8)

        for index, frame in enumerate(frames):
            image = first if index == 0 else to_bgr(frame.image)
            if image.shape[:2] != (cell_h, cell_w):
                image = cv2.resize(image, (cell_w, cell_h), interpolation=cv2.INTER_AREA)

            x, y = self.cell_origin(index, (cell_w, cell_h))
            canvas[y:y + cell_h, x:x + cell_w] = image
            self._draw_label(canvas, label_text(index, frame), x, y, cell_w, cell_h)

        logger.debug(
            f"Composed {self.cols}x{self.rows} grid: "
            f"{canvas.shape[1]}x{canvas.shape[0]} px"
        )
        return canvas

    def _draw_label(
        self,
        canvas: np.ndarray,
        text: str,
        cell_x: int,
        cell_y: int,
        cell_w: int,
        cell_h: int,
    ) -> None:
        geometry = label_geometry(text, cell_w)

        # Pill clipped to the cell
        x0 = cell_x + geometry.padding
        y0 = cell_y + geometry.padding
        x1 = min(x0 + geometry.pill_width, cell_x + cell_w - 1)
        y1 = min(y0 + geometry.pill_height, cell_y + cell_h - 1)
        if x1 <= x0 or y1 <= y0:
            return

        region = canvas[y0:y1 + 1, x0:x1 + 1]
        mask = np.zeros(region.shape[:2], dtype=np.float32)
        _fill_rounded_rect(mask, (0, 0), (x1 - x0, y1 - y0), geometry.radius, 1.0)

        shaded = region.astype(np.float32) * (1.0 - PILL_OPACITY * mask[:, :, None])
        region[:] = shaded.astype(np.uint8)

        text_x, text_y = geometry.text_origin
        cv2.putText(
            canvas,
            text,
            (cell_x + text_x, cell_y + text_y),
            LABEL_FONT,
            geometry.font_scale,
            (255, 255, 255),
            LABEL_THICKNESS,
            cv2.LINE_AA,
        )
