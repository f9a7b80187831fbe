"""
Frame Sources
=============

Video inputs the capture driver samples frames from.

This module provides:
    - FrameSource: Protocol the driver depends on
    - VideoCaptureSource: OpenCV VideoCapture over a camera index, a video
      file (an uploaded recording) or a stream URL

Design Rules:
    - read() never blocks for long; None means "no frame ready yet"
    - A source that cannot be opened or stops delivering raises
      SourceUnavailable, which ends the capture run
    - File sources advance by the sample interval in media time, so an
      uploaded recording is sampled at the same cadence as a live camera
"""

import logging
import os
import time
from typing import Optional, Protocol, Union

import cv2

from carbonlens.models.frame import Frame


logger = logging.getLogger(__name__)


# Smallest media-time step for file sources (one frame at 25 fps)
MIN_FILE_STEP_SECONDS = 0.04


class SourceUnavailable(Exception):
    """Raised when a video source cannot be opened or stops delivering."""
    pass


class FrameSource(Protocol):
    """
    Protocol for frame sources.

    Methods are blocking; the driver calls them from a worker thread.
    """

    @property
    def exhausted(self) -> bool:
        """True once a finite source has no more frames."""
        ...

    def open(self) -> None:
        ...

    def read(self) -> Optional[Frame]:
        ...

    def close(self) -> None:
        ...


def parse_source(uri: str) -> Union[int, str]:
    """Camera indices are given as digit strings ("0"); anything else is a path or URL."""
    stripped = uri.strip()
    return int(stripped) if stripped.isdigit() else stripped


class VideoCaptureSource:
    """
    OpenCV-backed frame source.

    Attributes:
        uri: Camera index, file path or stream URL
        sample_interval_seconds: Media-time step between reads of a file
        max_read_failures: Consecutive failed reads tolerated from a live
            source before it is declared unavailable
    """

    def __init__(
        self,
        uri: str,
        sample_interval_seconds: float = 1.0,
        max_read_failures: int = 50,
    ) -> None:
        self.uri = uri
        self.sample_interval_seconds = sample_interval_seconds
        self.max_read_failures = max_read_failures

        self._target = parse_source(uri)
        self._is_file = isinstance(self._target, str) and os.path.isfile(self._target)
        self._capture: Optional[cv2.VideoCapture] = None
        self._position_ms: float = 0.0
        self._read_failures: int = 0
        self._exhausted: bool = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def is_file(self) -> bool:
        return self._is_file

    def open(self) -> None:
        """
        Open the underlying capture.

        Raises:
            SourceUnavailable: If OpenCV cannot open the source
        """
        capture = cv2.VideoCapture(self._target)
        if not capture.isOpened():
            capture.release()
            raise SourceUnavailable(f"Cannot open video source: {self.uri}")

        self._capture = capture
        self._position_ms = 0.0
        self._read_failures = 0
        self._exhausted = False
        logger.info(
            f"Opened video source {self.uri} "
            f"({'file' if self._is_file else 'live'})"
        )

    def read(self) -> Optional[Frame]:
        """
        Read the next sample.

        Returns:
            Frame, or None when no frame is available right now (or the
            file has ended; check ``exhausted``)

        Raises:
            SourceUnavailable: If the source is closed or a live source
                keeps failing
        """
        if self._capture is None:
            raise SourceUnavailable(f"Video source not open: {self.uri}")
        if self._exhausted:
            return None

        if self._is_file:
            self._capture.set(cv2.CAP_PROP_POS_MSEC, self._position_ms)

        ok, image = self._capture.read()
        if not ok or image is None:
            if self._is_file:
                self._exhausted = True
                logger.info(f"Reached end of {self.uri} at {self._position_ms / 1000:.1f}s")
                return None

            self._read_failures += 1
            if self._read_failures >= self.max_read_failures:
                raise SourceUnavailable(
                    f"Video source {self.uri} failed {self._read_failures} consecutive reads"
                )
            return None

        self._read_failures = 0
        if self._is_file:
            self._position_ms += max(self.sample_interval_seconds, MIN_FILE_STEP_SECONDS) * 1000.0

        return Frame(image=image, captured_at=time.time())

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Closed video source {self.uri}")
