"""
Capture Module
==============

Frame sampling and batch assembly.

This module provides the ingestion layer for CarbonLens:
    - FrameSource / VideoCaptureSource: camera, file or stream input
    - CaptureDriver: bounded and continuous sampling runs
    - CaptureSession: per-run state (admission filter, current batch)

Example:
    from carbonlens.capture import CaptureDriver, CapturePolicy, VideoCaptureSource

    driver = CaptureDriver(
        source_factory=lambda: VideoCaptureSource("recording.mp4"),
        batch_queue=queue,
    )
    driver.start(CapturePolicy.BOUNDED)
    await driver.wait()
"""

from carbonlens.capture.source import (
    FrameSource,
    SourceUnavailable,
    VideoCaptureSource,
    parse_source,
)
from carbonlens.capture.driver import CaptureDriver, CapturePolicy, CaptureSession


__all__ = [
    "FrameSource",
    "SourceUnavailable",
    "VideoCaptureSource",
    "parse_source",
    "CaptureDriver",
    "CapturePolicy",
    "CaptureSession",
]
