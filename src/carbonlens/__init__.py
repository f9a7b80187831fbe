"""
CarbonLens
==========

Near-duplicate frame filtering and batched activity-emissions analysis.

This package samples frames from a video source, drops frames that are
perceptually too close to the last one kept, composes every twelve kept
frames into a labelled grid, and sends each grid to a vision model that
estimates the CO2 footprint of the activities it sees.

Components:
    - hashing: 64-bit DCT perceptual fingerprints
    - filtering: Admission filter over fingerprints
    - batching: Labelled grid composition
    - analysis: Analyzer backends (mock, Gemini)
    - pipeline: Bounded batch queue with a single worker, running score
    - capture: Frame sources and the capture driver

Example:
    from carbonlens.config import settings

    # Service is started via FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
