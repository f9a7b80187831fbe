"""
Test Configuration
==================

Pytest fixtures and test doubles for CarbonLens.
"""

import asyncio
import time
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pytest


# =============================================================================
# Images
# =============================================================================

def gradient_image(width: int = 64, height: int = 48, horizontal: bool = True) -> np.ndarray:
    """BGR image with a linear brightness ramp."""
    if horizontal:
        ramp = np.linspace(0, 255, width, dtype=np.float64)[None, :].repeat(height, axis=0)
    else:
        ramp = np.linspace(0, 255, height, dtype=np.float64)[:, None].repeat(width, axis=1)
    gray = ramp.astype(np.uint8)
    return np.stack([gray, gray, gray], axis=2)


def noise_image(seed: int, width: int = 64, height: int = 48) -> np.ndarray:
    """Deterministic random BGR image."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


@pytest.fixture
def sample_image():
    """Provide a 64x48 BGR gradient image."""
    return gradient_image()


@pytest.fixture
def sample_frames():
    """Provide twelve labelled 80x60 mid-grey frames."""
    from carbonlens.models.frame import Frame

    return [
        Frame(
            image=np.full((60, 80, 3), 128, dtype=np.uint8),
            captured_at=1707321234.0 + i,
            timestamp_label=f"12:00:{i:02d}",
        )
        for i in range(12)
    ]


# =============================================================================
# Jobs and analyzers
# =============================================================================

def make_job(label: str = "12:00:00"):
    """Grid-mode job with a placeholder payload."""
    from carbonlens.models.job import BatchJob

    return BatchJob(
        start_time=label,
        end_time=label,
        timestamps=[label],
        grid_image=b"grid-bytes",
    )


class ScriptedAnalyzer:
    """
    Analyzer double with scripted totals, failures and an optional gate.

    While ``gate`` is set to an unset asyncio.Event, every call blocks
    until the event is set, which keeps jobs in ANALYZING.
    """

    def __init__(
        self,
        totals: Sequence[float] = (0.85,),
        fail_on: Iterable[int] = (),
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.totals = list(totals)
        self.fail_on = set(fail_on)
        self.gate = gate
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze_grid(self, image, start_time, end_time, mime_type="image/jpeg"):
        return await self._run(start_time, end_time)

    async def analyze_frames(self, images, timestamps):
        return await self._run(timestamps[0], timestamps[-1])

    async def _run(self, start_time, end_time):
        from carbonlens.analysis import AnalyzerUnavailable, compute_score_change
        from carbonlens.models.analysis import AnalysisResult

        index = len(self.calls)
        self.calls.append((start_time, end_time))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if index in self.fail_on:
                raise AnalyzerUnavailable("scripted failure")

            total = self.totals[index % len(self.totals)]
            return AnalysisResult(
                summary=f"batch {index + 1}",
                activities=[],
                total_co2_kg=total,
                score_change=compute_score_change(total),
                start_time=start_time,
                end_time=end_time,
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def scripted_analyzer():
    """Provide an ungated analyzer reporting 0.85 kg per batch."""
    return ScriptedAnalyzer()


# =============================================================================
# Frame sources
# =============================================================================

class FakeSource:
    """
    In-memory frame source.

    Yields ``images`` in order. Afterwards it either loops, reports
    exhaustion, or stalls (returns None without being exhausted).
    """

    def __init__(
        self,
        images: Sequence[np.ndarray],
        after: str = "exhaust",
        fail_open: bool = False,
    ) -> None:
        self.images = list(images)
        self.after = after
        self.fail_open = fail_open
        self.index = 0
        self.reads = 0
        self.opened = False
        self.closed = False
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def open(self) -> None:
        from carbonlens.capture import SourceUnavailable

        if self.fail_open:
            raise SourceUnavailable("fake camera unplugged")
        self.opened = True

    def read(self):
        from carbonlens.models.frame import Frame

        self.reads += 1
        if self.index >= len(self.images):
            if self.after == "loop" and self.images:
                self.index = 0
            else:
                if self.after == "exhaust":
                    self._exhausted = True
                return None

        image = self.images[self.index]
        self.index += 1
        return Frame(
            image=image,
            captured_at=time.time(),
            timestamp_label=f"00:00:{self.index:02d}",
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fast_capture_config():
    """Capture settings with 2x2 grids and no real-time delays."""
    from carbonlens.config import CaptureConfig

    return CaptureConfig(
        frames_per_batch=4,
        grid_cols=2,
        grid_rows=2,
        sample_interval_seconds=0.0,
        frame_retry_delay_seconds=0.0,
        queue_poll_interval_seconds=0.01,
        timeout_seconds=5.0,
    )
