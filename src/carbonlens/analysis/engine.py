"""
Analysis Engine
===============

Black-box abstraction for the external vision model that turns a batch of
frames into an activity and emissions estimate.

Components:
    - Analyzer: Protocol every backend implements
    - MockAnalyzer: Deterministic offline backend for development and tests
    - compute_score_change: Canonical score normalisation
    - parse_analysis_text: Strict parser for model replies

Design Rules:
    - The pipeline consumes ONLY AnalysisResult, never raw model text
    - A reply that cannot be parsed is a failure, never a zero result
    - Score deltas are computed here, not by the model
"""

import asyncio
import json
import logging
import re
from typing import Protocol, Sequence

from pydantic import ValidationError

from carbonlens.models.analysis import ActivityDetection, AnalysisResult


logger = logging.getLogger(__name__)


# Baseline daily footprint (kg CO2) that maps to a score change of 100
REFERENCE_DAILY_CO2_KG = 12.85

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class AnalyzerUnavailable(Exception):
    """Raised when the analyzer call fails or its reply cannot be parsed."""
    pass


class MissingCredential(Exception):
    """Raised at call time when the analyzer's access credential is absent."""
    pass


def compute_score_change(
    total_co2_kg: float,
    reference_daily_co2_kg: float = REFERENCE_DAILY_CO2_KG,
) -> float:
    """
    Express a batch's emissions as a percentage of the daily reference.

    ``round(total / reference * 100, 2)``
    """
    return round((total_co2_kg / reference_daily_co2_kg) * 100, 2)


def parse_analysis_text(
    text: str,
    start_time: str,
    end_time: str,
    reference_daily_co2_kg: float = REFERENCE_DAILY_CO2_KG,
) -> AnalysisResult:
    """
    Parse a model reply into an AnalysisResult.

    Accepts bare JSON or JSON wrapped in Markdown code fences. The object
    must carry a numeric ``totalCO2Kg``; ``summary`` and ``activities``
    default to empty.

    Raises:
        AnalyzerUnavailable: If the reply is not the expected JSON shape
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    if not cleaned:
        raise AnalyzerUnavailable("Analyzer returned an empty reply")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AnalyzerUnavailable(f"Analyzer reply is not JSON: {e}; reply={cleaned[:100]!r}")

    if not isinstance(data, dict):
        raise AnalyzerUnavailable(f"Analyzer reply is not a JSON object: {cleaned[:100]!r}")

    total = data.get("totalCO2Kg")
    if isinstance(total, bool) or not isinstance(total, (int, float)):
        raise AnalyzerUnavailable(f"Analyzer reply has no numeric totalCO2Kg: {total!r}")

    try:
        activities = [
            ActivityDetection.model_validate(item)
            for item in (data.get("activities") or [])
        ]
        return AnalysisResult(
            summary=str(data.get("summary") or ""),
            activities=activities,
            total_co2_kg=float(total),
            score_change=compute_score_change(float(total), reference_daily_co2_kg),
            start_time=start_time,
            end_time=end_time,
        )
    except (ValidationError, TypeError) as e:
        raise AnalyzerUnavailable(f"Analyzer reply has an invalid shape: {e}")


class Analyzer(Protocol):
    """
    Protocol for analyzer backends.

    Two ingestion modes:
        - analyze_grid: one composed grid image plus first/last labels
        - analyze_frames: the ordered original frames and their labels

    Implementations raise AnalyzerUnavailable or MissingCredential on
    failure; they never return a partial result.
    """

    async def analyze_grid(
        self,
        image: bytes,
        start_time: str,
        end_time: str,
        mime_type: str = "image/jpeg",
    ) -> AnalysisResult:
        ...

    async def analyze_frames(
        self,
        images: Sequence[bytes],
        timestamps: Sequence[str],
    ) -> AnalysisResult:
        ...


class MockAnalyzer:
    """
    Deterministic mock analyzer.

    Reports the same activity for every batch, so runs are reproducible
    without network access or credentials.

    Attributes:
        total_co2_kg: Emissions reported per batch
        activity: Activity name reported per batch
        latency_seconds: Simulated model latency
        call_count: Number of analyses performed
    """

    def __init__(
        self,
        total_co2_kg: float = 0.85,
        activity: str = "Driving",
        estimated_quantity: str = "~5km",
        latency_seconds: float = 0.0,
        reference_daily_co2_kg: float = REFERENCE_DAILY_CO2_KG,
    ) -> None:
        self.total_co2_kg = total_co2_kg
        self.activity = activity
        self.estimated_quantity = estimated_quantity
        self.latency_seconds = latency_seconds
        self.reference_daily_co2_kg = reference_daily_co2_kg
        self.call_count: int = 0

        logger.info(
            f"MockAnalyzer initialized: total_co2_kg={total_co2_kg}, "
            f"activity={activity!r}"
        )

    async def analyze_grid(
        self,
        image: bytes,
        start_time: str,
        end_time: str,
        mime_type: str = "image/jpeg",
    ) -> AnalysisResult:
        if not image:
            raise AnalyzerUnavailable("Empty grid image")
        return await self._result(start_time, end_time, "grid")

    async def analyze_frames(
        self,
        images: Sequence[bytes],
        timestamps: Sequence[str],
    ) -> AnalysisResult:
        if not images:
            raise AnalyzerUnavailable("No frames provided")
        return await self._result(timestamps[0], timestamps[-1], f"{len(images)} frames")

    def get_metrics(self) -> dict:
        return {
            "backend": "mock",
            "call_count": self.call_count,
            "total_co2_kg": self.total_co2_kg,
        }

    async def _result(self, start_time: str, end_time: str, what: str) -> AnalysisResult:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

        self.call_count += 1
        return AnalysisResult(
            summary=f"Mock analysis of {what}: {self.activity.lower()}",
            activities=[
                ActivityDetection(
                    activity=self.activity,
                    estimated_quantity=self.estimated_quantity,
                    co2_kg=self.total_co2_kg,
                )
            ],
            total_co2_kg=self.total_co2_kg,
            score_change=compute_score_change(self.total_co2_kg, self.reference_daily_co2_kg),
            start_time=start_time,
            end_time=end_time,
        )
