"""
Batch Job Models
================

A batch ("grid job") is one fixed-size set of accepted frames queued as a
single unit for external analysis.

State Machine:
    PENDING -> ANALYZING -> COMPLETE
                         -> FAILED

Design Rules:
    - The frame payload is closed once a job is created
    - Only the batch queue changes status, result and error
    - Terminal jobs are kept only in a short trailing history
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from carbonlens.models.analysis import AnalysisResult
from carbonlens.models.frame import Frame


class JobStatus(str, Enum):
    """Lifecycle state of a batch job."""

    PENDING = "Pending"
    ANALYZING = "Analyzing"
    COMPLETE = "Complete"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.ANALYZING)


@dataclass(eq=False)
class BatchJob:
    """
    One batch awaiting or undergoing analysis.

    Exactly one of the two payload shapes is set:
        - grid_image: composed grid, JPEG bytes
        - frame_images: ordered per-frame JPEG bytes

    Attributes:
        start_time: Label of the first frame
        end_time: Label of the last frame
        timestamps: Labels of every frame, in capture order
        id: Assigned by the queue on admission (0 until then)
        status: Current lifecycle state
        result: Analyzer result once COMPLETE
        error: Failure message once FAILED
        failure: Exception that failed the job, if any
        cumulative_score: Running score right after this job completed
    """

    start_time: str
    end_time: str
    timestamps: List[str]
    grid_image: Optional[bytes] = None
    mime_type: str = "image/jpeg"
    frame_images: List[bytes] = field(default_factory=list)
    id: int = 0
    status: JobStatus = JobStatus.PENDING
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    failure: Optional[Exception] = None
    cumulative_score: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate invariants."""
        if (self.grid_image is None) == (not self.frame_images):
            raise ValueError("BatchJob needs exactly one of grid_image or frame_images")
        if self.frame_images and len(self.frame_images) != len(self.timestamps):
            raise ValueError("frame_images and timestamps must have the same length")

    @classmethod
    def from_grid(cls, grid_jpeg: bytes, frames: Sequence[Frame]) -> "BatchJob":
        """Build a grid-mode job from a composed grid and its source frames."""
        labels = [frame.label for frame in frames]
        return cls(
            start_time=labels[0] if labels else "",
            end_time=labels[-1] if labels else "",
            timestamps=labels,
            grid_image=grid_jpeg,
        )

    @classmethod
    def from_frames(cls, images: Sequence[bytes], timestamps: Sequence[str]) -> "BatchJob":
        """Build a per-frame job from encoded frames and their labels."""
        labels = list(timestamps)
        return cls(
            start_time=labels[0] if labels else "",
            end_time=labels[-1] if labels else "",
            timestamps=labels,
            frame_images=list(images),
        )

    @property
    def frame_count(self) -> int:
        return len(self.timestamps)

    @property
    def mode(self) -> str:
        return "grid" if self.grid_image is not None else "frames"

    def snapshot(self) -> "JobSnapshot":
        """Immutable view for observability endpoints."""
        return JobSnapshot(
            id=self.id,
            status=self.status,
            mode=self.mode,
            frame_count=self.frame_count,
            start_time=self.start_time,
            end_time=self.end_time,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            score_change=self.result.score_change if self.result else None,
            total_co2_kg=self.result.total_co2_kg if self.result else None,
            summary=self.result.summary if self.result else None,
            error=self.error,
        )

    def __repr__(self) -> str:
        return (
            f"BatchJob(id={self.id}, status={self.status.value}, "
            f"mode={self.mode}, frames={self.frame_count})"
        )


class JobSnapshot(BaseModel):
    """Point-in-time view of a batch job."""

    id: int = Field(..., ge=0)
    status: JobStatus
    mode: str
    frame_count: int = Field(..., ge=0)
    start_time: str
    end_time: str
    created_at: float
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    score_change: Optional[float] = None
    total_co2_kg: Optional[float] = None
    summary: Optional[str] = None
    error: Optional[str] = None
