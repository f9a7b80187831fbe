"""
HTTP Payload Models
===================

Request and response bodies of the service's HTTP routes.

Check-frame (POST /check-image, multipart field "image"):
    {"shouldProcess": true, "distance": 24, "message": "Accepted (distance: 24)"}

Analyze-batch (POST /analyze-grid), either shape:
    {"gridImage": "data:image/jpeg;base64,...", "startTime": "...", "endTime": "..."}
    {"images": ["data:image/jpeg;base64,...", ...], "timestamps": ["...", ...]}
"""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from carbonlens.models.analysis import ActivityDetection
from carbonlens.models.job import JobSnapshot


class CheckFrameResponse(BaseModel):
    """Admission decision for one uploaded frame."""

    should_process: bool = Field(..., alias="shouldProcess")
    distance: Optional[int] = Field(default=None, ge=0)
    message: str

    class Config:
        populate_by_name = True


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class AnalyzeBatchRequest(BaseModel):
    """
    Analyze-batch request in grid or per-frame form.

    Attributes:
        grid_image: Composed grid as a data URL (grid mode)
        start_time: Label of the first frame (grid mode)
        end_time: Label of the last frame (grid mode)
        images: Ordered frame data URLs (per-frame mode)
        timestamps: Labels matching ``images`` (per-frame mode)
    """

    grid_image: Optional[str] = Field(default=None, alias="gridImage")
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")
    images: Optional[List[str]] = None
    timestamps: Optional[List[str]] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "AnalyzeBatchRequest":
        if self.grid_image and self.images:
            raise ValueError("Provide either gridImage or images, not both")
        if not self.grid_image and not self.images:
            raise ValueError("No grid image or frames provided")
        if self.images is not None:
            if self.timestamps is None or len(self.timestamps) != len(self.images):
                raise ValueError("timestamps must match images one-to-one")
        return self

    @property
    def is_grid(self) -> bool:
        return bool(self.grid_image)

    class Config:
        populate_by_name = True


class AnalyzeBatchResponse(BaseModel):
    """Analyzer result plus the updated running score."""

    summary: str
    activities: List[ActivityDetection]
    total_co2_kg: float = Field(..., alias="totalCO2Kg")
    score_change: float = Field(..., alias="scoreChange")
    cumulative_score: float = Field(..., alias="cumulativeScore")
    batch_number: int = Field(..., alias="batchNumber")
    start_time: str = Field(default="", alias="startTime")
    end_time: str = Field(default="", alias="endTime")

    class Config:
        populate_by_name = True


class ScoreResponse(BaseModel):
    """Running score and completed batch count."""

    cumulative_score: float = Field(..., alias="cumulativeScore")
    total_batches: int = Field(..., ge=0, alias="totalBatches")

    class Config:
        populate_by_name = True


class CaptureStartRequest(BaseModel):
    """Capture start options."""

    policy: Optional[str] = Field(
        default=None,
        description="'bounded' or 'continuous'; defaults to the configured policy",
    )


class CaptureStatus(BaseModel):
    """Capture driver status."""

    active: bool
    policy: Optional[str] = None
    run_id: int = 0
    frames_checked: int = 0
    frames_accepted: int = 0
    frames_skipped: int = 0
    current_batch_frames: int = 0
    batches_queued: int = 0
    batches_discarded: int = 0
    waiting_for_capacity: bool = False
    started_at: Optional[float] = None
    last_error: Optional[str] = None


class CaptureStartResponse(BaseModel):
    """Result of a start request; started is False if a run was already active."""

    started: bool
    status: CaptureStatus


class CaptureStopResponse(BaseModel):
    stopped: bool
    status: CaptureStatus


class JobsResponse(BaseModel):
    """Queue contents and trailing history."""

    capacity: int
    active: int
    cumulative_score: float = Field(..., alias="cumulativeScore")
    jobs: List[JobSnapshot]

    class Config:
        populate_by_name = True
