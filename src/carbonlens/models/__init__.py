"""
Data Models
===========

Typed data passed between the capture, batching and analysis stages.

Models:
    Frame:
        - Frame: Sampled video frame (decoded pixels + capture time)

    Analysis:
        - ActivityDetection: One detected activity
        - AnalysisResult: Analyzer output for one batch

    Jobs:
        - JobStatus: PENDING, ANALYZING, COMPLETE, FAILED
        - BatchJob: Mutable job record owned by the batch queue
        - JobSnapshot: Read-only job view

    API:
        - HTTP request/response bodies
"""

from carbonlens.models.frame import Frame
from carbonlens.models.analysis import ActivityDetection, AnalysisResult
from carbonlens.models.job import BatchJob, JobSnapshot, JobStatus
from carbonlens.models.api import (
    AnalyzeBatchRequest,
    AnalyzeBatchResponse,
    CaptureStartResponse,
    CaptureStopResponse,
    CaptureStartRequest,
    CaptureStatus,
    CheckFrameResponse,
    JobsResponse,
    MessageResponse,
    ScoreResponse,
)

__all__ = [
    # Frame
    "Frame",
    # Analysis
    "ActivityDetection",
    "AnalysisResult",
    # Jobs
    "JobStatus",
    "BatchJob",
    "JobSnapshot",
    # API
    "AnalyzeBatchRequest",
    "AnalyzeBatchResponse",
    "CaptureStartResponse",
    "CaptureStopResponse",
    "CaptureStartRequest",
    "CaptureStatus",
    "CheckFrameResponse",
    "JobsResponse",
    "MessageResponse",
    "ScoreResponse",
]
