"""
Pipeline Module
===============

Bounded batch queue, single analysis worker and running score.

Components:
    - BatchQueue: Admission-controlled FIFO drained by one worker task
    - ScoreBoard: Cumulative score folded from completed batches
"""

from carbonlens.pipeline.queue import BatchQueue
from carbonlens.pipeline.score import ScoreBoard


__all__ = [
    "BatchQueue",
    "ScoreBoard",
]
