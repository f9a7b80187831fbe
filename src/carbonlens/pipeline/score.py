"""
Score Board
===========

Running cumulative score folded from completed batches.
"""

import logging


logger = logging.getLogger(__name__)


class ScoreBoard:
    """
    Cumulative score with two-decimal rounding after every addition.

    Rounding per addition keeps float drift from accumulating over many
    batches: after deltas d1 and d2 the score is round(d1 + d2, 2) for
    two-decimal deltas regardless of how they arrive.
    """

    def __init__(self) -> None:
        self._cumulative_score: float = 0.0
        self._completed_batches: int = 0

    @property
    def cumulative_score(self) -> float:
        return self._cumulative_score

    @property
    def completed_batches(self) -> int:
        return self._completed_batches

    def add(self, delta: float) -> float:
        """Fold one completed batch's delta into the score."""
        self._cumulative_score = round(self._cumulative_score + delta, 2)
        self._completed_batches += 1
        return self._cumulative_score

    def reset(self) -> None:
        self._cumulative_score = 0.0
        self._completed_batches = 0
        logger.info("Score board reset")

    def to_dict(self) -> dict:
        return {
            "cumulativeScore": self._cumulative_score,
            "totalBatches": self._completed_batches,
        }
