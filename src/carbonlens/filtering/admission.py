"""
Admission Filter
================

Decides per frame whether it shows new content compared with the last
accepted frame.

Policy:
    - No reference yet: accept unconditionally, distance is None
    - Otherwise accept iff hamming distance >= threshold
    - Only an accepted frame replaces the reference; a rejected frame
      leaves the anchor in place, so slow drift across many similar
      frames is still measured against the same accepted frame
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from carbonlens.hashing.phash import Fingerprint, compute_fingerprint, hamming_distance


logger = logging.getLogger(__name__)


DEFAULT_THRESHOLD = 20


@dataclass(frozen=True, slots=True)
class AdmissionDecision:
    """
    Outcome of one admission check.

    Attributes:
        accept: Whether the frame was accepted
        distance: Hamming distance to the reference, None for the first frame
        reason: Human-readable explanation
    """

    accept: bool
    distance: Optional[int]
    reason: str

    def to_dict(self) -> dict:
        """Export in the check-frame wire shape."""
        return {
            "shouldProcess": self.accept,
            "distance": self.distance,
            "message": self.reason,
        }


class AdmissionFilter:
    """
    Perceptual-hash similarity filter.

    Holds the fingerprint of the most recently accepted frame. Owned by a
    single producer; not safe to share between concurrent capture runs.

    Attributes:
        threshold: Minimum distance (inclusive) for a frame to be accepted
        reference: Fingerprint of the last accepted frame, or None

    Example:
        admission = AdmissionFilter(threshold=20)

        decision = admission.should_accept(frame.image)
        if decision.accept:
            batch.append(frame)
    """

    def __init__(self, threshold: int = DEFAULT_THRESHOLD) -> None:
        if threshold < 0:
            raise ValueError("threshold must be >= 0")

        self.threshold = threshold
        self._reference: Optional[Fingerprint] = None

        self.checked: int = 0
        self.accepted: int = 0
        self.skipped: int = 0

    @property
    def reference(self) -> Optional[Fingerprint]:
        """Fingerprint of the last accepted frame."""
        return self._reference

    def should_accept(self, image: np.ndarray) -> AdmissionDecision:
        """
        Hash an image and apply the admission policy.

        Raises:
            InvalidImage: If the image cannot be hashed. The reference
                and counters are left untouched.
        """
        return self.check_fingerprint(compute_fingerprint(image))

    def check_fingerprint(self, fingerprint: Fingerprint) -> AdmissionDecision:
        """Apply the admission policy to a precomputed fingerprint."""
        self.checked += 1

        if self._reference is None:
            self._reference = fingerprint
            self.accepted += 1
            return AdmissionDecision(
                accept=True,
                distance=None,
                reason="First image — accepted",
            )

        distance = hamming_distance(self._reference, fingerprint)

        if distance >= self.threshold:
            self._reference = fingerprint
            self.accepted += 1
            return AdmissionDecision(
                accept=True,
                distance=distance,
                reason=f"Accepted (distance: {distance})",
            )

        self.skipped += 1
        return AdmissionDecision(
            accept=False,
            distance=distance,
            reason=f"Too similar (distance: {distance})",
        )

    def reset(self) -> None:
        """Clear the reference fingerprint. Safe to call at any time."""
        if self._reference is not None:
            logger.debug("Admission reference cleared")
        self._reference = None

    def metrics(self) -> dict:
        """Get filter counters for observability."""
        return {
            "threshold": self.threshold,
            "checked": self.checked,
            "accepted": self.accepted,
            "skipped": self.skipped,
            "has_reference": self._reference is not None,
        }
