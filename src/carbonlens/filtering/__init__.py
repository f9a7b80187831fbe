"""
Filtering Module
================

Admission control for sampled frames.
"""

from carbonlens.filtering.admission import (
    DEFAULT_THRESHOLD,
    AdmissionDecision,
    AdmissionFilter,
)


__all__ = [
    "DEFAULT_THRESHOLD",
    "AdmissionDecision",
    "AdmissionFilter",
]
