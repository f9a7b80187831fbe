"""
Hashing Module
==============

Perceptual fingerprints for near-duplicate frame detection.

Components:
    - Fingerprint: Immutable 64-bit image fingerprint
    - compute_fingerprint: DCT perceptual hash of a pixel array
    - hamming_distance: Bitwise distance between fingerprints
"""

from carbonlens.hashing.phash import (
    FINGERPRINT_BITS,
    Fingerprint,
    compute_fingerprint,
    compute_fingerprint_from_bytes,
    dct_coefficients,
    hamming_distance,
)


__all__ = [
    "FINGERPRINT_BITS",
    "Fingerprint",
    "compute_fingerprint",
    "compute_fingerprint_from_bytes",
    "dct_coefficients",
    "hamming_distance",
]
