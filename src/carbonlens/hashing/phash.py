"""
Perceptual Hash
===============

DCT-based perceptual fingerprint used to detect near-duplicate frames.

Algorithm:
    1. Resize to 32x32 (stretched, aspect ratio ignored), greyscale 0-255
    2. Project onto the 8x8 lowest-frequency cosine basis:

           F(u, v) = sum_x sum_y p(x, y)
                     * cos((2x + 1) * u * pi / 64)
                     * cos((2y + 1) * v * pi / 64)

       with x the row index and y the column index, giving 64
       coefficients in row-major (u, v) order
    3. Median of coefficients 1..63 (the DC term is left out of the
       threshold so overall brightness does not bias it)
    4. Bit i is 1 when coefficient i >= median, DC bit included

Bit 0 (the DC coefficient) is stored as the most significant bit, so the
textual form reads in coefficient order.
"""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from carbonlens.imaging.codec import InvalidImage, decode_image_bytes, to_grayscale, validate_image


logger = logging.getLogger(__name__)


HASH_INPUT_SIZE = 32
DCT_SIZE = 8
FINGERPRINT_BITS = DCT_SIZE * DCT_SIZE


def _cosine_basis(size: int, n_coefficients: int) -> np.ndarray:
    """Cosine basis matrix C[u, x] = cos((2x + 1) * u * pi / (2 * size))."""
    u = np.arange(n_coefficients, dtype=np.float64)[:, None]
    x = np.arange(size, dtype=np.float64)[None, :]
    return np.cos((2 * x + 1) * u * np.pi / (2 * size))


_BASIS = _cosine_basis(HASH_INPUT_SIZE, DCT_SIZE)


@dataclass(frozen=True, slots=True)
class Fingerprint:
    """
    Fixed-length binary image fingerprint.

    Attributes:
        value: Bits packed into an int, first coefficient in the MSB
        length: Number of bits (64 for fingerprints computed here)
    """

    value: int
    length: int = FINGERPRINT_BITS

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.length <= 0:
            raise ValueError("length must be positive")
        if self.value < 0 or self.value >> self.length:
            raise ValueError(f"value does not fit in {self.length} bits")

    @classmethod
    def from_bits(cls, bits: str) -> "Fingerprint":
        """
        Build a fingerprint from a string of '0' and '1' characters.

        Args:
            bits: Bit string in coefficient order

        Returns:
            Fingerprint of len(bits) bits
        """
        if not bits or set(bits) - {"0", "1"}:
            raise ValueError("bits must be a non-empty string of '0'/'1'")
        return cls(value=int(bits, 2), length=len(bits))

    @property
    def bits(self) -> str:
        """Bit string in coefficient order."""
        return format(self.value, f"0{self.length}b")

    def to_hex(self) -> str:
        """Hexadecimal form, zero padded."""
        return format(self.value, f"0{(self.length + 3) // 4}x")

    def __str__(self) -> str:
        return self.bits

    def __repr__(self) -> str:
        return f"Fingerprint({self.to_hex()})"


def hamming_distance(a: Fingerprint, b: Fingerprint) -> int:
    """
    Count bit positions at which two fingerprints differ.

    Raises:
        ValueError: If the fingerprints have different lengths
    """
    if a.length != b.length:
        raise ValueError(
            f"Fingerprints must be the same length ({a.length} != {b.length})"
        )
    return bin(a.value ^ b.value).count("1")


def dct_coefficients(image: np.ndarray) -> np.ndarray:
    """
    Compute the 64 low-frequency coefficients of an image.

    Args:
        image: Greyscale or BGR uint8 image of any size

    Returns:
        Float64 array of shape (64,), row-major (u, v) order

    Raises:
        InvalidImage: If the image cannot be resized or converted
    """
    validate_image(image)
    try:
        resized = cv2.resize(
            image,
            (HASH_INPUT_SIZE, HASH_INPUT_SIZE),
            interpolation=cv2.INTER_AREA,
        )
        gray = to_grayscale(resized)
    except cv2.error as e:
        raise InvalidImage(f"Failed to normalise image for hashing: {e}")

    pixels = gray.astype(np.float64)
    return (_BASIS @ pixels @ _BASIS.T).reshape(-1)


def compute_fingerprint(image: np.ndarray) -> Fingerprint:
    """
    Compute the perceptual fingerprint of an image.

    Pure and deterministic for a given pixel buffer.

    Args:
        image: Greyscale or BGR uint8 image

    Returns:
        64-bit Fingerprint

    Raises:
        InvalidImage: If the image is empty or corrupt
    """
    coefficients = dct_coefficients(image)

    # 63 values, so the median is always the single middle element
    median = float(np.median(coefficients[1:]))

    value = 0
    for bit in coefficients >= median:
        value = (value << 1) | int(bit)

    return Fingerprint(value=value, length=FINGERPRINT_BITS)


def compute_fingerprint_from_bytes(data: bytes) -> Fingerprint:
    """Decode an encoded still image and compute its fingerprint."""
    return compute_fingerprint(decode_image_bytes(data))
