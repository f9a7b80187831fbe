"""
Image Codec
===========

Decoding and encoding of still images exchanged with the outside world.

Design Rules:
    - This is the ONLY place in the codebase that decodes or encodes images
    - Validates shape and dtype
    - Fails fast on corrupt input with InvalidImage
    - Internal images are BGR uint8 arrays (OpenCV convention)
"""

import base64
import binascii
import logging
import re
from typing import Tuple

import cv2
import numpy as np


logger = logging.getLogger(__name__)


_DATA_URL_PATTERN = re.compile(r"^data:(.+?);base64,(.+)$", re.DOTALL)


class InvalidImage(Exception):
    """Raised when an image is empty, corrupt or has an unusable shape."""
    pass


def validate_image(image: np.ndarray) -> np.ndarray:
    """
    Check that an array can be treated as an 8-bit image.

    Accepts greyscale (H, W), single-channel (H, W, 1), BGR (H, W, 3)
    and BGRA (H, W, 4) arrays.

    Args:
        image: Candidate pixel array

    Returns:
        The same array, unchanged

    Raises:
        InvalidImage: If the array is empty or has an unsupported layout
    """
    if not isinstance(image, np.ndarray):
        raise InvalidImage(f"Expected numpy array, got {type(image).__name__}")
    if image.size == 0:
        raise InvalidImage("Image is empty")
    if image.ndim == 3:
        if image.shape[2] not in (1, 3, 4):
            raise InvalidImage(f"Unsupported channel count: {image.shape[2]}")
    elif image.ndim != 2:
        raise InvalidImage(f"Invalid image shape: {image.shape}")
    if image.dtype != np.uint8:
        raise InvalidImage(f"Invalid dtype: {image.dtype}")
    return image


def to_bgr(image: np.ndarray) -> np.ndarray:
    """Convert a validated greyscale or BGRA image to 3-channel BGR."""
    validate_image(image)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert a validated image to a single-channel (H, W) array."""
    validate_image(image)
    if image.ndim == 2:
        return image
    if image.shape[2] == 1:
        return image[:, :, 0]
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def decode_image_bytes(data: bytes) -> np.ndarray:
    """
    Decode an encoded still image (JPEG, PNG, ...) to a BGR array.

    Args:
        data: Encoded image bytes

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        InvalidImage: If the bytes are empty or cannot be decoded
    """
    if not data:
        raise InvalidImage("Image payload is empty")

    nparr = np.frombuffer(data, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise InvalidImage("Failed to decode image: cv2.imdecode returned None")

    return validate_image(bgr)


def split_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Split a base64 data URL into its MIME type and raw bytes.

    Args:
        data_url: String of the form ``data:<mime>;base64,<payload>``

    Returns:
        Tuple of (mime_type, raw bytes)

    Raises:
        InvalidImage: If the URL is malformed or not valid base64
    """
    match = _DATA_URL_PATTERN.match(data_url or "")
    if not match:
        raise InvalidImage("Invalid data URL format")

    mime_type, payload = match.groups()
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImage(f"Base64 decode failed: {e}")


def decode_data_url(data_url: str) -> np.ndarray:
    """Decode a base64 image data URL to a BGR array."""
    _, data = split_data_url(data_url)
    return decode_image_bytes(data)


def encode_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    """
    Encode an image as JPEG.

    Args:
        image: Greyscale or BGR image
        quality: JPEG quality 1-100

    Returns:
        JPEG bytes

    Raises:
        InvalidImage: If OpenCV cannot encode the image
    """
    validate_image(image)
    ok, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise InvalidImage(f"Failed to encode image of shape {image.shape} as JPEG")
    return buffer.tobytes()


def encode_data_url(image: np.ndarray, quality: int = 90) -> str:
    """Encode an image as a ``data:image/jpeg;base64,...`` URL."""
    payload = base64.b64encode(encode_jpeg(image, quality)).decode("ascii")
    return f"data:image/jpeg;base64,{payload}"
