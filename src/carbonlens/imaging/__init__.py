"""
Imaging Module
==============

Still-image decoding and encoding for frames and composed grids.
"""

from carbonlens.imaging.codec import (
    InvalidImage,
    decode_data_url,
    decode_image_bytes,
    encode_data_url,
    encode_jpeg,
    split_data_url,
    to_bgr,
    to_grayscale,
    validate_image,
)


__all__ = [
    "InvalidImage",
    "decode_data_url",
    "decode_image_bytes",
    "encode_data_url",
    "encode_jpeg",
    "split_data_url",
    "to_bgr",
    "to_grayscale",
    "validate_image",
]
