"""
Batching Module
===============

Composite grid images built from fixed-size batches of accepted frames.
"""

from carbonlens.batching.grid import GridBatcher, LabelGeometry, label_geometry, label_text


__all__ = [
    "GridBatcher",
    "LabelGeometry",
    "label_geometry",
    "label_text",
]
