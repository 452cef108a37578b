"""Crop package public API.

Pure-backend crop helpers. Keep this module lightweight: no Qt imports.
"""

from .crop import bounded_scale, rasterize_crop, validate_crop_bounds

__all__ = [
    "bounded_scale",
    "rasterize_crop",
    "validate_crop_bounds",
]
