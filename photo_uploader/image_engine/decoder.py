"""Header decoding using pyvips.

Only the image header is read to learn the natural pixel size; pixels are
decoded later, and only for the photo being cropped.
"""

import contextlib
from typing import Any

from photo_uploader.errors import DecodeFailure
from photo_uploader.logger import get_logger

_logger = get_logger("decoder")

# EXIF orientations that rotate the image by 90 or 270 degrees.
_TRANSPOSED_ORIENTATIONS = frozenset({5, 6, 7, 8})

_WHITE = [255, 255, 255]

_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Keep the operation cache from pinning every uploaded buffer.
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips


def load_image(data: bytes, *, access: str = "sequential") -> Any:
    """Open encoded bytes as a pyvips image, mapping loader errors to DecodeFailure."""
    pyvips = _get_pyvips_module()
    try:
        return pyvips.Image.new_from_buffer(data, "", access=access)
    except pyvips.Error as e:
        raise DecodeFailure("", f"cannot decode image: {e}") from e


def to_srgb_rgb(image: Any) -> Any:
    """Convert to 8-bit sRGB with alpha flattened onto white, ready for JPEG."""
    with contextlib.suppress(Exception):
        image = image.colourspace("srgb")
    if image.hasalpha():
        image = image.flatten(background=_WHITE)
    if image.bands > 3:
        image = image.extract_band(0, n=3)
    if image.format != "uchar":
        image = image.cast("uchar")
    return image


def orientation_of(image: Any) -> int:
    with contextlib.suppress(Exception):
        if image.get_typeof("orientation") != 0:
            return int(image.get("orientation"))
    return 1


def read_dimensions(data: bytes, filename: str = "") -> tuple[int, int]:
    """Return the displayed (width, height) of encoded image bytes.

    EXIF orientation is honored the way browsers render photos: a portrait
    shot stored sideways reports portrait dimensions.

    Raises:
        DecodeFailure: bytes are not a decodable image.
    """
    try:
        image = load_image(data)
    except DecodeFailure as e:
        _logger.debug("decode failed for %s: %s", filename, e)
        raise DecodeFailure(filename, f"{filename or 'file'} could not be read as an image") from e

    w, h = int(image.width), int(image.height)
    if w <= 0 or h <= 0:
        raise DecodeFailure(filename, f"{filename or 'file'} has no pixels")
    if orientation_of(image) in _TRANSPOSED_ORIENTATIONS:
        w, h = h, w
    return w, h
