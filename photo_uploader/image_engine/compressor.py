"""Upload compression using pyvips.

Every accepted photo is re-encoded as a bounded JPEG before it enters the
upload list. The original bytes stay behind the source preview so crops are
always cut from full resolution.
"""

from __future__ import annotations

import os

from photo_uploader.errors import CompressionFailure
from photo_uploader.image_engine.decoder import _get_pyvips_module, to_srgb_rgb
from photo_uploader.image_engine.metrics import COMPRESS_APPLIED, COMPRESS_DURATION, COMPRESS_FALLBACKS, metrics
from photo_uploader.logger import get_logger
from photo_uploader.models import RawPhoto

_logger = get_logger("compressor")

# Quality is lowered in these steps while the output is over the size target.
_QUALITY_STEP = 10


def jpeg_name(filename: str) -> str:
    """Swap the last extension for .jpeg; names without one are kept."""
    stem, ext = os.path.splitext(filename or "")
    return f"{stem}.jpeg" if ext else filename


def compress_image(
    data: bytes,
    *,
    max_size: tuple[int, int] = (1024, 1024),
    quality: int = 80,
    max_kb: int = 200,
    min_quality: int = 30,
) -> bytes:
    """Downscale into `max_size` (never up) and encode as JPEG.

    Quality starts at `quality` and drops while the result is above `max_kb`,
    stopping at `min_quality`. `max_kb <= 0` disables the size target.

    Raises:
        CompressionFailure: the bytes could not be decoded or encoded.
    """
    pyvips = _get_pyvips_module()
    limit = int(max_kb) * 1024
    q = max(1, min(100, int(quality)))
    floor = max(1, min(q, int(min_quality)))
    try:
        with metrics.timed(COMPRESS_DURATION):
            image = pyvips.Image.thumbnail_buffer(data, int(max_size[0]), height=int(max_size[1]), size="down")
            # Several encodes may follow; decode once.
            image = to_srgb_rgb(image).copy_memory()
            blob = image.jpegsave_buffer(Q=q)
            while limit > 0 and len(blob) > limit and q > floor:
                q = max(floor, q - _QUALITY_STEP)
                blob = image.jpegsave_buffer(Q=q)
    except pyvips.Error as e:
        raise CompressionFailure(f"cannot compress image: {e}") from e

    if not blob:
        raise CompressionFailure("Encoder produced no output")
    _logger.debug("compressed %d -> %d bytes at Q=%d", len(data), len(blob), q)
    return bytes(blob)


def compress_upload(
    photo: RawPhoto,
    *,
    max_size: tuple[int, int] = (1024, 1024),
    quality: int = 80,
    max_kb: int = 200,
) -> RawPhoto:
    """Return the compressed upload entry for `photo`, or `photo` itself if compression fails."""
    try:
        blob = compress_image(photo.data, max_size=max_size, quality=quality, max_kb=max_kb)
    except CompressionFailure as e:
        _logger.warning("compression failed for %s, uploading original: %s", photo.filename, e)
        metrics.inc(COMPRESS_FALLBACKS)
        return photo
    metrics.inc(COMPRESS_APPLIED)
    return RawPhoto(data=blob, mime_type="image/jpeg", filename=jpeg_name(photo.filename))
