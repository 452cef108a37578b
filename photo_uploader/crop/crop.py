"""Crop rasterization using pyvips.

Pure functions for cropping encoded images, no Qt dependencies.
"""

from photo_uploader.errors import DecodeFailure, RasterizationFailure
from photo_uploader.image_engine.decoder import _get_pyvips_module, load_image, to_srgb_rgb
from photo_uploader.image_engine.metrics import CROP_RASTER_DURATION, metrics
from photo_uploader.logger import get_logger

_logger = get_logger("crop")


def validate_crop_bounds(img_width: int, img_height: int, crop: tuple[int, int, int, int]) -> bool:
    """Validate that a (left, top, width, height) crop lies inside the image."""
    left, top, width, height = crop
    if left < 0 or top < 0:
        return False
    if width <= 0 or height <= 0:
        return False
    if left + width > img_width:
        return False
    return not top + height > img_height


def bounded_scale(width: int, height: int, max_width: int, max_height: int) -> float:
    """Downscale factor that fits (width, height) inside the bound; never upscales."""
    if width <= 0 or height <= 0:
        return 1.0
    return min(1.0, max_width / width, max_height / height)


def rasterize_crop(
    source: bytes,
    crop: tuple[int, int, int, int],
    *,
    max_size: tuple[int, int] = (1920, 1080),
    quality: int = 90,
    rotation: int = 0,
) -> bytes:
    """Cut `crop` out of the (auto-rotated) source and encode it as JPEG.

    Args:
        source: encoded original image bytes
        crop: (left, top, width, height) in displayed-image pixels, measured
            after EXIF orientation and `rotation` are applied
        max_size: output is scaled down to fit inside (width, height)
        quality: JPEG quality 1..100
        rotation: extra clockwise rotation in degrees (multiple of 90)

    Returns:
        JPEG bytes.

    Raises:
        RasterizationFailure: decode, bounds or encode failed.
    """
    pyvips = _get_pyvips_module()
    try:
        image = load_image(source, access="random")
    except DecodeFailure as e:
        raise RasterizationFailure(str(e)) from e

    try:
        with metrics.timed(CROP_RASTER_DURATION):
            image = image.autorot()
            turns = (int(rotation) // 90) % 4
            if turns:
                image = image.rot(("d0", "d90", "d180", "d270")[turns])

            if not validate_crop_bounds(image.width, image.height, crop):
                raise RasterizationFailure(
                    f"Crop bounds {crop} invalid for image size {image.width}x{image.height}"
                )

            left, top, width, height = crop
            cropped = image.crop(left, top, width, height)
            scale = bounded_scale(width, height, max_size[0], max_size[1])
            if scale < 1.0:
                cropped = cropped.resize(scale, kernel="lanczos3")
            cropped = to_srgb_rgb(cropped)
            blob = cropped.jpegsave_buffer(Q=int(quality))
    except pyvips.Error as e:
        _logger.error("crop rasterization failed for %s: %s", crop, e, exc_info=True)
        raise RasterizationFailure(f"Failed to rasterize crop: {e}") from e

    if not blob:
        raise RasterizationFailure("Encoder produced no output")
    _logger.debug("rasterized crop=%s scale=%.3f bytes=%d", crop, scale, len(blob))
    return bytes(blob)
