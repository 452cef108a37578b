"""Crop-surface geometry.

The crop rectangle is kept in normalized coordinates (0..1) relative to the
displayed image (after EXIF orientation and user rotation). Python is
authoritative for clamping, aspect enforcement, zoom limits and min size; the
UI only proposes changes.
"""

from __future__ import annotations

from dataclasses import dataclass

from photo_uploader.crop.crop import rasterize_crop
from photo_uploader.logger import get_logger

_logger = get_logger("crop_controller")

# Smallest crop box edge, in source pixels.
MIN_BOX_PX = 100


@dataclass(frozen=True, slots=True)
class RectN:
    """Normalized rect (0..1) in (x, y, w, h) form."""

    x: float
    y: float
    w: float
    h: float

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.w / 2.0, self.y + self.h / 2.0

    def normalized(self) -> RectN:
        x, y, w, h = float(self.x), float(self.y), float(self.w), float(self.h)
        if w < 0:
            x, w = x + w, -w
        if h < 0:
            y, h = y + h, -h
        return RectN(x, y, w, h)


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


# anchor -> (left, right, top, bottom) edges held still while dragging
_FIXED_EDGES: dict[str, tuple[bool, bool, bool, bool]] = {
    "tl": (False, True, False, True),
    "tr": (True, False, False, True),
    "bl": (False, True, True, False),
    "br": (True, False, True, False),
    "l": (False, True, False, False),
    "r": (True, False, False, False),
    "t": (False, False, False, True),
    "b": (False, False, True, False),
}
_MOVE_ANCHORS = frozenset({"move", "center", "c", ""})


def largest_rect(norm_ratio: float) -> tuple[float, float]:
    """Largest normalized (w, h) with w / h == norm_ratio inside the unit square."""
    if norm_ratio <= 0:
        return 1.0, 1.0
    if norm_ratio >= 1.0:
        return 1.0, 1.0 / norm_ratio
    return norm_ratio, 1.0


def centered_rect(w: float, h: float, center: tuple[float, float] = (0.5, 0.5)) -> RectN:
    cx, cy = center
    x = _clamp(cx - w / 2.0, 0.0, max(0.0, 1.0 - w))
    y = _clamp(cy - h / 2.0, 0.0, max(0.0, 1.0 - h))
    return RectN(x, y, w, h)


def clamp_rect_n(
    *,
    current: RectN,
    proposed: RectN,
    anchor: str,
    aspect_ratio: float,
    min_size: tuple[float, float],
) -> RectN:
    """Clamp a proposed normalized crop rect.

    `aspect_ratio` is normalized width / height (0 means free). Handle drags
    (tl, tr, bl, br, l, r, t, b) keep the opposite edges still; a move keeps
    the current size and only shifts the rect back inside the image.
    """
    min_w, min_h = float(min_size[0]), float(min_size[1])
    cur = current.normalized()
    prop = proposed.normalized()
    a = (anchor or "").lower()

    if a in _MOVE_ANCHORS:
        return centered_rect(cur.w, cur.h, prop.center)

    keep_l, keep_r, keep_t, keep_b = _FIXED_EDGES.get(a, ("r" in a, "l" in a, "b" in a, "t" in a))

    w = _clamp(prop.w, min_w, 1.0)
    h = _clamp(prop.h, min_h, 1.0)
    if aspect_ratio > 0:
        # Follow whichever dimension the user changed more.
        if abs(w - cur.w) >= abs(h - cur.h):
            h = w / aspect_ratio
        else:
            w = h * aspect_ratio
        max_w, max_h = largest_rect(aspect_ratio)
        if w > max_w or h > max_h:
            w, h = max_w, max_h
        if w < min_w or h < min_h:
            grow = max(min_w / w if w else 1.0, min_h / h if h else 1.0)
            w, h = min(max_w, w * grow), min(max_h, h * grow)

    if keep_l and not keep_r:
        x = cur.x
    elif keep_r and not keep_l:
        x = cur.x2 - w
    else:
        x = prop.x
    if keep_t and not keep_b:
        y = cur.y
    elif keep_b and not keep_t:
        y = cur.y2 - h
    else:
        y = prop.y

    x = _clamp(x, 0.0, max(0.0, 1.0 - w))
    y = _clamp(y, 0.0, max(0.0, 1.0 - h))
    return RectN(x, y, w, h)


def to_pixels(rect: RectN, img_w: int, img_h: int) -> tuple[int, int, int, int]:
    """Convert a normalized rect to an in-bounds (left, top, width, height)."""
    left = round(rect.x * img_w)
    top = round(rect.y * img_h)
    width = round(rect.w * img_w)
    height = round(rect.h * img_h)

    left = max(0, min(left, img_w - 1))
    top = max(0, min(top, img_h - 1))
    width = max(1, min(width, img_w - left))
    height = max(1, min(height, img_h - top))
    return left, top, width, height


class CropSurface:
    """A mounted crop engine bound to one photo.

    Zoom 1.0 shows the initial box (`auto_crop_area` of the largest box of the
    target ratio); zooming in shrinks the box around its center, zooming out
    grows it up to the largest box that fits.
    """

    def __init__(
        self,
        source: bytes,
        width: int,
        height: int,
        *,
        aspect_ratio: float = 1.0,
        auto_crop_area: float = 0.9,
        min_zoom: float = 0.5,
        max_zoom: float = 3.0,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid image size {width}x{height}")
        self._source: bytes | None = source
        self._base_w = int(width)
        self._base_h = int(height)
        self._target_ratio = float(aspect_ratio)
        self._area = float(auto_crop_area)
        self._min_zoom = float(min_zoom)
        self._max_zoom = float(max_zoom)
        self._rotation = 0
        self._zoom = 1.0
        self._rect = self._initial_rect()

    # ---- geometry ----
    @property
    def image_size(self) -> tuple[int, int]:
        if self._rotation in (90, 270):
            return self._base_h, self._base_w
        return self._base_w, self._base_h

    @property
    def norm_ratio(self) -> float:
        w, h = self.image_size
        return self._target_ratio * h / w

    @property
    def min_size(self) -> tuple[float, float]:
        w, h = self.image_size
        return min(1.0, MIN_BOX_PX / w), min(1.0, MIN_BOX_PX / h)

    @property
    def rect(self) -> RectN:
        return self._rect

    @property
    def zoom(self) -> float:
        return self._zoom

    @property
    def rotation(self) -> int:
        return self._rotation

    @property
    def destroyed(self) -> bool:
        return self._source is None

    def _initial_rect(self) -> RectN:
        max_w, max_h = largest_rect(self.norm_ratio)
        return centered_rect(max_w * self._area, max_h * self._area)

    def _check_alive(self) -> bytes:
        if self._source is None:
            raise RuntimeError("crop surface already destroyed")
        return self._source

    # ---- user interaction ----
    def set_rect(self, proposed: RectN, anchor: str = "center") -> RectN:
        self._check_alive()
        self._rect = clamp_rect_n(
            current=self._rect,
            proposed=proposed,
            anchor=anchor,
            aspect_ratio=self.norm_ratio,
            min_size=self.min_size,
        )
        return self._rect

    def move(self, dx: float, dy: float) -> RectN:
        r = self._rect
        return self.set_rect(RectN(r.x + dx, r.y + dy, r.w, r.h), "move")

    def zoom_to(self, zoom: float) -> RectN:
        self._check_alive()
        z = _clamp(float(zoom), self._min_zoom, self._max_zoom)
        max_w, max_h = largest_rect(self.norm_ratio)
        min_w, min_h = self.min_size
        floor = max(min_w / max_w, min_h / max_h)
        scale = min(1.0, max(self._area / z, floor))
        self._zoom = z
        self._rect = centered_rect(max_w * scale, max_h * scale, self._rect.center)
        return self._rect

    def zoom_by(self, factor: float) -> RectN:
        return self.zoom_to(self._zoom * float(factor))

    def rotate(self, degrees: int) -> RectN:
        self._check_alive()
        if int(degrees) % 90:
            raise ValueError("rotation must be a multiple of 90 degrees")
        self._rotation = (self._rotation + int(degrees)) % 360
        # The box is recomputed for the new orientation.
        self._zoom = 1.0
        self._rect = self._initial_rect()
        return self._rect

    def reset(self) -> RectN:
        """Back to the unrotated image with the initial box."""
        self._check_alive()
        self._rotation = 0
        self._zoom = 1.0
        self._rect = self._initial_rect()
        return self._rect

    # ---- output ----
    def crop_box(self) -> tuple[int, int, int, int]:
        w, h = self.image_size
        return to_pixels(self._rect, w, h)

    def rasterize(self, max_size: tuple[int, int], quality: int) -> bytes:
        """Encode the current crop box.

        Raises:
            RasterizationFailure: see `rasterize_crop`.
        """
        source = self._check_alive()
        return rasterize_crop(
            source,
            self.crop_box(),
            max_size=max_size,
            quality=quality,
            rotation=self._rotation,
        )

    def destroy(self) -> None:
        if self._source is not None:
            _logger.debug("crop surface destroyed (%dx%d)", self._base_w, self._base_h)
        self._source = None
