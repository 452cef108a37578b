from __future__ import annotations

import pytest

from photo_uploader.ops.crop_controller import CropSurface, RectN, clamp_rect_n, largest_rect, to_pixels


def test_move_clamps_to_bounds() -> None:
    cur = RectN(0.25, 0.25, 0.5, 0.5)
    prop = RectN(0.9, 0.9, 0.5, 0.5)

    out = clamp_rect_n(current=cur, proposed=prop, anchor="move", aspect_ratio=0.0, min_size=(0.01, 0.01))

    assert out == RectN(0.5, 0.5, 0.5, 0.5)


def test_handle_negative_sizes_are_normalized() -> None:
    cur = RectN(0.2, 0.2, 0.4, 0.4)
    prop = RectN(0.6, 0.6, -0.2, -0.1)

    out = clamp_rect_n(current=cur, proposed=prop, anchor="br", aspect_ratio=0.0, min_size=(0.01, 0.01))

    assert out.w >= 0
    assert out.h >= 0
    assert out.x2 <= 1.0 + 1e-9
    assert out.y2 <= 1.0 + 1e-9


def test_aspect_ratio_is_enforced_on_handle_drag() -> None:
    cur = RectN(0.25, 0.25, 0.5, 0.5)
    prop = RectN(0.25, 0.25, 0.7, 0.5)

    out = clamp_rect_n(current=cur, proposed=prop, anchor="r", aspect_ratio=1.0, min_size=(0.01, 0.01))

    assert out.w / out.h == pytest.approx(1.0)
    # Dragging the right handle keeps the left edge.
    assert out.x == pytest.approx(0.25)


def test_top_left_drag_keeps_bottom_right_corner() -> None:
    cur = RectN(0.4, 0.4, 0.4, 0.4)
    prop = RectN(0.3, 0.3, 0.5, 0.5)

    out = clamp_rect_n(current=cur, proposed=prop, anchor="tl", aspect_ratio=1.0, min_size=(0.01, 0.01))

    assert out.x2 == pytest.approx(0.8)
    assert out.y2 == pytest.approx(0.8)


def test_min_size_is_enforced() -> None:
    cur = RectN(0.25, 0.25, 0.5, 0.5)
    prop = RectN(0.25, 0.25, 0.01, 0.01)

    out = clamp_rect_n(current=cur, proposed=prop, anchor="br", aspect_ratio=0.0, min_size=(0.2, 0.3))

    assert out.w >= 0.2
    assert out.h >= 0.3


def test_largest_rect_respects_ratio() -> None:
    assert largest_rect(0.75) == (0.75, 1.0)
    assert largest_rect(2.0) == (1.0, 0.5)


def test_to_pixels_stays_inside_image() -> None:
    assert to_pixels(RectN(0.0, 0.0, 1.0, 1.0), 400, 300) == (0, 0, 400, 300)
    assert to_pixels(RectN(0.99, 0.99, 0.5, 0.5), 100, 100) == (99, 99, 1, 1)


def test_surface_initial_box_is_square_and_centered() -> None:
    surface = CropSurface(b"src", 400, 300, aspect_ratio=1.0, auto_crop_area=0.9)

    left, top, width, height = surface.crop_box()

    assert width == height == 270
    assert left == 65
    assert top == 15


def test_surface_zoom_is_clamped_and_keeps_ratio() -> None:
    surface = CropSurface(b"src", 1000, 500, aspect_ratio=1.0, min_zoom=0.5, max_zoom=3.0)

    surface.zoom_to(10.0)
    assert surface.zoom == 3.0
    _l, _t, w, h = surface.crop_box()
    assert w == h == 150

    surface.zoom_to(0.1)
    assert surface.zoom == 0.5
    _l, _t, w, h = surface.crop_box()
    # Zooming out stops at the largest square that fits.
    assert w == h == 500


def test_surface_move_and_reset() -> None:
    surface = CropSurface(b"src", 400, 300)
    start = surface.rect

    surface.move(1.0, 0.0)
    assert surface.rect.x2 == pytest.approx(1.0)
    assert surface.rect.w == pytest.approx(start.w)

    surface.reset()
    assert surface.rect == start
    assert surface.zoom == 1.0


def test_surface_rotation_swaps_dimensions() -> None:
    surface = CropSurface(b"src", 400, 300)

    surface.rotate(90)

    assert surface.image_size == (300, 400)
    assert surface.rotation == 90
    _l, _t, w, h = surface.crop_box()
    assert w == h
    with pytest.raises(ValueError):
        surface.rotate(45)


def test_destroyed_surface_rejects_use() -> None:
    surface = CropSurface(b"src", 400, 300)

    surface.destroy()

    assert surface.destroyed
    with pytest.raises(RuntimeError):
        surface.zoom_to(2.0)
    with pytest.raises(RuntimeError):
        surface.rasterize((1024, 1024), 90)
