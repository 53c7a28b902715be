"""Tests for inlay anchor resolution."""
from dataclasses import replace

import pytest

from gripplate.contracts import Anchor, Bounds2D, InlayLayer, InlaySettings
from gripplate.inlay_anchor import (
    place_layer_shapes,
    resolve_inlay_offset,
    resolve_layer_offset,
    transformed_bounds,
)
from gripplate.shapes import Shape, shapes_bounds

OUTLINE = Bounds2D.centered_square(300.0)
RAW = (0.0, 0.0, 40.0, 20.0)


class TestResolveInlayOffset:
    def test_center(self):
        dx, dy = resolve_inlay_offset(RAW, OUTLINE, InlaySettings())
        assert (dx, dy) == pytest.approx((-20.0, -10.0))

    @pytest.mark.parametrize("anchor,expected", [
        (Anchor.TOP, (-20.0, 130.0)),
        (Anchor.BOTTOM, (-20.0, -150.0)),
        (Anchor.LEFT, (-150.0, -10.0)),
        (Anchor.RIGHT, (110.0, -10.0)),
        (Anchor.TOP_LEFT, (-150.0, 130.0)),
        (Anchor.BOTTOM_RIGHT, (110.0, -150.0)),
    ])
    def test_edges(self, anchor, expected):
        offset = resolve_inlay_offset(RAW, OUTLINE, InlaySettings(anchor=anchor))
        assert offset == pytest.approx(expected)

    def test_manual_is_returned_unchanged(self):
        settings = InlaySettings(anchor=Anchor.MANUAL, manual_x=12.5, manual_y=-3.0, scale=4.0)
        assert resolve_inlay_offset(RAW, OUTLINE, settings) == (12.5, -3.0)

    def test_no_bounds(self):
        assert resolve_inlay_offset(None, OUTLINE, InlaySettings(anchor=Anchor.TOP)) == (0.0, 0.0)

    def test_mirror_uses_reflected_box(self):
        settings = InlaySettings(anchor=Anchor.LEFT, mirror=True)
        assert transformed_bounds(RAW, settings) == pytest.approx((-40.0, 0.0, 0.0, 20.0))
        dx, _ = resolve_inlay_offset(RAW, OUTLINE, settings)
        assert dx == pytest.approx(-110.0)


class TestPlacedShapes:
    def test_top_right_scaled_and_rotated_touches_corner(self):
        settings = InlaySettings(anchor=Anchor.TOP_RIGHT, scale=2.0, rotation=45.0)
        layer = InlayLayer(shapes=(Shape.from_points([(0, 0), (10, 0), (10, 10), (0, 10)]),),
                           settings=settings)
        placed = place_layer_shapes(layer, OUTLINE)
        _, _, max_x, max_y = shapes_bounds(placed)
        assert max_x == pytest.approx(150.0)
        assert max_y == pytest.approx(150.0)
        assert placed[0].signed_area == pytest.approx(400.0)

    def test_layer_offset_matches_placed_shapes(self, square_inlay):
        layer = replace(square_inlay, settings=InlaySettings(anchor=Anchor.BOTTOM_LEFT))
        dx, dy = resolve_layer_offset(layer, OUTLINE)
        placed = place_layer_shapes(layer, OUTLINE)
        min_x, min_y, _, _ = shapes_bounds(placed)
        assert (min_x, min_y) == pytest.approx((-150.0, -150.0))
        assert (dx, dy) == pytest.approx((-150.0, -150.0))

    def test_degenerate_shapes_dropped(self):
        layer = InlayLayer(shapes=(Shape.square(10.0), Shape.from_points([(0, 0), (1, 1)])))
        assert len(place_layer_shapes(layer, OUTLINE)) == 1
