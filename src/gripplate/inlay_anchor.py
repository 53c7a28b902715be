"""
Inlay placement resolver.

Computes the world offset that puts an inlay's transformed bounding box on
a named anchor of the outline's bounding box. The composition pipeline and
the drag handles both go through :func:`resolve_inlay_offset`, so what is
dragged on screen is exactly what gets exported.
"""

from __future__ import annotations

import math
from typing import List, Optional, Tuple

import numpy as np

from gripplate.contracts import Anchor, Bounds2D, InlayLayer, InlaySettings
from gripplate.shapes import Shape, shapes_bounds

BoxXY = Tuple[float, float, float, float]

_LEFT = {Anchor.LEFT, Anchor.TOP_LEFT, Anchor.BOTTOM_LEFT}
_RIGHT = {Anchor.RIGHT, Anchor.TOP_RIGHT, Anchor.BOTTOM_RIGHT}
_TOP = {Anchor.TOP, Anchor.TOP_LEFT, Anchor.TOP_RIGHT}
_BOTTOM = {Anchor.BOTTOM, Anchor.BOTTOM_LEFT, Anchor.BOTTOM_RIGHT}


def inlay_affine(settings: InlaySettings, offset: Tuple[float, float] = (0.0, 0.0)) -> np.ndarray:
    """3x3 transform: mirror (x), uniform scale, rotate, then translate."""
    rad = math.radians(settings.rotation)
    c, s = math.cos(rad), math.sin(rad)
    sx = -settings.scale if settings.mirror else settings.scale
    sy = settings.scale
    return np.array([
        [c * sx, -s * sy, offset[0]],
        [s * sx, c * sy, offset[1]],
        [0.0, 0.0, 1.0],
    ])


def transformed_bounds(inlay_bounds: BoxXY, settings: InlaySettings) -> BoxXY:
    """AABB of the inlay bounding box after mirror/scale/rotation."""
    min_x, min_y, max_x, max_y = inlay_bounds
    corners = np.array([
        [min_x, min_y, 1.0],
        [max_x, min_y, 1.0],
        [max_x, max_y, 1.0],
        [min_x, max_y, 1.0],
    ])
    moved = corners @ inlay_affine(settings).T
    return (
        float(moved[:, 0].min()),
        float(moved[:, 1].min()),
        float(moved[:, 0].max()),
        float(moved[:, 1].max()),
    )


def resolve_inlay_offset(
    inlay_bounds: Optional[BoxXY],
    outline_bounds: Bounds2D,
    settings: InlaySettings,
) -> Tuple[float, float]:
    """World ``(dx, dy)`` for the inlay's anchor.

    ``manual`` returns the stored position untouched; every other anchor
    aligns the transformed inlay box inside the outline box, touching the
    named edge(s) or centred on the free axis.
    """
    anchor = Anchor(settings.anchor)
    if anchor == Anchor.MANUAL:
        return (float(settings.manual_x), float(settings.manual_y))
    if inlay_bounds is None:
        return (0.0, 0.0)

    t_min_x, t_min_y, t_max_x, t_max_y = transformed_bounds(inlay_bounds, settings)
    o_cx, o_cy = outline_bounds.center

    if anchor in _LEFT:
        dx = outline_bounds.min_x - t_min_x
    elif anchor in _RIGHT:
        dx = outline_bounds.max_x - t_max_x
    else:
        dx = o_cx - (t_min_x + t_max_x) / 2.0

    if anchor in _TOP:
        dy = outline_bounds.max_y - t_max_y
    elif anchor in _BOTTOM:
        dy = outline_bounds.min_y - t_min_y
    else:
        dy = o_cy - (t_min_y + t_max_y) / 2.0

    return (float(dx), float(dy))


def resolve_layer_offset(layer: InlayLayer, outline_bounds: Bounds2D) -> Tuple[float, float]:
    """Offset for an inlay layer, from its raw shape bounds."""
    return resolve_inlay_offset(shapes_bounds(layer.shapes), outline_bounds, layer.settings)


def place_layer_shapes(layer: InlayLayer, outline_bounds: Bounds2D) -> List[Shape]:
    """The layer's shapes in world coordinates (anchor offset applied)."""
    offset = resolve_layer_offset(layer, outline_bounds)
    matrix = inlay_affine(layer.settings, offset)
    return [s.transform(matrix) for s in layer.shapes if not s.is_degenerate()]
