"""Polygon offsetting (erosion / dilation) and union of overlapping shapes.

Built on Shapely. Offsetting a concave shape can make lobes collide; the
buffer result is always re-exploded into disjoint, valid shapes so it is
safe to extrude and use as a boolean cutter.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from shapely.ops import unary_union

from gripplate.shapes import Shape, shapes_from_geometry

logger = logging.getLogger(__name__)

_MITRE_LIMIT = 2.0
_MIN_AREA = 1e-6


def _clean(shapes: List[Shape]) -> List[Shape]:
    return [s for s in shapes if abs(s.signed_area) > _MIN_AREA]


def offset_shape(shape: Shape, delta: float) -> List[Shape]:
    """Grow (``delta > 0``) or shrink (``delta < 0``) *shape* by ``|delta|``.

    Returns zero or more shapes; eroding past the shape's inradius yields an
    empty list.
    """
    if delta == 0:
        return [shape]
    poly = shape.to_polygon()
    if poly.is_empty:
        return []
    result = poly.buffer(delta, join_style="mitre", mitre_limit=_MITRE_LIMIT)
    if not result.is_valid:
        result = result.buffer(0)
    return _clean(shapes_from_geometry(result))


def union_shapes(shapes: Sequence[Shape]) -> List[Shape]:
    """Merge overlapping shapes into non-overlapping ones."""
    polys = [s.to_polygon() for s in shapes]
    polys = [p for p in polys if not p.is_empty]
    if not polys:
        return []
    return _clean(shapes_from_geometry(unary_union(polys)))


def offset_shapes(shapes: Sequence[Shape], delta: float) -> List[Shape]:
    """Union, offset every piece, and union again.

    Growing neighbours can make them overlap, so the second union keeps
    the output free of self-overlapping cutters.
    """
    merged = union_shapes(shapes)
    if delta == 0:
        return merged
    grown: List[Shape] = []
    for shape in merged:
        grown.extend(offset_shape(shape, delta))
    if len(grown) > 1:
        grown = union_shapes(grown)
    logger.debug(
        "Offset %d shape(s) by %.3f -> %d shape(s)", len(shapes), delta, len(grown)
    )
    return grown
