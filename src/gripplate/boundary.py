"""Boundary context: the transform-applied outline for one computation cycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from gripplate.contracts import Bounds2D
from gripplate.shapes import Shape, shapes_bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundaryContext:
    """Resolved outline used for placement and clipping.

    ``outline`` keeps the holes (it is what the base plate extrudes),
    ``filled`` holds only the outer rings, and ``holes`` holds every outline
    hole as a standalone counter-clockwise shape so it can be extruded into
    a cutter.
    """

    outline: Tuple[Shape, ...]
    filled: Tuple[Shape, ...]
    holes: Tuple[Shape, ...]
    bounds: Bounds2D
    is_default: bool = False

    @property
    def has_holes(self) -> bool:
        return len(self.holes) > 0


@lru_cache(maxsize=16)
def build_boundary_context(
    outline_shapes: Tuple[Shape, ...],
    size: float = 300.0,
    mirror: bool = False,
    rotation_deg: float = 0.0,
) -> BoundaryContext:
    """Apply mirror/rotation to the outline and split it into filled + holes.

    Without usable outline shapes a centred square of ``size`` is
    substituted so there is always something to clip against.
    """
    outline = []
    filled = []
    holes = []
    for shape in outline_shapes:
        if shape.is_degenerate():
            logger.warning("Skipping degenerate outline shape (%d points)", len(shape.points))
            continue
        moved = shape.transformed(mirror=mirror, rotation_deg=rotation_deg)
        outline.append(moved)
        filled.append(Shape(moved.points))
        for ring in moved.holes:
            hole = Shape(ring).enforce_winding()
            if not hole.is_degenerate():
                holes.append(hole)

    if not filled:
        square = Shape.square(size)
        return BoundaryContext(
            outline=(square,),
            filled=(square,),
            holes=(),
            bounds=Bounds2D.centered_square(size),
            is_default=True,
        )

    min_x, min_y, max_x, max_y = shapes_bounds(filled)
    return BoundaryContext(
        outline=tuple(outline),
        filled=tuple(filled),
        holes=tuple(holes),
        bounds=Bounds2D(min_x, min_y, max_x, max_y),
    )
