"""
Tile placement engine.

Produces an ordered list of TileInstance for a pattern footprint inside a
boundary. Every strategy funnels candidate centres through one validity
test (``check_position``); rejected candidates are dropped, except for
the random scatter which keeps sampling until its attempt budget runs out.

Partially excluded tiles are kept on purpose: the boolean stage trims them
exactly, so a tile is only rejected when all of its sample points sit in
an exclusion zone.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from gripplate.contracts import (
    Bounds2D,
    Direction,
    Distribution,
    OrientationPolicy,
    TileInstance,
)
from gripplate.shapes import Shape

logger = logging.getLogger(__name__)

MIN_TILE_SIZE = 0.1

# Strategy constants
HEX_ROW_FACTOR = 0.866
WAVE_AMPLITUDE = 0.35
WAVE_FREQUENCY = 0.6  # rad per row/column index
ZIGZAG_AMPLITUDE = 0.3
ZIGZAG_PERIOD = 8
WARP_AMPLITUDE = 0.4
WARP_FREQUENCY = 0.6
SCATTER_SPACING_FACTOR = 0.8
SCATTER_ATTEMPTS_PER_TILE = 50


def sample_points(x: float, y: float, tile_width: float, tile_height: float) -> List[Tuple[float, float]]:
    """Centre plus the four corners of the axis-aligned footprint."""
    hw, hh = tile_width / 2.0, tile_height / 2.0
    return [
        (x, y),
        (x - hw, y - hh),
        (x + hw, y - hh),
        (x + hw, y + hh),
        (x - hw, y + hh),
    ]


class PositionChecker:
    """Validity test shared by every distribution strategy."""

    def __init__(
        self,
        bounds: Bounds2D,
        tile_width: float,
        tile_height: float,
        boundary_shapes: Optional[Sequence[Shape]] = None,
        margin: float = 0.0,
        allow_partial: bool = False,
        exclusion_shapes: Sequence[Shape] = (),
        inclusion_shapes: Sequence[Shape] = (),
    ):
        self.bounds = bounds
        self.tile_width = tile_width
        self.tile_height = tile_height
        self.boundary_shapes = list(boundary_shapes or [])
        self.margin = margin
        self.allow_partial = allow_partial
        self.exclusion_shapes = list(exclusion_shapes)
        self.inclusion_shapes = list(inclusion_shapes)
        self._inner = bounds.shrunk(margin)

    def _excluded(self, points: List[Tuple[float, float]]) -> bool:
        if not self.exclusion_shapes:
            return False
        for p in points:
            if not any(s.point_in_shape(p) for s in self.exclusion_shapes):
                return False
        return not any(
            s.point_in_shape(p) for p in points for s in self.inclusion_shapes
        )

    def _point_valid(self, p: Tuple[float, float]) -> bool:
        if not self.boundary_shapes:
            return self._inner.contains(p[0], p[1])
        for shape in self.boundary_shapes:
            if not shape.point_in_shape(p):
                continue
            if self.margin <= 0 or shape.distance_to_boundary(p) >= self.margin:
                return True
        return False

    def __call__(self, x: float, y: float) -> bool:
        points = sample_points(x, y, self.tile_width, self.tile_height)
        if self._excluded(points):
            return False
        if self.allow_partial:
            return any(self._point_valid(p) for p in points)
        return all(self._point_valid(p) for p in points)


def check_position(
    center: Tuple[float, float],
    bounds: Bounds2D,
    tile_width: float,
    tile_height: float,
    boundary_shapes: Optional[Sequence[Shape]] = None,
    margin: float = 0.0,
    allow_partial: bool = False,
    exclusion_shapes: Sequence[Shape] = (),
    inclusion_shapes: Sequence[Shape] = (),
) -> bool:
    """One-shot form of :class:`PositionChecker`."""
    checker = PositionChecker(
        bounds, tile_width, tile_height, boundary_shapes, margin,
        allow_partial, exclusion_shapes, inclusion_shapes,
    )
    return checker(center[0], center[1])


# ---------------------------------------------------------------------------
# Orientation
# ---------------------------------------------------------------------------

def _orientation(
    policy: OrientationPolicy,
    position: Tuple[float, float],
    parity: int,
    center: Tuple[float, float],
    rng: np.random.Generator,
) -> float:
    if policy == OrientationPolicy.ALTERNATE:
        return (math.pi / 2.0) if parity % 2 else 0.0
    if policy == OrientationPolicy.RANDOM:
        return float(rng.uniform(0.0, 2.0 * math.pi))
    if policy == OrientationPolicy.ALIGNED:
        return math.atan2(position[1] - center[1], position[0] - center[0]) + math.pi / 2.0
    return 0.0


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

# (x, y, parity, orientation centre)
_Candidate = Tuple[float, float, int, Tuple[float, float]]


def _lattice(bounds: Bounds2D, step_x: float, step_y: float) -> Iterator[Tuple[int, int, float, float]]:
    cols = int(math.ceil(bounds.width / step_x)) + 2
    rows = int(math.ceil(bounds.height / step_y)) + 2
    cx, cy = bounds.center
    for r in range(rows):
        for c in range(cols):
            yield c, r, cx + (c - (cols - 1) / 2.0) * step_x, cy + (r - (rows - 1) / 2.0) * step_y


def _triangle_wave(index: int, period: int) -> float:
    phase = (index % period) / float(period)
    return 4.0 * abs(phase - 0.5) - 1.0


def _lattice_candidates(
    distribution: Distribution,
    bounds: Bounds2D,
    w: float,
    h: float,
    spacing: float,
    direction: Direction,
) -> Iterator[_Candidate]:
    step_x = w + spacing
    step_y = h + spacing
    center = bounds.center
    horizontal = direction != Direction.VERTICAL

    for c, r, x, y in _lattice(bounds, step_x, step_y):
        if distribution == Distribution.OFFSET:
            if horizontal and r % 2:
                x += step_x / 2.0
            elif not horizontal and c % 2:
                y += step_y / 2.0
        elif distribution == Distribution.WAVE:
            if horizontal:
                y += WAVE_AMPLITUDE * h * math.sin(WAVE_FREQUENCY * c)
            else:
                x += WAVE_AMPLITUDE * w * math.sin(WAVE_FREQUENCY * r)
        elif distribution == Distribution.ZIGZAG:
            if horizontal:
                y += ZIGZAG_AMPLITUDE * h * _triangle_wave(c, ZIGZAG_PERIOD)
            else:
                x += ZIGZAG_AMPLITUDE * w * _triangle_wave(r, ZIGZAG_PERIOD)
        elif distribution == Distribution.WARPED_GRID:
            x += WARP_AMPLITUDE * w * math.sin(WARP_FREQUENCY * r)
            y += WARP_AMPLITUDE * h * math.cos(WARP_FREQUENCY * c)
        yield x, y, c + r, center


def _hex_candidates(bounds: Bounds2D, w: float, h: float, spacing: float) -> Iterator[_Candidate]:
    size = max(w, h)
    ring = size + spacing
    step_x = 2.0 * ring + size + 2.0 * spacing
    step_y = HEX_ROW_FACTOR * step_x
    index = 0
    for _c, r, ccx, ccy in _lattice(bounds, step_x, step_y):
        if r % 2:
            ccx += step_x / 2.0
        for i in range(6):
            angle = math.radians(i * 60.0 + 30.0)
            yield ccx + ring * math.cos(angle), ccy + ring * math.sin(angle), index, (ccx, ccy)
            index += 1


def _radial_candidates(bounds: Bounds2D, w: float, h: float, spacing: float) -> Iterator[_Candidate]:
    center = bounds.center
    ring_step = max(w, h) + spacing
    yield center[0], center[1], 0, center

    max_radius = math.hypot(bounds.width, bounds.height) / 2.0 + ring_step
    index = 1
    k = 1
    while k * ring_step <= max_radius:
        radius = k * ring_step
        count = int(math.floor(2.0 * math.pi * radius / ring_step))
        if count > 0:
            angle_step = 2.0 * math.pi / count
            start = angle_step / 2.0 if k % 2 else 0.0
            for i in range(count):
                angle = start + i * angle_step
                yield (
                    center[0] + radius * math.cos(angle),
                    center[1] + radius * math.sin(angle),
                    index,
                    center,
                )
                index += 1
        k += 1


def _scatter(
    bounds: Bounds2D,
    w: float,
    h: float,
    spacing: float,
    check: PositionChecker,
    orientation: OrientationPolicy,
    rng: np.random.Generator,
) -> List[TileInstance]:
    """Rejection sampling; returns whatever fits, possibly nothing."""
    estimated_max = int(bounds.width * bounds.height / (w * h) * 2)
    budget = SCATTER_ATTEMPTS_PER_TILE * estimated_max
    min_dist = (w + h) / 2.0 + SCATTER_SPACING_FACTOR * spacing
    cell = max(min_dist, 1e-9)
    grid: Dict[Tuple[int, int], List[Tuple[float, float]]] = {}
    center = bounds.center
    tiles: List[TileInstance] = []

    attempts = 0
    while attempts < budget and len(tiles) < estimated_max:
        attempts += 1
        x = float(rng.uniform(bounds.min_x, bounds.max_x))
        y = float(rng.uniform(bounds.min_y, bounds.max_y))
        gx, gy = int(math.floor(x / cell)), int(math.floor(y / cell))
        crowded = False
        for nx in (gx - 1, gx, gx + 1):
            for ny in (gy - 1, gy, gy + 1):
                for px, py in grid.get((nx, ny), ()):
                    if math.hypot(px - x, py - y) <= min_dist:
                        crowded = True
                        break
                if crowded:
                    break
            if crowded:
                break
        if crowded or not check(x, y):
            continue
        grid.setdefault((gx, gy), []).append((x, y))
        rotation = _orientation(orientation, (x, y), len(tiles), center, rng)
        tiles.append(TileInstance(position=(x, y), rotation=rotation, scale=1.0))

    logger.debug(
        "Scatter placed %d/%d tiles in %d/%d attempts",
        len(tiles), estimated_max, attempts, budget,
    )
    return tiles


def generate_tile_positions(
    bounds: Bounds2D,
    tile_width: float,
    tile_height: float,
    spacing: float = 0.0,
    boundary_shapes: Optional[Sequence[Shape]] = None,
    margin: float = 0.0,
    allow_partial: bool = False,
    distribution: Distribution = Distribution.GRID,
    orientation: OrientationPolicy = OrientationPolicy.NONE,
    direction: Direction = Direction.HORIZONTAL,
    exclusion_shapes: Sequence[Shape] = (),
    inclusion_shapes: Sequence[Shape] = (),
    seed: Optional[int] = None,
) -> List[TileInstance]:
    """Place pattern tiles inside *bounds* / *boundary_shapes*.

    Args:
        bounds: box to cover; also the fallback boundary when no shapes.
        tile_width, tile_height: scaled footprint of one pattern unit.
        spacing: gap between neighbouring footprints.
        boundary_shapes: outline shapes tiles must fall inside.
        margin: minimum distance from the boundary edge.
        allow_partial: keep tiles with at least one valid sample point.
        exclusion_shapes / inclusion_shapes: grip zones.
        seed: seed for the random scatter / random orientation.

    Returns:
        Ordered list of TileInstance (empty when the footprint is too small).
    """
    distribution = Distribution(distribution)
    orientation = OrientationPolicy(orientation)
    direction = Direction(direction)

    if tile_width < MIN_TILE_SIZE or tile_height < MIN_TILE_SIZE or bounds.is_empty:
        return []

    check = PositionChecker(
        bounds, tile_width, tile_height, boundary_shapes, margin,
        allow_partial, exclusion_shapes, inclusion_shapes,
    )
    rng = np.random.default_rng(seed)

    if distribution == Distribution.RANDOM:
        return _scatter(bounds, tile_width, tile_height, spacing, check, orientation, rng)

    if distribution == Distribution.HEX:
        candidates = _hex_candidates(bounds, tile_width, tile_height, spacing)
    elif distribution == Distribution.RADIAL:
        candidates = _radial_candidates(bounds, tile_width, tile_height, spacing)
    else:
        candidates = _lattice_candidates(
            distribution, bounds, tile_width, tile_height, spacing, direction,
        )

    tiles: List[TileInstance] = []
    rejected = 0
    for x, y, parity, center in candidates:
        if not check(x, y):
            rejected += 1
            continue
        rotation = _orientation(orientation, (x, y), parity, center, rng)
        tiles.append(TileInstance(position=(x, y), rotation=rotation, scale=1.0))

    logger.debug(
        "%s placement: %d tiles kept, %d rejected",
        distribution.value, len(tiles), rejected,
    )
    return tiles


def snap_rotations(tiles: Sequence[TileInstance], clamp_deg: Optional[float]) -> None:
    """Snap every tile rotation to a multiple of ``clamp_deg`` in place."""
    if not clamp_deg or clamp_deg <= 0:
        return
    step = math.radians(clamp_deg)
    for tile in tiles:
        tile.rotation = round(tile.rotation / step) * step
