"""
Planar shape model for outlines, pattern footprints and inlays.

A Shape is an outer ring plus zero or more hole rings. The outer ring is
kept counter-clockwise and holes clockwise; extrusion and the boolean
stage rely on that orientation to tell inside from outside. Shapes are
immutable: every transform returns a new Shape.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.polygon import orient

Point = Tuple[float, float]
Ring = Tuple[Point, ...]

DEDUPE_EPSILON = 1e-4


def _as_ring(points: Iterable[Sequence[float]]) -> Ring:
    return tuple((float(p[0]), float(p[1])) for p in points)


def ring_signed_area(points: np.ndarray) -> float:
    """Shoelace area; positive for counter-clockwise rings."""
    if len(points) < 3:
        return 0.0
    x = points[:, 0]
    y = points[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def _dedupe_ring(ring: Ring, eps: float) -> Ring:
    if not ring:
        return ring
    out: List[Point] = [ring[0]]
    for p in ring[1:]:
        if math.hypot(p[0] - out[-1][0], p[1] - out[-1][1]) > eps:
            out.append(p)
    if len(out) > 1 and math.hypot(out[-1][0] - out[0][0], out[-1][1] - out[0][1]) < eps:
        out.pop()
    return tuple(out)


@dataclass(frozen=True)
class Shape:
    """Polygon with holes, closed implicitly."""

    points: Ring
    holes: Tuple[Ring, ...] = ()

    @classmethod
    def from_points(
        cls,
        points: Iterable[Sequence[float]],
        holes: Iterable[Iterable[Sequence[float]]] = (),
    ) -> "Shape":
        return cls(_as_ring(points), tuple(_as_ring(h) for h in holes))

    @classmethod
    def square(cls, size: float, center: Point = (0.0, 0.0)) -> "Shape":
        h = size / 2.0
        cx, cy = center
        return cls(((cx - h, cy - h), (cx + h, cy - h), (cx + h, cy + h), (cx - h, cy + h)))

    @classmethod
    def rectangle(cls, width: float, height: float, center: Point = (0.0, 0.0)) -> "Shape":
        hw, hh = width / 2.0, height / 2.0
        cx, cy = center
        return cls(((cx - hw, cy - hh), (cx + hw, cy - hh), (cx + hw, cy + hh), (cx - hw, cy + hh)))

    # -- accessors ---------------------------------------------------------

    def get_points(self) -> np.ndarray:
        """Outer ring as an (N, 2) array."""
        return np.asarray(self.points, dtype=float).reshape(-1, 2)

    def hole_arrays(self) -> List[np.ndarray]:
        return [np.asarray(h, dtype=float).reshape(-1, 2) for h in self.holes]

    @property
    def signed_area(self) -> float:
        return ring_signed_area(self.get_points())

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        pts = self.get_points()
        if len(pts) == 0:
            return (0.0, 0.0, 0.0, 0.0)
        return (
            float(pts[:, 0].min()),
            float(pts[:, 1].min()),
            float(pts[:, 0].max()),
            float(pts[:, 1].max()),
        )

    # -- transforms --------------------------------------------------------

    def _map(self, fn) -> "Shape":
        return Shape(
            _as_ring(fn(self.get_points())),
            tuple(_as_ring(fn(h)) for h in self.hole_arrays()),
        )

    def mirror(self, axis: str = "x") -> "Shape":
        """Negate the ``axis`` coordinate. Winding is left flipped."""
        if axis not in ("x", "y"):
            raise ValueError(f"Unknown mirror axis: {axis!r}")
        col = 0 if axis == "x" else 1

        def _flip(pts: np.ndarray) -> np.ndarray:
            out = pts.copy()
            out[:, col] = -out[:, col]
            return out

        return self._map(_flip)

    def rotate(self, angle_deg: float) -> "Shape":
        """Rotate about the origin."""
        if angle_deg == 0:
            return self
        rad = math.radians(angle_deg)
        c, s = math.cos(rad), math.sin(rad)
        rot = np.array([[c, -s], [s, c]])
        return self._map(lambda pts: pts @ rot.T)

    def translate(self, dx: float, dy: float) -> "Shape":
        offset = np.array([dx, dy])
        return self._map(lambda pts: pts + offset)

    def transform(self, matrix: np.ndarray) -> "Shape":
        """Apply a 3x3 homogeneous 2D affine, then restore winding."""
        m = np.asarray(matrix, dtype=float)
        lin = m[:2, :2]
        t = m[:2, 2]
        return self._map(lambda pts: pts @ lin.T + t).enforce_winding()

    def enforce_winding(self) -> "Shape":
        """Outer ring counter-clockwise, holes clockwise."""
        outer = self.points
        if ring_signed_area(self.get_points()) < 0:
            outer = tuple(reversed(outer))
        holes = []
        for ring, arr in zip(self.holes, self.hole_arrays()):
            holes.append(tuple(reversed(ring)) if ring_signed_area(arr) > 0 else ring)
        return Shape(outer, tuple(holes))

    def transformed(self, mirror: bool = False, rotation_deg: float = 0.0) -> "Shape":
        """Mirror (about the y axis), rotate, then fix winding."""
        shape = self.mirror("x") if mirror else self
        return shape.rotate(rotation_deg).enforce_winding()

    # -- queries -----------------------------------------------------------

    def point_in_shape(self, point: Sequence[float]) -> bool:
        """Even-odd ray casting over the outer boundary."""
        return _point_in_ring(self.get_points(), float(point[0]), float(point[1]))

    def distance_to_boundary(self, point: Sequence[float]) -> float:
        """Minimum distance from ``point`` to any outer edge (holes ignored)."""
        pts = self.get_points()
        if len(pts) == 0:
            return math.inf
        p = np.array([float(point[0]), float(point[1])])
        a = pts
        b = np.roll(pts, -1, axis=0)
        ab = b - a
        denom = np.einsum("ij,ij->i", ab, ab)
        t = np.divide(
            np.einsum("ij,ij->i", p - a, ab),
            denom,
            out=np.zeros_like(denom),
            where=denom > 0,
        )
        t = np.clip(t, 0.0, 1.0)
        closest = a + ab * t[:, None]
        return float(np.min(np.linalg.norm(closest - p, axis=1)))

    # -- sanitising --------------------------------------------------------

    def deduplicated(self, eps: float = DEDUPE_EPSILON) -> "Shape":
        return Shape(
            _dedupe_ring(self.points, eps),
            tuple(h for h in (_dedupe_ring(r, eps) for r in self.holes) if len(h) >= 3),
        )

    def is_degenerate(self, eps: float = DEDUPE_EPSILON) -> bool:
        return len(_dedupe_ring(self.points, eps)) < 3

    # -- shapely interop ---------------------------------------------------

    def to_polygon(self) -> Polygon:
        clean = self.deduplicated()
        if len(clean.points) < 3:
            return Polygon()
        poly = Polygon(clean.points, holes=list(clean.holes))
        if not poly.is_valid:
            poly = poly.buffer(0)
        return poly

    @classmethod
    def from_polygon(cls, polygon: Polygon) -> "Shape":
        poly = orient(polygon, sign=1.0)
        return cls(
            _as_ring(poly.exterior.coords[:-1]),
            tuple(_as_ring(ring.coords[:-1]) for ring in poly.interiors),
        )


def _point_in_ring(pts: np.ndarray, x: float, y: float) -> bool:
    if len(pts) < 3:
        return False
    xi, yi = pts[:, 0], pts[:, 1]
    xj, yj = np.roll(xi, 1), np.roll(yi, 1)
    straddles = (yi > y) != (yj > y)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
    crossings = np.count_nonzero(straddles & (x < x_cross))
    return bool(crossings % 2)


def shapes_from_geometry(geom) -> List[Shape]:
    """Explode a shapely (Multi)Polygon / collection into Shapes."""
    if geom is None or geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        return [Shape.from_polygon(geom)]
    if isinstance(geom, MultiPolygon):
        return [Shape.from_polygon(g) for g in geom.geoms if not g.is_empty]
    out: List[Shape] = []
    for g in getattr(geom, "geoms", []):
        out.extend(shapes_from_geometry(g))
    return out


def shapes_bounds(shapes: Sequence[Shape]) -> Optional[Tuple[float, float, float, float]]:
    """Combined (min_x, min_y, max_x, max_y) or None for no points."""
    arrays = [s.get_points() for s in shapes if len(s.points) > 0]
    if not arrays:
        return None
    pts = np.vstack(arrays)
    return (
        float(pts[:, 0].min()),
        float(pts[:, 1].min()),
        float(pts[:, 0].max()),
        float(pts[:, 1].max()),
    )
