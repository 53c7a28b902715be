"""
Extrusion and pattern-unit ingestion.

Turns Shapes into closed trimesh solids, builds tall cutter prisms for the
boolean stage, and prepares the pattern unit once per pass: the
PatternSource tag (polygonal vs. mesh) is resolved here and nowhere else.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import trimesh
from shapely.geometry import Polygon

from gripplate.contracts import MeshSource, PolygonalSource, TileInstance
from gripplate.shapes import Shape

logger = logging.getLogger(__name__)

# Cutters span well past any plate so their caps never coincide with a face.
CUTTER_Z0 = -100.0
CUTTER_HEIGHT = 1000.0
# Pattern instances sink this far into the base so the solids fuse.
PATTERN_SEAT = 0.01


def extrude_shapes(
    shapes: Sequence[Shape],
    height: float,
    z0: float = 0.0,
    warnings: Optional[List[str]] = None,
) -> Optional[trimesh.Trimesh]:
    """Extrude every usable shape by *height*, starting at *z0*.

    Degenerate shapes are skipped and reported through *warnings*.
    Returns None when nothing could be extruded.
    """
    if height <= 0:
        return None
    meshes = []
    for i, shape in enumerate(shapes):
        if shape.is_degenerate():
            msg = f"shape {i} is degenerate ({len(shape.points)} points); skipped"
            logger.warning("Extrusion: %s", msg)
            if warnings is not None:
                warnings.append(msg)
            continue
        geom = shape.to_polygon()
        for polygon in getattr(geom, "geoms", [geom]):
            if not isinstance(polygon, Polygon) or polygon.is_empty or polygon.area <= 0:
                continue
            try:
                mesh = trimesh.creation.extrude_polygon(polygon, height=height)
            except Exception as exc:
                msg = f"shape {i} failed to extrude: {exc}"
                logger.warning("Extrusion: %s", msg)
                if warnings is not None:
                    warnings.append(msg)
                continue
            meshes.append(mesh)

    if not meshes:
        return None
    combined = meshes[0] if len(meshes) == 1 else trimesh.util.concatenate(meshes)
    if z0:
        combined.apply_translation([0.0, 0.0, z0])
    return combined


def prism(
    shapes: Sequence[Shape],
    z0: float = CUTTER_Z0,
    height: float = CUTTER_HEIGHT,
) -> Optional[trimesh.Trimesh]:
    """Tall extrusion used as a boolean cutter."""
    return extrude_shapes(shapes, height, z0=z0)


def cap_box(bounds_xy, z_bottom: float, height: float = CUTTER_HEIGHT, pad: float = 10.0) -> trimesh.Trimesh:
    """Box covering *bounds_xy* (min_x, min_y, max_x, max_y) from *z_bottom* up."""
    min_x, min_y, max_x, max_y = bounds_xy
    extents = [max_x - min_x + 2 * pad, max_y - min_y + 2 * pad, height]
    center = [(min_x + max_x) / 2.0, (min_y + max_y) / 2.0, z_bottom + height / 2.0]
    return trimesh.creation.box(
        extents=extents,
        transform=trimesh.transformations.translation_matrix(center),
    )


# ---------------------------------------------------------------------------
# Pattern unit
# ---------------------------------------------------------------------------

@dataclass
class PreparedPattern:
    """Centred, base-rotated pattern unit and its scaled footprint."""

    unit: trimesh.Trimesh
    width: float  # footprint along x after scaling
    height: float  # footprint along y after scaling
    depth: float  # unscaled z extent of the unit


def snap_angle(angle_deg: float, clamp_deg: Optional[float]) -> float:
    if clamp_deg and clamp_deg > 0:
        return round(angle_deg / clamp_deg) * clamp_deg
    return angle_deg


def _unit_from_source(source) -> Optional[trimesh.Trimesh]:
    if isinstance(source, PolygonalSource):
        oriented = [s.deduplicated().enforce_winding() for s in source.shapes]
        return extrude_shapes(oriented, 1.0)
    if isinstance(source, MeshSource):
        vertices = np.asarray(source.vertices, dtype=float).reshape(-1, 3)
        faces = np.asarray(source.faces, dtype=np.int64).reshape(-1, 3)
        if len(vertices) == 0 or len(faces) == 0:
            return None
        return trimesh.Trimesh(vertices=vertices, faces=faces, process=True)
    raise TypeError(f"Unsupported pattern source: {type(source).__name__}")


def prepare_pattern(
    source,
    scale: float = 1.0,
    base_rotation_deg: float = 0.0,
    rotation_clamp_deg: Optional[float] = None,
) -> Optional[PreparedPattern]:
    """Build the pattern unit for one composition pass.

    Returns None when the source yields no geometry.
    """
    unit = _unit_from_source(source)
    if unit is None or len(unit.vertices) == 0:
        return None

    bounds = np.asarray(unit.bounds, dtype=float)
    unit.apply_translation(-(bounds[0] + bounds[1]) / 2.0)

    angle = snap_angle(base_rotation_deg, rotation_clamp_deg)
    if angle:
        unit.apply_transform(
            trimesh.transformations.rotation_matrix(math.radians(angle), [0, 0, 1])
        )

    if isinstance(source, MeshSource) and source.bounds is not None and not angle:
        extents = np.ptp(np.asarray(source.bounds, dtype=float).reshape(2, 3), axis=0)
    else:
        extents = unit.extents
    return PreparedPattern(
        unit=unit,
        width=float(extents[0]) * scale,
        height=float(extents[1]) * scale,
        depth=float(unit.extents[2]),
    )


def tile_transforms(
    tiles: Sequence[TileInstance],
    scale: float,
    scale_z: float,
    unit_depth: float,
    thickness: float,
) -> np.ndarray:
    """(N, 4, 4) world transforms seating each tile on top of the base."""
    out = np.zeros((len(tiles), 4, 4))
    for i, tile in enumerate(tiles):
        sxy = scale * tile.scale
        sz = scale_z * tile.scale
        inst_h = unit_depth * abs(sz)
        z_center = thickness - PATTERN_SEAT + inst_h / 2.0
        c, s = math.cos(tile.rotation), math.sin(tile.rotation)
        out[i] = np.array([
            [c * sxy, -s * sxy, 0.0, tile.position[0]],
            [s * sxy, c * sxy, 0.0, tile.position[1]],
            [0.0, 0.0, sz, z_center],
            [0.0, 0.0, 0.0, 1.0],
        ])
    return out


def instance_mesh(unit: trimesh.Trimesh, transforms: np.ndarray) -> trimesh.Trimesh:
    """Bake one copy of *unit* per transform into a single mesh."""
    vertices = np.asarray(unit.vertices, dtype=float)
    faces = np.asarray(unit.faces, dtype=np.int64)
    n = len(transforms)
    homog = np.hstack([vertices, np.ones((len(vertices), 1))])
    world = np.einsum("nij,vj->nvi", transforms, homog)[..., :3]

    flipped = np.linalg.det(transforms[:, :3, :3]) < 0
    per_instance = np.repeat(faces[None, :, :], n, axis=0)
    per_instance[flipped] = per_instance[flipped][:, :, ::-1]
    per_instance += (np.arange(n) * len(vertices))[:, None, None]

    return trimesh.Trimesh(
        vertices=world.reshape(-1, 3),
        faces=per_instance.reshape(-1, 3),
        process=False,
    )
