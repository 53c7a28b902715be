"""Contracts for the grip plate composition pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from gripplate.shapes import Shape

Vec2 = Tuple[float, float]


class Distribution(str, Enum):
    """Tile distribution strategies."""
    GRID = "grid"
    OFFSET = "offset"
    HEX = "hex"
    RADIAL = "radial"
    RANDOM = "random"
    WAVE = "wave"
    ZIGZAG = "zigzag"
    WARPED_GRID = "warped-grid"


class OrientationPolicy(str, Enum):
    NONE = "none"
    ALTERNATE = "alternate"
    RANDOM = "random"
    ALIGNED = "aligned"


class Direction(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class GripMode(str, Enum):
    """How an inlay interacts with the surface pattern."""
    NONE = "none"
    EXCLUDE = "exclude"
    INCLUDE = "include"


class HoleMode(str, Enum):
    """How outline holes treat the surface pattern.

    ``default`` cuts pattern material at the hole edge, ``margin`` grows the
    holes by the pattern margin before cutting, and ``avoid`` additionally
    drops tiles that sit entirely inside a hole.
    """
    DEFAULT = "default"
    MARGIN = "margin"
    AVOID = "avoid"


class Anchor(str, Enum):
    CENTER = "center"
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutlineSettings:
    """Base plate outline settings (mm, degrees)."""

    size: float = 300.0
    thickness: float = 3.0
    color: str = "#2b2b2b"
    mirror: bool = False
    rotation: float = 0.0


@dataclass(frozen=True)
class PatternSettings:
    """Surface pattern settings."""

    scale: float = 1.0
    scale_z: Optional[float] = None  # None -> follow ``scale``
    margin: float = 3.0
    spacing: float = 10.0
    is_tiled: bool = True
    distribution: Distribution = Distribution.OFFSET
    direction: Direction = Direction.HORIZONTAL
    orientation: OrientationPolicy = OrientationPolicy.NONE
    clip_to_outline: bool = True
    max_height: Optional[float] = None
    rotation_clamp: Optional[float] = None  # degrees
    base_rotation: float = 0.0  # degrees
    hole_mode: HoleMode = HoleMode.DEFAULT
    color: str = "#e0a040"
    seed: Optional[int] = None

    @property
    def effective_scale_z(self) -> float:
        if self.scale_z is not None and self.scale_z > 0:
            return float(self.scale_z)
        return float(self.scale)

    @property
    def margin_applies_to_holes(self) -> bool:
        return self.hole_mode in (HoleMode.MARGIN, HoleMode.AVOID)


@dataclass(frozen=True)
class InlaySettings:
    """Per-inlay extrusion and placement settings."""

    depth: float = 0.6
    scale: float = 1.0
    rotation: float = 0.0  # degrees
    extend: float = 0.0
    mirror: bool = False
    anchor: Anchor = Anchor.CENTER
    manual_x: float = 0.0
    manual_y: float = 0.0
    grip_mode: GripMode = GripMode.NONE


@dataclass(frozen=True)
class DebugFlags:
    show_pattern_cutter: bool = False
    show_hole_cutter: bool = False
    show_inlay_cutter: bool = False


@dataclass(frozen=True)
class PlateSettings:
    outline: OutlineSettings = field(default_factory=OutlineSettings)
    pattern: PatternSettings = field(default_factory=PatternSettings)
    debug: DebugFlags = field(default_factory=DebugFlags)


# ---------------------------------------------------------------------------
# Placement / composition types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Bounds2D:
    """Axis-aligned 2D box."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Vec2:
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0.0 or self.height <= 0.0

    def shrunk(self, margin: float) -> "Bounds2D":
        return Bounds2D(
            self.min_x + margin,
            self.min_y + margin,
            self.max_x - margin,
            self.max_y - margin,
        )

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    @classmethod
    def centered_square(cls, size: float) -> "Bounds2D":
        half = size / 2.0
        return cls(-half, -half, half, half)


@dataclass
class TileInstance:
    """One placed copy of the pattern unit."""

    position: Vec2
    rotation: float = 0.0  # radians
    scale: float = 1.0


@dataclass(frozen=True)
class PolygonalSource:
    """Pattern defined by planar shapes (extruded to unit depth)."""

    shapes: Tuple[Shape, ...]


@dataclass(frozen=True, eq=False)
class MeshSource:
    """Pattern defined by raw mesh buffers."""

    vertices: np.ndarray  # (V, 3)
    faces: np.ndarray  # (F, 3)
    # Precomputed (2, 3) bounding box; derived from vertices when missing.
    bounds: Optional[np.ndarray] = None


@dataclass(frozen=True)
class InlayLayer:
    """An inlay shape set with its settings.

    ``color`` is a display colour; "base" borrows the outline colour and
    "transparent" hides the layer (it still shapes the grip zones).
    """

    shapes: Tuple[Shape, ...]
    settings: InlaySettings = field(default_factory=InlaySettings)
    name: str = ""
    color: Optional[str] = None


@dataclass(frozen=True)
class CompositionRequest:
    """Snapshot of everything one composition pass consumes."""

    settings: PlateSettings = field(default_factory=PlateSettings)
    outline_shapes: Tuple[Shape, ...] = ()
    pattern: Optional[object] = None  # PolygonalSource | MeshSource
    inlays: Tuple[InlayLayer, ...] = ()


@dataclass
class Diagnostic:
    """Non-blocking problem recorded during composition."""

    stage: str
    message: str
    severity: str = "warning"


@dataclass
class CompositionStats:
    tile_count: int = 0
    pattern_path: Optional[str] = None  # "instanced" | "boolean"
    boolean_ops: int = 0
    boolean_failures: int = 0
    elapsed_s: float = 0.0
    tiles: List[TileInstance] = field(default_factory=list)

