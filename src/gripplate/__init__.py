"""Public API for grip-plate tiling and solid composition."""

from gripplate.composition import CompositionResult, compose_plate
from gripplate.contracts import (
    Anchor,
    CompositionRequest,
    DebugFlags,
    Direction,
    Distribution,
    GripMode,
    HoleMode,
    InlayLayer,
    InlaySettings,
    MeshSource,
    OrientationPolicy,
    OutlineSettings,
    PatternSettings,
    PlateSettings,
    PolygonalSource,
    TileInstance,
)
from gripplate.export import export_solids
from gripplate.jobs import CompositionController
from gripplate.placement import generate_tile_positions
from gripplate.scene import SlotKey, SolidArena
from gripplate.settings_io import load_project
from gripplate.shapes import Shape

__all__ = [
    "Anchor",
    "CompositionController",
    "CompositionRequest",
    "CompositionResult",
    "DebugFlags",
    "Direction",
    "Distribution",
    "GripMode",
    "HoleMode",
    "InlayLayer",
    "InlaySettings",
    "MeshSource",
    "OrientationPolicy",
    "OutlineSettings",
    "PatternSettings",
    "PlateSettings",
    "PolygonalSource",
    "Shape",
    "SlotKey",
    "SolidArena",
    "TileInstance",
    "compose_plate",
    "export_solids",
    "generate_tile_positions",
    "load_project",
]
