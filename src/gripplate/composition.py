"""
Solid composition pipeline: base plate, tiled pattern and inlays.

Stages per group:

- Base: extrude the outline (or the default square) by the plate thickness.
- Pattern: prepare the unit, place tiles, then either bake plain instances
  (no clipping, exclusions, holes or height cap) or run the boolean chain
  in fixed order: exclusions (minus inclusions), holes, outline clip,
  height cap.
- Inlays: extrude each layer with a small per-index depth bump, place it
  through the anchor resolver, and clip it to the outline and holes.

Problems never abort the pass. A failing boolean keeps the operand it had
before, an empty result drops the solid, and both leave a Diagnostic.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import trimesh

from gripplate.booleans import BooleanOutcome, intersect, is_empty_mesh, subtract
from gripplate.boundary import BoundaryContext, build_boundary_context
from gripplate.contracts import (
    CompositionRequest,
    CompositionStats,
    Diagnostic,
    GripMode,
    HoleMode,
    InlayLayer,
    TileInstance,
)
from gripplate.extrusion import (
    cap_box,
    extrude_shapes,
    instance_mesh,
    prepare_pattern,
    prism,
    tile_transforms,
)
from gripplate.inlay_anchor import place_layer_shapes
from gripplate.offset import offset_shapes, union_shapes
from gripplate.placement import generate_tile_positions, snap_rotations
from gripplate.scene import (
    GROUP_BASE,
    GROUP_INLAYS,
    GROUP_PATTERN,
    SlotKey,
    SolidArena,
    SolidEntry,
    WasteKind,
)
from gripplate.shapes import Shape

logger = logging.getLogger(__name__)

# Depth bump per inlay index; later inlays win where layers overlap.
INLAY_PRIORITY_EPSILON = 0.001

# Inlay colour values with special meaning.
INLAY_COLOR_BASE = "base"
INLAY_COLOR_HIDDEN = "transparent"


@dataclass
class CompositionResult:
    """Everything one pass produced, grouped for atomic replacement."""

    groups: Dict[str, List[SolidEntry]] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    stats: CompositionStats = field(default_factory=CompositionStats)
    boundary: Optional[BoundaryContext] = None

    def entries(self) -> List[SolidEntry]:
        return [e for group in self.groups.values() for e in group]

    def solid(self, key: SlotKey) -> Optional[SolidEntry]:
        for entry in self.entries():
            if entry.key == key:
                return entry
        return None

    def names(self) -> List[str]:
        return [e.name for e in self.entries()]

    def apply_to(self, arena: SolidArena, accept: Optional[Callable[[], bool]] = None) -> bool:
        """Swap every group into *arena* at once; see SolidArena.replace_groups."""
        return arena.replace_groups(self.groups, accept)

    def to_arena(self) -> SolidArena:
        arena = SolidArena()
        self.apply_to(arena)
        return arena


# ---------------------------------------------------------------------------
# Cutter preparation
# ---------------------------------------------------------------------------

def prepare_hole_cutters(
    holes: Sequence[Shape],
    margin: float = 0.0,
    apply_margin: bool = False,
) -> List[Shape]:
    """Union overlapping holes, growing them by ``+margin`` when requested.

    Overlapping cutters make the boolean evaluator emit non-manifold seams,
    so the output never overlaps itself.
    """
    if not holes:
        return []
    if apply_margin and margin > 0:
        return offset_shapes(holes, margin)
    return union_shapes(holes)


def clip_region(filled: Sequence[Shape], margin: float = 0.0) -> List[Shape]:
    """Outline eroded by ``margin`` (the clip-margin)."""
    if margin > 0:
        return offset_shapes(filled, -margin)
    return union_shapes(filled)


def grip_zones(
    layers: Sequence[InlayLayer],
    boundary: BoundaryContext,
) -> Tuple[List[Shape], List[Shape]]:
    """World-space (exclusion, inclusion) shapes from inlay grip modes."""
    exclusions: List[Shape] = []
    inclusions: List[Shape] = []
    for layer in layers:
        mode = GripMode(layer.settings.grip_mode)
        if mode == GripMode.NONE:
            continue
        placed = place_layer_shapes(layer, boundary.bounds)
        if mode == GripMode.EXCLUDE:
            exclusions.extend(placed)
        else:
            inclusions.extend(placed)
    return exclusions, inclusions


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------

class _Composer:
    def __init__(self, request: CompositionRequest):
        self.request = request
        self.settings = request.settings
        self.result = CompositionResult()
        outline = self.settings.outline
        self.boundary = build_boundary_context(
            tuple(request.outline_shapes),
            float(outline.size),
            bool(outline.mirror),
            float(outline.rotation),
        )
        self.result.boundary = self.boundary
        self._hole_cutter: Optional[trimesh.Trimesh] = None
        self._hole_cutter_ready = False

    # -- bookkeeping -------------------------------------------------------

    def _note(self, stage: str, message: str, severity: str = "warning") -> None:
        if severity == "info":
            logger.info("%s: %s", stage, message)
        else:
            logger.warning("%s: %s", stage, message)
        self.result.diagnostics.append(Diagnostic(stage, message, severity))

    def _take(
        self,
        outcome: BooleanOutcome,
        stage: str,
        waste_kind: WasteKind,
        waste_visible: bool,
        group: str,
        index: int,
        waste: List[SolidEntry],
    ) -> Optional[trimesh.Trimesh]:
        self.result.stats.boolean_ops += 1
        if outcome.failed:
            self.result.stats.boolean_failures += 1
            self._note(stage, f"boolean failed, kept previous solid ({outcome.error})")
        if outcome.waste is not None:
            waste.append(SolidEntry(
                key=SlotKey.debug_waste(waste_kind, index),
                mesh=outcome.waste,
                group=group,
                visible=waste_visible,
            ))
        return outcome.result

    def _holes_prism(self) -> Optional[trimesh.Trimesh]:
        if not self._hole_cutter_ready:
            pattern = self.settings.pattern
            cutters = prepare_hole_cutters(
                self.boundary.holes,
                pattern.margin,
                pattern.margin_applies_to_holes,
            )
            self._hole_cutter = prism(cutters) if cutters else None
            self._hole_cutter_ready = True
        return self._hole_cutter

    # -- stages ------------------------------------------------------------

    def base(self) -> List[SolidEntry]:
        outline = self.settings.outline
        warnings: List[str] = []
        mesh = extrude_shapes(self.boundary.outline, float(outline.thickness), warnings=warnings)
        for msg in warnings:
            self._note("base", msg)
        if is_empty_mesh(mesh):
            self._note("base", "outline produced no solid; Base omitted")
            return []
        return [SolidEntry(SlotKey.base(), mesh, GROUP_BASE, color=outline.color)]

    def _place(self, width: float, height: float, exclusions, inclusions) -> List[TileInstance]:
        pattern = self.settings.pattern
        if not pattern.is_tiled:
            return [TileInstance(position=(0.0, 0.0), rotation=0.0, scale=1.0)]

        placement_exclusions = list(exclusions)
        if pattern.hole_mode == HoleMode.AVOID:
            placement_exclusions.extend(self.boundary.holes)
        boundary_shapes = None if self.boundary.is_default else self.boundary.filled
        return generate_tile_positions(
            bounds=self.boundary.bounds,
            tile_width=width,
            tile_height=height,
            spacing=pattern.spacing,
            boundary_shapes=boundary_shapes,
            margin=pattern.margin,
            allow_partial=pattern.clip_to_outline,
            distribution=pattern.distribution,
            orientation=pattern.orientation,
            direction=pattern.direction,
            exclusion_shapes=placement_exclusions,
            inclusion_shapes=inclusions,
            seed=pattern.seed,
        )

    def pattern(self) -> List[SolidEntry]:
        if self.request.pattern is None:
            self._note("pattern", "no pattern source; Pattern omitted", "info")
            return []

        pattern = self.settings.pattern
        thickness = float(self.settings.outline.thickness)
        prepared = prepare_pattern(
            self.request.pattern,
            scale=pattern.scale,
            base_rotation_deg=pattern.base_rotation,
            rotation_clamp_deg=pattern.rotation_clamp,
        )
        if prepared is None:
            self._note("pattern", "pattern source produced no geometry; Pattern omitted")
            return []

        exclusions, inclusions = grip_zones(self.request.inlays, self.boundary)
        tiles = self._place(prepared.width, prepared.height, exclusions, inclusions)
        snap_rotations(tiles, pattern.rotation_clamp)
        self.result.stats.tiles = tiles
        self.result.stats.tile_count = len(tiles)
        if not tiles:
            self._note("pattern", "no tile position fits the outline; Pattern omitted")
            return []

        transforms = tile_transforms(
            tiles, pattern.scale, pattern.effective_scale_z, prepared.depth, thickness,
        )
        merged = instance_mesh(prepared.unit, transforms)

        has_exclusions = bool(exclusions)
        has_holes = self.boundary.has_holes
        has_clipping = pattern.clip_to_outline
        has_cap = pattern.max_height is not None and pattern.max_height > 0

        if not (has_exclusions or has_holes or has_clipping or has_cap):
            self.result.stats.pattern_path = "instanced"
            logger.info("Pattern: %d instances (instanced path)", len(tiles))
            return [SolidEntry(SlotKey.pattern(), merged, GROUP_PATTERN, color=pattern.color)]

        self.result.stats.pattern_path = "boolean"
        debug = self.settings.debug
        waste: List[SolidEntry] = []
        operand: Optional[trimesh.Trimesh] = merged

        if has_exclusions:
            cutter = prism(exclusions)
            if inclusions and cutter is not None:
                rescue = subtract(cutter, prism(inclusions), "inclusion rescue", with_waste=False)
                self.result.stats.boolean_ops += 1
                if rescue.failed:
                    self.result.stats.boolean_failures += 1
                    self._note("pattern", f"inclusion rescue failed ({rescue.error})")
                cutter = rescue.result
            operand = self._take(
                subtract(operand, cutter, "pattern exclusion"),
                "pattern", WasteKind.PATTERN_EXCLUSION, debug.show_pattern_cutter,
                GROUP_PATTERN, 0, waste,
            )

        if has_holes:
            operand = self._take(
                subtract(operand, self._holes_prism(), "pattern holes"),
                "pattern", WasteKind.PATTERN_HOLES, debug.show_hole_cutter,
                GROUP_PATTERN, 0, waste,
            )

        if has_clipping:
            region = clip_region(self.boundary.filled, pattern.margin)
            if not region:
                self._note("pattern", f"margin {pattern.margin} erodes the whole outline")
                operand = None
            else:
                operand = self._take(
                    intersect(operand, prism(region), "pattern clip"),
                    "pattern", WasteKind.PATTERN_CLIP, debug.show_pattern_cutter,
                    GROUP_PATTERN, 0, waste,
                )

        if has_cap and not is_empty_mesh(operand):
            # Rotated tiles can overhang the outline when clipping is off.
            bounds = self.boundary.bounds
            lo = np.minimum(operand.bounds[0][:2], [bounds.min_x, bounds.min_y])
            hi = np.maximum(operand.bounds[1][:2], [bounds.max_x, bounds.max_y])
            cap = cap_box(
                (lo[0], lo[1], hi[0], hi[1]),
                thickness + float(pattern.max_height),
            )
            operand = self._take(
                subtract(operand, cap, "pattern height cap"),
                "pattern", WasteKind.PATTERN_HEIGHT_CAP, debug.show_pattern_cutter,
                GROUP_PATTERN, 0, waste,
            )

        if is_empty_mesh(operand):
            self._note("pattern", "pattern is empty after cutting; Pattern omitted")
            return waste
        entry = SolidEntry(SlotKey.pattern(), operand, GROUP_PATTERN, color=pattern.color)
        return [entry] + waste

    def inlays(self) -> List[SolidEntry]:
        thickness = float(self.settings.outline.thickness)
        debug = self.settings.debug
        entries: List[SolidEntry] = []
        needs_clipping = not self.boundary.is_default or self.boundary.has_holes

        for i, layer in enumerate(self.request.inlays):
            stage = f"inlay {i}"
            if layer.color == INLAY_COLOR_HIDDEN:
                self._note(stage, "transparent inlay; no solid generated", "info")
                continue
            settings = layer.settings
            shapes = place_layer_shapes(layer, self.boundary.bounds)
            skipped = len(layer.shapes) - len(shapes)
            if skipped:
                self._note(stage, f"{skipped} degenerate shape(s) skipped")
            if not shapes:
                self._note(stage, "no usable shapes; inlay omitted")
                continue

            depth = settings.depth + settings.extend + (i + 1) * INLAY_PRIORITY_EPSILON
            warnings: List[str] = []
            solid = extrude_shapes(shapes, depth, z0=thickness - settings.depth, warnings=warnings)
            for msg in warnings:
                self._note(stage, msg)
            if is_empty_mesh(solid):
                self._note(stage, "inlay produced no solid; omitted")
                continue

            waste: List[SolidEntry] = []
            if needs_clipping:
                if self.boundary.has_holes:
                    solid = self._take(
                        subtract(solid, self._holes_prism(), f"{stage} holes"),
                        stage, WasteKind.INLAY_HOLES, debug.show_hole_cutter,
                        GROUP_INLAYS, i, waste,
                    )
                solid = self._take(
                    intersect(solid, prism(self.boundary.filled), f"{stage} clip"),
                    stage, WasteKind.INLAY_CLIP, debug.show_inlay_cutter,
                    GROUP_INLAYS, i, waste,
                )

            if is_empty_mesh(solid):
                self._note(stage, "inlay is empty after clipping; omitted")
            else:
                color = layer.color
                if color == INLAY_COLOR_BASE:
                    color = self.settings.outline.color
                entries.append(SolidEntry(SlotKey.inlay(i), solid, GROUP_INLAYS, color=color))
            entries.extend(waste)
        return entries

    def run(self) -> CompositionResult:
        started = time.perf_counter()
        for group, stage in (
            (GROUP_BASE, self.base),
            (GROUP_PATTERN, self.pattern),
            (GROUP_INLAYS, self.inlays),
        ):
            try:
                self.result.groups[group] = stage()
            except Exception as exc:
                logger.exception("Composition stage %s failed", group)
                self.result.diagnostics.append(
                    Diagnostic(group, f"stage failed: {exc}", "error")
                )
                self.result.groups[group] = []
        self.result.stats.elapsed_s = time.perf_counter() - started
        logger.info(
            "Composition finished in %.2fs: %s (%d diagnostics)",
            self.result.stats.elapsed_s,
            ", ".join(self.result.names()) or "no solids",
            len(self.result.diagnostics),
        )
        return self.result


def compose_plate(request: CompositionRequest) -> CompositionResult:
    """Run one full composition pass for *request*."""
    return _Composer(request).run()
