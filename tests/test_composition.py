"""Tests for the staged solid composition pipeline."""
from dataclasses import replace

import numpy as np
import pytest
import trimesh

from gripplate import booleans
from gripplate.composition import compose_plate, prepare_hole_cutters
from gripplate.contracts import (
    Anchor,
    DebugFlags,
    Distribution,
    GripMode,
    HoleMode,
    InlayLayer,
    InlaySettings,
    MeshSource,
    OrientationPolicy,
    PatternSettings,
    PlateSettings,
    PolygonalSource,
)
from gripplate.extrusion import prepare_pattern
from gripplate.scene import SlotKey, SolidArena, WasteKind
from gripplate.shapes import Shape


def _pattern_settings(settings, **changes):
    return replace(settings, pattern=replace(settings.pattern, **changes))


def _outline_with_hole(size=300.0, hole=50.0):
    h, s = hole / 2.0, size / 2.0
    outer = [(-s, -s), (s, -s), (s, s), (-s, s)]
    inner = [(-h, -h), (-h, h), (h, h), (h, -h)]
    return Shape.from_points(outer, [inner])


def _no_vertex_inside(mesh, half, eps=1e-6):
    xy = np.asarray(mesh.vertices)[:, :2]
    inside = (np.abs(xy[:, 0]) < half - eps) & (np.abs(xy[:, 1]) < half - eps)
    return not inside.any()


class TestBase:
    def test_default_square_base(self, make_request):
        result = compose_plate(make_request(pattern=None))
        base = result.solid(SlotKey.base()).mesh
        assert base.bounds == pytest.approx(np.array([[-150, -150, 0], [150, 150, 3]]))

    def test_base_keeps_outline_holes(self, make_request):
        result = compose_plate(make_request(outline=[_outline_with_hole()], pattern=None))
        base = result.solid(SlotKey.base()).mesh
        assert base.volume == pytest.approx((300.0 ** 2 - 50.0 ** 2) * 3.0, rel=1e-6)

    def test_missing_pattern_is_reported(self, make_request):
        result = compose_plate(make_request(pattern=None))
        assert "Pattern" not in result.names()
        assert any(d.stage == "pattern" for d in result.diagnostics)


class TestInstancedPath:
    def test_300_grid_uses_instancing(self, make_request, grid_settings, square_unit):
        result = compose_plate(make_request(settings=grid_settings))
        stats = result.stats
        assert stats.pattern_path == "instanced"
        assert stats.tile_count == 144
        assert stats.boolean_ops == 0

        unit = prepare_pattern(square_unit).unit
        pattern = result.solid(SlotKey.pattern()).mesh
        assert len(pattern.faces) == 144 * len(unit.faces)
        assert pattern.bounds[0][2] == pytest.approx(2.99)
        assert pattern.bounds[1][2] == pytest.approx(3.99)

    def test_scale_z_stretches_instances(self, make_request, grid_settings):
        settings = _pattern_settings(grid_settings, scale_z=2.5)
        pattern = compose_plate(make_request(settings=settings)).solid(SlotKey.pattern()).mesh
        assert pattern.bounds[1][2] - pattern.bounds[0][2] == pytest.approx(2.5)
        assert pattern.bounds[0][2] == pytest.approx(2.99)

    def test_mesh_source_pattern(self, make_request, grid_settings):
        box = trimesh.creation.box(extents=[10, 10, 2])
        source = MeshSource(vertices=box.vertices, faces=box.faces, bounds=box.bounds)
        result = compose_plate(make_request(settings=grid_settings, pattern=source))
        assert result.stats.pattern_path == "instanced"
        pattern = result.solid(SlotKey.pattern()).mesh
        assert pattern.bounds[1][2] == pytest.approx(3.0 - 0.01 + 2.0)

    def test_single_instance_when_not_tiled(self, make_request, grid_settings):
        settings = _pattern_settings(grid_settings, is_tiled=False)
        result = compose_plate(make_request(settings=settings))
        assert result.stats.tile_count == 1
        pattern = result.solid(SlotKey.pattern()).mesh
        assert pattern.bounds[:, :2] == pytest.approx(np.array([[-10, -10], [10, 10]]))

    def test_degenerate_pattern_is_omitted(self, make_request, grid_settings):
        source = PolygonalSource(shapes=(Shape.from_points([(0, 0), (1, 1)]),))
        result = compose_plate(make_request(settings=grid_settings, pattern=source))
        assert "Pattern" not in result.names()
        assert "Base" in result.names()


class TestBooleanPath:
    def test_clipped_extent_respects_margin(self, make_request):
        settings = replace(
            PlateSettings(),
            pattern=PatternSettings(margin=5.0, spacing=5.0, distribution=Distribution.GRID),
        )
        result = compose_plate(make_request(settings=settings))
        assert result.stats.pattern_path == "boolean"
        bounds = result.solid(SlotKey.pattern()).mesh.bounds
        assert bounds[0][:2] == pytest.approx([-145.0, -145.0])
        assert bounds[1][:2] == pytest.approx([145.0, 145.0])

    def test_holes_are_cut(self, make_request):
        result = compose_plate(make_request(outline=[_outline_with_hole()]))
        pattern = result.solid(SlotKey.pattern()).mesh
        assert _no_vertex_inside(pattern, 25.0)
        waste = result.solid(SlotKey.debug_waste(WasteKind.PATTERN_HOLES))
        assert waste is not None
        assert not waste.visible

    def test_hole_margin_grows_holes(self, make_request):
        settings = _pattern_settings(PlateSettings(), hole_mode=HoleMode.MARGIN, margin=3.0)
        result = compose_plate(make_request(settings=settings, outline=[_outline_with_hole()]))
        assert _no_vertex_inside(result.solid(SlotKey.pattern()).mesh, 28.0)

    def test_avoid_mode_drops_tiles_inside_holes(self, make_request):
        settings = _pattern_settings(
            PlateSettings(), hole_mode=HoleMode.AVOID, distribution=Distribution.GRID,
        )
        result = compose_plate(make_request(settings=settings, outline=[_outline_with_hole(hole=80.0)]))
        assert result.stats.tiles
        for tile in result.stats.tiles:
            x, y = tile.position
            assert not (abs(x) + 10.0 < 40.0 and abs(y) + 10.0 < 40.0)

    def test_height_cap(self, make_request, grid_settings):
        settings = _pattern_settings(grid_settings, max_height=0.5)
        result = compose_plate(make_request(settings=settings))
        assert result.stats.pattern_path == "boolean"
        pattern = result.solid(SlotKey.pattern()).mesh
        assert pattern.bounds[1][2] == pytest.approx(3.5)
        assert result.solid(SlotKey.debug_waste(WasteKind.PATTERN_HEIGHT_CAP)) is not None

    def test_height_cap_covers_rotated_overhang(self, make_request, grid_settings):
        bar = PolygonalSource(shapes=(Shape.rectangle(100.0, 10.0),))
        settings = _pattern_settings(
            grid_settings,
            orientation=OrientationPolicy.ALTERNATE,
            max_height=0.5,
            scale_z=3.0,
        )
        result = compose_plate(make_request(settings=settings, pattern=bar))
        pattern = result.solid(SlotKey.pattern()).mesh
        assert pattern.bounds[0][1] < -150.0 or pattern.bounds[1][1] > 150.0
        assert pattern.bounds[1][2] <= 3.5 + 1e-6

    def test_exclusion_zone_from_inlay(self, make_request, grid_settings):
        layer = InlayLayer(
            shapes=(Shape.from_points([(0, 0), (60, 0), (60, 60), (0, 60)]),),
            settings=InlaySettings(grip_mode=GripMode.EXCLUDE),
        )
        result = compose_plate(make_request(settings=grid_settings, inlays=[layer]))
        assert result.stats.pattern_path == "boolean"
        assert _no_vertex_inside(result.solid(SlotKey.pattern()).mesh, 30.0)
        assert "Inlay_0" in result.names()

    def test_debug_flag_shows_waste(self, make_request):
        settings = replace(PlateSettings(), debug=DebugFlags(show_pattern_cutter=True))
        result = compose_plate(make_request(settings=settings))
        waste = result.solid(SlotKey.debug_waste(WasteKind.PATTERN_CLIP))
        assert waste is not None
        assert waste.visible

    def test_boolean_failure_keeps_previous_operand(self, make_request, monkeypatch):
        def _broken(op, a, b):
            raise RuntimeError("engine unavailable")

        monkeypatch.setattr(booleans, "_run", _broken)
        result = compose_plate(make_request())
        assert result.stats.boolean_failures >= 1
        assert "Pattern" in result.names()
        assert any("boolean failed" in d.message for d in result.diagnostics)

    def test_empty_result_is_omitted(self, make_request):
        settings = _pattern_settings(PlateSettings(), margin=200.0)
        result = compose_plate(make_request(settings=settings))
        assert "Pattern" not in result.names()
        assert any(d.stage == "pattern" for d in result.diagnostics)


    def test_overlapping_holes_with_margin(self, make_request):
        outer = [(-150, -150), (150, -150), (150, 150), (-150, 150)]
        left = [(-30, -20), (-30, 20), (10, 20), (10, -20)]
        right = [(-10, -20), (-10, 20), (30, 20), (30, -20)]
        outline = Shape.from_points(outer, [left, right])
        settings = _pattern_settings(PlateSettings(), hole_mode=HoleMode.MARGIN, margin=2.0)
        result = compose_plate(make_request(settings=settings, outline=[outline]))

        pattern = result.solid(SlotKey.pattern()).mesh
        assert pattern.is_watertight
        xy = np.asarray(pattern.vertices)[:, :2]
        inside = (np.abs(xy[:, 0]) < 32.0 - 1e-6) & (np.abs(xy[:, 1]) < 22.0 - 1e-6)
        assert not inside.any()

        base = result.solid(SlotKey.base()).mesh
        assert base.volume == pytest.approx((300.0 ** 2 - 60.0 * 40.0) * 3.0, rel=1e-6)


class TestHoleCutters:
    def test_overlapping_holes_are_unioned(self):
        holes = [Shape.square(10.0), Shape.square(10.0, center=(6.0, 0.0))]
        cutters = prepare_hole_cutters(holes)
        assert len(cutters) == 1
        assert cutters[0].signed_area == pytest.approx(160.0)

    def test_margin_applied_only_on_request(self):
        holes = [Shape.square(10.0)]
        assert prepare_hole_cutters(holes, 2.0, False)[0].signed_area == pytest.approx(100.0)
        assert prepare_hole_cutters(holes, 2.0, True)[0].signed_area == pytest.approx(196.0)

    def test_no_holes(self):
        assert prepare_hole_cutters([]) == []


class TestInlays:
    def test_inlay_depth_and_priority(self, make_request, square_inlay):
        second = replace(square_inlay, settings=InlaySettings(anchor=Anchor.TOP_LEFT))
        result = compose_plate(make_request(pattern=None, inlays=[square_inlay, second]))
        first_mesh = result.solid(SlotKey.inlay(0)).mesh
        second_mesh = result.solid(SlotKey.inlay(1)).mesh
        assert first_mesh.bounds[0][2] == pytest.approx(2.4)
        assert first_mesh.bounds[1][2] == pytest.approx(3.001)
        assert second_mesh.bounds[1][2] == pytest.approx(3.002)
        assert first_mesh.bounds[:, :2] == pytest.approx(np.array([[-20, -20], [20, 20]]))

    def test_extend_raises_inlay_top(self, make_request, square_inlay):
        layer = replace(square_inlay, settings=InlaySettings(extend=1.0))
        mesh = compose_plate(make_request(pattern=None, inlays=[layer])).solid(SlotKey.inlay(0)).mesh
        assert mesh.bounds[1][2] == pytest.approx(4.001)

    def test_anchored_inlay_matches_resolver(self, make_request, square_inlay):
        settings = InlaySettings(anchor=Anchor.TOP_RIGHT, scale=2.0, rotation=45.0)
        layer = replace(square_inlay, settings=settings)
        mesh = compose_plate(make_request(pattern=None, inlays=[layer])).solid(SlotKey.inlay(0)).mesh
        assert mesh.bounds[1][:2] == pytest.approx([150.0, 150.0])

    def test_inlay_clipped_to_outline(self, make_request):
        layer = InlayLayer(shapes=(Shape.square(200.0),))
        result = compose_plate(make_request(
            outline=[Shape.square(100.0)], pattern=None, inlays=[layer],
        ))
        bounds = result.solid(SlotKey.inlay(0)).mesh.bounds
        assert bounds[:, :2] == pytest.approx(np.array([[-50, -50], [50, 50]]))
        assert result.solid(SlotKey.debug_waste(WasteKind.INLAY_CLIP, 0)) is not None

    def test_inlay_without_shapes_is_skipped(self, make_request):
        layer = InlayLayer(shapes=(Shape.from_points([(0, 0), (0, 0), (1, 1)]),))
        result = compose_plate(make_request(pattern=None, inlays=[layer]))
        assert "Inlay_0" not in result.names()
        assert any(d.stage == "inlay 0" for d in result.diagnostics)


def test_apply_to_arena(make_request, grid_settings):
    result = compose_plate(make_request(settings=grid_settings))
    arena = SolidArena()
    result.apply_to(arena)
    assert set(arena.exportable()) == {"Base", "Pattern"}


class TestInlayColor:
    def test_explicit_and_base_colors(self, make_request, square_inlay):
        red = replace(square_inlay, color="#ff0000")
        plain = replace(square_inlay, color="base", settings=InlaySettings(anchor=Anchor.TOP_LEFT))
        result = compose_plate(make_request(pattern=None, inlays=[red, plain]))
        assert result.solid(SlotKey.inlay(0)).color == "#ff0000"
        assert result.solid(SlotKey.inlay(1)).color == PlateSettings().outline.color

    def test_transparent_inlay_is_skipped(self, make_request, square_inlay):
        hidden = replace(square_inlay, color="transparent")
        result = compose_plate(make_request(pattern=None, inlays=[hidden, square_inlay]))
        assert "Inlay_0" not in result.names()
        assert any(d.stage == "inlay 0" and d.severity == "info" for d in result.diagnostics)
        # The visible layer keeps its own priority bump.
        assert result.solid(SlotKey.inlay(1)).mesh.bounds[1][2] == pytest.approx(3.002)

    def test_transparent_inlay_still_excludes_pattern(self, make_request, grid_settings):
        layer = InlayLayer(
            shapes=(Shape.from_points([(0, 0), (60, 0), (60, 60), (0, 60)]),),
            settings=InlaySettings(grip_mode=GripMode.EXCLUDE),
            color="transparent",
        )
        result = compose_plate(make_request(settings=grid_settings, inlays=[layer]))
        assert "Inlay_0" not in result.names()
        assert _no_vertex_inside(result.solid(SlotKey.pattern()).mesh, 30.0)
