"""Tests for writing solids to disk."""
import json

import pytest
import trimesh

from gripplate.export import MANIFEST_NAME, export_solids
from gripplate.scene import (
    GROUP_BASE,
    GROUP_PATTERN,
    SlotKey,
    SolidArena,
    SolidEntry,
    WasteKind,
)


@pytest.fixture
def arena():
    arena = SolidArena()
    arena.replace_group(GROUP_BASE, [
        SolidEntry(SlotKey.base(), trimesh.creation.box(extents=[10, 10, 1]), GROUP_BASE),
    ])
    arena.replace_group(GROUP_PATTERN, [
        SolidEntry(SlotKey.pattern(), trimesh.creation.box(extents=[2, 2, 2]), GROUP_PATTERN),
        SolidEntry(
            SlotKey.debug_waste(WasteKind.PATTERN_CLIP),
            trimesh.creation.box(extents=[1, 1, 1]),
            GROUP_PATTERN,
            visible=False,
        ),
    ])
    return arena


def test_export_writes_solids_and_manifest(arena, tmp_path):
    paths = export_solids(arena, tmp_path)
    assert [p.name for p in paths] == ["Base.stl", "Pattern.stl"]
    manifest = json.loads((tmp_path / MANIFEST_NAME).read_text(encoding="utf-8"))
    assert manifest["format"] == "stl"
    assert [s["name"] for s in manifest["solids"]] == ["Base", "Pattern"]
    assert manifest["solids"][0]["watertight"] is True

    reloaded = trimesh.load(str(tmp_path / "Base.stl"), force="mesh")
    assert reloaded.extents == pytest.approx([10, 10, 1])


def test_export_includes_waste_on_request(arena, tmp_path):
    paths = export_solids(arena, tmp_path, include_debug=True, file_type="OBJ")
    assert {p.name for p in paths} == {"Base.obj", "Pattern.obj", "Waste_pattern_clip_0.obj"}


def test_unsupported_format(arena, tmp_path):
    with pytest.raises(ValueError):
        export_solids(arena, tmp_path, file_type="step")
