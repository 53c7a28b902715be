"""
Project file loading and settings (de)serialisation.

A project is one JSON document::

    {
      "settings": {"outline": {...}, "pattern": {...}, "debug": {...}},
      "outline": [<shape>, ...],
      "pattern": {"shapes": [<shape>, ...]} | {"mesh": "unit.stl"},
      "inlays": [{"shapes": [<shape>, ...], "name": "...", "color": "#fff", "depth": 0.6, ...}]
    }

A <shape> is either a list of ``[x, y]`` points or
``{"points": [...], "holes": [[...], ...]}``. Settings keys are camelCase.
Mesh paths are resolved relative to the project file.

Unknown enum values and malformed structures raise ValueError. Unknown
keys are ignored with a warning.
"""

from __future__ import annotations

import json
import logging
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import numpy as np
import trimesh

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
)
from gripplate.shapes import Shape

logger = logging.getLogger(__name__)

# JSON key -> dataclass field, per settings section.
OUTLINE_KEYS = {
    "size": "size",
    "thickness": "thickness",
    "color": "color",
    "mirror": "mirror",
    "rotation": "rotation",
}
PATTERN_KEYS = {
    "scale": "scale",
    "scaleZ": "scale_z",
    "margin": "margin",
    "spacing": "spacing",
    "isTiled": "is_tiled",
    "distribution": "distribution",
    "direction": "direction",
    "orientationPolicy": "orientation",
    "clipToOutline": "clip_to_outline",
    "maxHeight": "max_height",
    "rotationClamp": "rotation_clamp",
    "baseRotation": "base_rotation",
    "holeMode": "hole_mode",
    "color": "color",
    "seed": "seed",
}
INLAY_KEYS = {
    "depth": "depth",
    "scale": "scale",
    "rotation": "rotation",
    "extend": "extend",
    "mirror": "mirror",
    "anchor": "anchor",
    "manualX": "manual_x",
    "manualY": "manual_y",
    "gripMode": "grip_mode",
}
DEBUG_KEYS = {
    "showPatternCutter": "show_pattern_cutter",
    "showHoleCutter": "show_hole_cutter",
    "showInlayCutter": "show_inlay_cutter",
}

_ENUM_FIELDS: Dict[str, Type[Enum]] = {
    "distribution": Distribution,
    "direction": Direction,
    "orientation": OrientationPolicy,
    "hole_mode": HoleMode,
    "anchor": Anchor,
    "grip_mode": GripMode,
}
_OPTIONAL_NUMBERS = {"scale_z", "max_height", "rotation_clamp"}


def _enum_value(cls: Type[Enum], value: Any, key: str) -> Enum:
    try:
        return cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in cls)
        raise ValueError(f"{key}: unknown value {value!r} (expected one of: {allowed})") from None


def _coerce(field_name: str, value: Any, default: Any, key: str) -> Any:
    if field_name in _ENUM_FIELDS:
        return _enum_value(_ENUM_FIELDS[field_name], value, key)
    if value is None:
        if field_name in _OPTIONAL_NUMBERS or field_name == "seed":
            return None
        raise ValueError(f"{key}: null is not allowed")
    if field_name == "seed":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{key}: expected an integer, got {value!r}")
        return value
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{key}: expected true/false, got {value!r}")
        return value
    if isinstance(default, str):
        if not isinstance(value, str):
            raise ValueError(f"{key}: expected a string, got {value!r}")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    return float(value)


def _section(cls, data: Any, keys: Dict[str, str], section: str, ignore=()):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{section}: expected an object, got {type(data).__name__}")
    defaults = {f.name: f.default for f in fields(cls)}
    kwargs = {}
    for key, value in data.items():
        if key in ignore:
            continue
        if key not in keys:
            logger.warning("Ignoring unknown setting %s.%s", section, key)
            continue
        name = keys[key]
        kwargs[name] = _coerce(name, value, defaults[name], f"{section}.{key}")
    return cls(**kwargs)


def settings_from_dict(data: Optional[Dict[str, Any]]) -> PlateSettings:
    """Build PlateSettings from the camelCase ``settings`` object."""
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError("settings: expected an object")
    return PlateSettings(
        outline=_section(OutlineSettings, data.get("outline"), OUTLINE_KEYS, "outline"),
        pattern=_section(PatternSettings, data.get("pattern"), PATTERN_KEYS, "pattern"),
        debug=_section(DebugFlags, data.get("debug"), DEBUG_KEYS, "debug"),
    )


def inlay_settings_from_dict(data: Dict[str, Any], section: str = "inlay") -> InlaySettings:
    return _section(InlaySettings, data, INLAY_KEYS, section, ignore=("shapes", "name", "color"))


def _dump(obj, keys: Dict[str, str]) -> Dict[str, Any]:
    out = {}
    for key, name in keys.items():
        value = getattr(obj, name)
        out[key] = value.value if isinstance(value, Enum) else value
    return out


def settings_to_dict(settings: PlateSettings) -> Dict[str, Any]:
    return {
        "outline": _dump(settings.outline, OUTLINE_KEYS),
        "pattern": _dump(settings.pattern, PATTERN_KEYS),
        "debug": _dump(settings.debug, DEBUG_KEYS),
    }


def inlay_settings_to_dict(settings: InlaySettings) -> Dict[str, Any]:
    return _dump(settings, INLAY_KEYS)


# ---------------------------------------------------------------------------
# Geometry payloads
# ---------------------------------------------------------------------------

def _ring(data: Any, where: str) -> List[Tuple[float, float]]:
    try:
        arr = np.asarray(data, dtype=float)
    except (TypeError, ValueError):
        raise ValueError(f"{where}: points must be numeric [x, y] pairs") from None
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"{where}: expected a list of [x, y] points")
    return [(float(x), float(y)) for x, y in arr]


def shape_from_json(data: Any, where: str = "shape") -> Shape:
    if isinstance(data, dict):
        if "points" not in data:
            raise ValueError(f"{where}: missing 'points'")
        holes = data.get("holes") or []
        if not isinstance(holes, list):
            raise ValueError(f"{where}.holes: expected a list")
        return Shape.from_points(
            _ring(data["points"], f"{where}.points"),
            [_ring(h, f"{where}.holes[{i}]") for i, h in enumerate(holes)],
        )
    return Shape.from_points(_ring(data, where))


def shapes_from_json(data: Any, where: str) -> Tuple[Shape, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ValueError(f"{where}: expected a list of shapes")
    return tuple(shape_from_json(item, f"{where}[{i}]") for i, item in enumerate(data))


def shape_to_json(shape: Shape) -> Dict[str, Any]:
    return {
        "points": [list(p) for p in shape.points],
        "holes": [[list(p) for p in hole] for hole in shape.holes],
    }


def load_mesh_source(path: Path) -> MeshSource:
    """Read a mesh pattern unit (STL, OBJ, ...) through trimesh."""
    if not path.is_file():
        raise ValueError(f"pattern mesh not found: {path}")
    try:
        mesh = trimesh.load(str(path), force="mesh")
    except Exception as exc:
        raise ValueError(f"pattern mesh {path} could not be read: {exc}") from exc
    return MeshSource(
        vertices=np.asarray(mesh.vertices, dtype=float),
        faces=np.asarray(mesh.faces, dtype=np.int64),
        bounds=np.asarray(mesh.bounds, dtype=float),
    )


def _pattern_source(data: Any, base_dir: Path):
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError("pattern: expected an object with 'shapes' or 'mesh'")
    if "mesh" in data:
        mesh_path = Path(data["mesh"])
        if not mesh_path.is_absolute():
            mesh_path = base_dir / mesh_path
        return load_mesh_source(mesh_path)
    if "shapes" in data:
        return PolygonalSource(shapes=shapes_from_json(data["shapes"], "pattern.shapes"))
    raise ValueError("pattern: expected 'shapes' or 'mesh'")


def _inlay_color(value: Any, key: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a colour string")
    return value


def _inlay_layers(data: Any) -> Tuple[InlayLayer, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ValueError("inlays: expected a list")
    layers = []
    for i, item in enumerate(data):
        where = f"inlays[{i}]"
        if not isinstance(item, dict):
            raise ValueError(f"{where}: expected an object")
        layers.append(InlayLayer(
            shapes=shapes_from_json(item.get("shapes"), f"{where}.shapes"),
            settings=inlay_settings_from_dict(item, where),
            name=str(item.get("name", "")),
            color=_inlay_color(item.get("color"), f"{where}.color"),
        ))
    return tuple(layers)


def request_from_dict(data: Dict[str, Any], base_dir: Path = Path(".")) -> CompositionRequest:
    if not isinstance(data, dict):
        raise ValueError("project: expected a JSON object")
    return CompositionRequest(
        settings=settings_from_dict(data.get("settings")),
        outline_shapes=shapes_from_json(data.get("outline"), "outline"),
        pattern=_pattern_source(data.get("pattern"), base_dir),
        inlays=_inlay_layers(data.get("inlays")),
    )


def load_project(path) -> CompositionRequest:
    """Load a project JSON file into a CompositionRequest."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise ValueError(f"cannot read project {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"project {path} is not valid JSON: {exc}") from exc
    request = request_from_dict(data, base_dir=path.parent)
    logger.info(
        "Loaded project %s: %d outline shape(s), %d inlay(s), pattern=%s",
        path.name,
        len(request.outline_shapes),
        len(request.inlays),
        type(request.pattern).__name__ if request.pattern is not None else "none",
    )
    return request
