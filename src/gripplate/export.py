"""Write the arena's named solids to disk through trimesh's exporters."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List

from gripplate.scene import SolidArena

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("stl", "obj", "ply", "glb", "off")
MANIFEST_NAME = "manifest.json"


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def export_solids(
    arena: SolidArena,
    out_dir,
    include_debug: bool = False,
    file_type: str = "stl",
) -> List[Path]:
    """Export one file per named solid plus a JSON manifest.

    Waste solids are written only with ``include_debug``. Returns the
    solid file paths in name order.
    """
    file_type = file_type.lower()
    if file_type not in SUPPORTED_FORMATS:
        raise ValueError(
            f"Unsupported export format {file_type!r} (expected one of: {', '.join(SUPPORTED_FORMATS)})"
        )
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    solids = arena.exportable(include_debug=include_debug)
    written: List[Path] = []
    entries = []
    for name in sorted(solids):
        mesh = solids[name]
        path = out / f"{name}.{file_type}"
        mesh.export(str(path), file_type=file_type)
        written.append(path)
        entries.append({
            "name": name,
            "file": path.name,
            "vertices": int(len(mesh.vertices)),
            "faces": int(len(mesh.faces)),
            "watertight": bool(mesh.is_watertight),
            "bounds": [[float(v) for v in mesh.bounds[0]], [float(v) for v in mesh.bounds[1]]],
        })
        logger.debug("Exported %s (%d faces)", path, len(mesh.faces))

    write_json(out / MANIFEST_NAME, {
        "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "format": file_type,
        "include_debug": include_debug,
        "solids": entries,
    })
    logger.info("Exported %d solid(s) to %s", len(written), out)
    return written
