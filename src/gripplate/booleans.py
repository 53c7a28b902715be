"""Guarded boolean operations with waste (removed material) output.

Every call is isolated: a failing evaluation is logged and reported, and
the caller keeps the operand it had before the call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import trimesh

logger = logging.getLogger(__name__)

BOOLEAN_ENGINE = "manifold"


def is_empty_mesh(mesh: Optional[trimesh.Trimesh]) -> bool:
    return mesh is None or len(mesh.vertices) == 0 or len(mesh.faces) == 0


@dataclass
class BooleanOutcome:
    """Result of one guarded operation.

    ``result`` is the new operand (the original one on failure, None when
    the operation legitimately removed everything). ``waste`` is the piece
    that was cut away.
    """

    result: Optional[trimesh.Trimesh]
    waste: Optional[trimesh.Trimesh] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def _run(op: str, a: trimesh.Trimesh, b: trimesh.Trimesh) -> Optional[trimesh.Trimesh]:
    if op == "difference":
        out = trimesh.boolean.difference([a, b], engine=BOOLEAN_ENGINE)
    else:
        out = trimesh.boolean.intersection([a, b], engine=BOOLEAN_ENGINE)
    return None if is_empty_mesh(out) else out


def _guarded(
    label: str,
    keep_op: str,
    waste_op: str,
    operand: Optional[trimesh.Trimesh],
    cutter: Optional[trimesh.Trimesh],
    with_waste: bool,
) -> BooleanOutcome:
    if is_empty_mesh(operand) or is_empty_mesh(cutter):
        return BooleanOutcome(result=operand)
    try:
        result = _run(keep_op, operand, cutter)
    except Exception as exc:
        logger.warning("Boolean %s failed; keeping previous operand: %s", label, exc)
        return BooleanOutcome(result=operand, error=f"{label}: {exc}")

    waste = None
    if with_waste:
        try:
            waste = _run(waste_op, operand, cutter)
        except Exception as exc:
            # Waste is debug-only; the kept result is still good.
            logger.debug("Waste for %s not computed: %s", label, exc)
    return BooleanOutcome(result=result, waste=waste)


def subtract(
    operand: Optional[trimesh.Trimesh],
    cutter: Optional[trimesh.Trimesh],
    label: str = "subtract",
    with_waste: bool = True,
) -> BooleanOutcome:
    """``operand - cutter``; waste is ``operand ∩ cutter``."""
    return _guarded(label, "difference", "intersection", operand, cutter, with_waste)


def intersect(
    operand: Optional[trimesh.Trimesh],
    cutter: Optional[trimesh.Trimesh],
    label: str = "intersect",
    with_waste: bool = True,
) -> BooleanOutcome:
    """``operand ∩ cutter``; waste is ``operand - cutter``."""
    return _guarded(label, "intersection", "difference", operand, cutter, with_waste)
