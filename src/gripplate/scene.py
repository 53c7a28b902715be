"""
Arena of named solid slots.

Solids are keyed by a small enum-based key instead of by name. Each
composition stage owns one group; replacing a group swaps all of its
entries, waste solids included, in one locked step so readers never see
a mix of old and new geometry.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import trimesh

logger = logging.getLogger(__name__)


class SlotKind(Enum):
    BASE = "base"
    PATTERN = "pattern"
    INLAY = "inlay"
    WASTE = "waste"


class WasteKind(Enum):
    """What a waste solid was cut by."""
    PATTERN_EXCLUSION = "pattern_exclusion"
    PATTERN_HOLES = "pattern_holes"
    PATTERN_CLIP = "pattern_clip"
    PATTERN_HEIGHT_CAP = "pattern_height_cap"
    INLAY_HOLES = "inlay_holes"
    INLAY_CLIP = "inlay_clip"


GROUP_BASE = "base"
GROUP_PATTERN = "pattern"
GROUP_INLAYS = "inlays"
GROUPS = (GROUP_BASE, GROUP_PATTERN, GROUP_INLAYS)


@dataclass(frozen=True)
class SlotKey:
    kind: SlotKind
    index: int = 0
    waste: Optional[WasteKind] = None

    @property
    def name(self) -> str:
        if self.kind == SlotKind.BASE:
            return "Base"
        if self.kind == SlotKind.PATTERN:
            return "Pattern"
        if self.kind == SlotKind.INLAY:
            return f"Inlay_{self.index}"
        return f"Waste_{self.waste.value}_{self.index}"

    @classmethod
    def base(cls) -> "SlotKey":
        return cls(SlotKind.BASE)

    @classmethod
    def pattern(cls) -> "SlotKey":
        return cls(SlotKind.PATTERN)

    @classmethod
    def inlay(cls, index: int) -> "SlotKey":
        return cls(SlotKind.INLAY, index)

    @classmethod
    def debug_waste(cls, waste: WasteKind, index: int = 0) -> "SlotKey":
        return cls(SlotKind.WASTE, index, waste)


@dataclass
class SolidEntry:
    key: SlotKey
    mesh: trimesh.Trimesh
    group: str
    visible: bool = True
    color: Optional[str] = None

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def is_waste(self) -> bool:
        return self.key.kind == SlotKind.WASTE


class SolidArena:
    """Thread-safe set of solid slots, replaced one group at a time."""

    def __init__(self):
        self._lock = threading.Lock()
        self._slots: Dict[SlotKey, SolidEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def __contains__(self, key: SlotKey) -> bool:
        with self._lock:
            return key in self._slots

    def get(self, key: SlotKey) -> Optional[SolidEntry]:
        with self._lock:
            return self._slots.get(key)

    def entries(self, group: Optional[str] = None) -> List[SolidEntry]:
        with self._lock:
            return [
                e for e in self._slots.values() if group is None or e.group == group
            ]

    def replace_group(self, group: str, entries: Iterable[SolidEntry]) -> None:
        """Drop every entry of *group*, then insert *entries*."""
        self.replace_groups({group: entries})

    def replace_groups(
        self,
        groups: Mapping[str, Iterable[SolidEntry]],
        accept: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Replace several groups in one locked step.

        *accept* is evaluated while the lock is held; when it returns False
        nothing is changed and False is returned.
        """
        checked = {}
        for group, entries in groups.items():
            new_entries = list(entries)
            for entry in new_entries:
                if entry.group != group:
                    raise ValueError(
                        f"Entry {entry.name} belongs to group {entry.group!r}, not {group!r}"
                    )
            checked[group] = new_entries

        counts = []
        with self._lock:
            if accept is not None and not accept():
                return False
            for group, new_entries in checked.items():
                stale = [k for k, e in self._slots.items() if e.group == group]
                for key in stale:
                    del self._slots[key]
                for entry in new_entries:
                    self._slots[entry.key] = entry
                counts.append((group, len(stale), len(new_entries)))
        for group, removed, added in counts:
            logger.debug("Replaced group %s: %d removed, %d added", group, removed, added)
        return True

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()

    def exportable(self, include_debug: bool = False) -> Dict[str, trimesh.Trimesh]:
        """Named solids for a mesh exporter; waste only when asked for."""
        with self._lock:
            return {
                e.name: e.mesh
                for e in self._slots.values()
                if include_debug or not e.is_waste
            }
