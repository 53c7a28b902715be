"""
Interactive manipulation of inlays.

Two separate paths:

- PreviewChannel carries transient, preview-only settings while a drag is
  in progress. Nothing is recomposed from it.
- SettingsStore holds the committed request. Only committed changes bump
  its version and notify subscribers (typically a CompositionController).

InlayDragSession ties them together: it starts from the placement the
resolver computes, streams previews while the pointer moves, and writes
one commit when the drag ends.
"""

from __future__ import annotations

import logging
import math
import queue
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

from gripplate.boundary import build_boundary_context
from gripplate.contracts import Anchor, CompositionRequest, InlaySettings
from gripplate.inlay_anchor import resolve_layer_offset

logger = logging.getLogger(__name__)

MIN_INLAY_SCALE = 0.1
# Below this pointer distance from the inlay origin, scale drags are ignored.
MIN_SCALE_GRAB = 0.1

Vec2 = Tuple[float, float]


@dataclass(frozen=True)
class PreviewSnapshot:
    inlay_index: int
    settings: InlaySettings


class PreviewChannel:
    """Queue of preview-only snapshots; consumers only need the newest."""

    def __init__(self):
        self._queue: "queue.Queue[PreviewSnapshot]" = queue.Queue()

    def publish(self, snapshot: PreviewSnapshot) -> None:
        self._queue.put(snapshot)

    def drain_latest(self) -> Optional[PreviewSnapshot]:
        latest = None
        while True:
            try:
                latest = self._queue.get_nowait()
            except queue.Empty:
                return latest


class SettingsStore:
    """Committed composition request plus a change counter."""

    def __init__(self, request: CompositionRequest):
        self._lock = threading.Lock()
        self._request = request
        self._version = 0
        self._subscribers: List[Callable[[CompositionRequest], None]] = []

    @property
    def request(self) -> CompositionRequest:
        with self._lock:
            return self._request

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def subscribe(self, callback: Callable[[CompositionRequest], None]) -> None:
        self._subscribers.append(callback)

    def commit(self, request: CompositionRequest) -> int:
        with self._lock:
            self._request = request
            self._version += 1
            version = self._version
        logger.debug("Committed settings version %d", version)
        for callback in list(self._subscribers):
            callback(request)
        return version

    def commit_inlay(self, index: int, settings: InlaySettings) -> int:
        request = self.request
        if not 0 <= index < len(request.inlays):
            raise IndexError(f"No inlay at index {index}")
        inlays = list(request.inlays)
        inlays[index] = replace(inlays[index], settings=settings)
        return self.commit(replace(request, inlays=tuple(inlays)))


class DragMode(str, Enum):
    MOVE = "move"
    SCALE = "scale"
    ROTATE = "rotate"


class InlayDragSession:
    """One pointer drag on an inlay handle."""

    def __init__(
        self,
        store: SettingsStore,
        channel: PreviewChannel,
        inlay_index: int,
        mode: DragMode = DragMode.MOVE,
    ):
        self.store = store
        self.channel = channel
        self.inlay_index = inlay_index
        self.mode = DragMode(mode)
        self.origin: Optional[Vec2] = None
        self._start_point: Optional[Vec2] = None
        self._start_settings: Optional[InlaySettings] = None
        self._current: Optional[InlaySettings] = None

    @property
    def active(self) -> bool:
        return self._start_point is not None

    def begin(self, point: Vec2) -> Vec2:
        """Start dragging at *point*; returns the inlay's effective origin."""
        request = self.store.request
        layer = request.inlays[self.inlay_index]
        outline = request.settings.outline
        boundary = build_boundary_context(
            tuple(request.outline_shapes), outline.size, outline.mirror, outline.rotation,
        )
        self.origin = resolve_layer_offset(layer, boundary.bounds)
        self._start_point = (float(point[0]), float(point[1]))
        self._start_settings = layer.settings
        self._current = None
        return self.origin

    def _settings_for(self, point: Vec2) -> Optional[InlaySettings]:
        start = self._start_settings
        ox, oy = self.origin
        sx, sy = self._start_point
        px, py = float(point[0]), float(point[1])

        if self.mode == DragMode.MOVE:
            return replace(
                start,
                anchor=Anchor.MANUAL,
                manual_x=ox + (px - sx),
                manual_y=oy + (py - sy),
            )
        if self.mode == DragMode.SCALE:
            start_dist = math.hypot(sx - ox, sy - oy)
            if start_dist <= MIN_SCALE_GRAB:
                return None
            ratio = math.hypot(px - ox, py - oy) / start_dist
            return replace(start, scale=max(MIN_INLAY_SCALE, start.scale * ratio))
        start_angle = math.atan2(sy - oy, sx - ox)
        angle = math.atan2(py - oy, px - ox)
        return replace(start, rotation=start.rotation + math.degrees(angle - start_angle))

    def move(self, point: Vec2) -> Optional[InlaySettings]:
        """Publish a preview for *point*. The store is not touched."""
        if not self.active:
            raise RuntimeError("Drag session not started")
        settings = self._settings_for(point)
        if settings is None:
            return None
        self._current = settings
        self.channel.publish(PreviewSnapshot(self.inlay_index, settings))
        return settings

    def end(self) -> Optional[int]:
        """Commit the last previewed settings; returns the new store version."""
        if not self.active:
            raise RuntimeError("Drag session not started")
        current = self._current
        self._start_point = None
        self._current = None
        if current is None:
            return None
        return self.store.commit_inlay(self.inlay_index, current)

    def cancel(self) -> None:
        self._start_point = None
        self._current = None
