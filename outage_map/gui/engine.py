"""
Clustering engine: wires the bucket cache, render layers and animator.

The host widget feeds it two inputs, the current event list and the
integer zoom of the view, and the engine keeps the scene in step:

  - ``set_events`` schedules a rebuild on the next idle event-loop turn;
    only the newest request is applied, and applying it cancels any
    running zoom animation before the cache is swapped.
  - ``set_zoom`` plays the split/merge transition for single-step zooms
    and then re-renders the persistent layers for the new level.

Usage
-----
    engine = ClusterMapEngine(scene, SceneProjector(view))
    engine.set_events(events)
    engine.set_zoom(11)
"""
from __future__ import annotations

import logging
from typing import Hashable, Iterable, List, Optional

from PyQt5 import QtCore, QtWidgets

from ..config import MapSettings
from ..geo.buckets import BucketCache, MergeFn, round_zoom
from ..geo.outage import Event, Group
from ..geo.wkt import merge_polygons
from .animator import ClusterTransitionAnimator
from .layers import MapLayers, PopupBuilder
from .popup_data import build_popup_data
from .projector import SceneProjector
from .representation import markers_for, polygons_for

log = logging.getLogger(__name__)


class ClusterMapEngine(QtCore.QObject):
    """Keeps outage markers on *scene* in step with events and zoom.

    Signals
    -------
    buckets_ready(int)
        A rebuild was applied; carries the group count at the current zoom.
    zoom_changed(int)
        The engine moved to a new integer zoom.
    """

    buckets_ready = QtCore.pyqtSignal(int)
    zoom_changed = QtCore.pyqtSignal(int)

    def __init__(
        self,
        scene: QtWidgets.QGraphicsScene,
        projector: Optional[SceneProjector] = None,
        settings: Optional[MapSettings] = None,
        zoom: Optional[int] = None,
        merge: MergeFn = merge_polygons,
        popup_builder: PopupBuilder = build_popup_data,
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__(parent)
        self.settings = settings or MapSettings()
        self.projector = projector = projector or SceneProjector()

        self.cache = BucketCache(
            merge=merge,
            radius_px=self.settings.cluster_radius_px,
            min_zoom=self.settings.min_zoom,
            max_zoom=self.settings.max_zoom,
            bbox=self.settings.service_area_bbox,
        )
        self.layers = MapLayers(scene, projector, popup_builder, self.settings, parent=self)
        self.animator = ClusterTransitionAnimator(
            scene, self.cache, projector, self.layers, self.settings, parent=self,
        )

        self._zoom = self._clamp(self.settings.min_zoom if zoom is None else zoom)
        self._build_generation = 0

    # ── State ─────────────────────────────────────────────────────────

    @property
    def zoom(self) -> int:
        return self._zoom

    def _clamp(self, zoom: float) -> int:
        return max(self.settings.min_zoom, min(self.settings.max_zoom, round_zoom(zoom)))

    def current_groups(self) -> List[Group]:
        """Groups at the current zoom with geometry hydrated."""
        return self.cache.lookup(self._zoom)

    # ── Data ──────────────────────────────────────────────────────────

    def set_events(self, events: Iterable[Event]) -> None:
        events = list(events)
        self._build_generation += 1
        generation = self._build_generation

        if not events:
            self._cancel_animation()
            self.cache.clear()
            self._render_now()
            self.buckets_ready.emit(0)
            return

        QtCore.QTimer.singleShot(0, lambda: self._apply_build(generation, events))

    def _apply_build(self, generation: int, events: List[Event]) -> None:
        if generation != self._build_generation:
            log.debug("Skipping stale build %d (newest %d)", generation, self._build_generation)
            return
        self._cancel_animation()
        self.cache.build(events)
        groups = self.current_groups()
        markers = markers_for(groups)
        self.layers.queue_marker_render(markers)
        self.layers.render_heatmap(markers)
        self.layers.render_polygons(polygons_for(groups), self._zoom)
        log.info("Applied build %d: %d groups at zoom %d", generation, len(groups), self._zoom)
        self.buckets_ready.emit(len(groups))

    # ── Zoom ──────────────────────────────────────────────────────────

    def set_zoom(self, zoom: float) -> None:
        target = self._clamp(zoom)
        if target == self._zoom:
            return
        previous, self._zoom = self._zoom, target
        self.zoom_changed.emit(target)
        self.layers.zooming = True
        self.animator.animate(previous, target, self._on_zoom_settled)

    def _on_zoom_settled(self) -> None:
        self.layers.zooming = False
        # A fresh render for the new zoom supersedes anything queued or parked
        self.layers.cancel_queued_render()
        self._render_now()
        self.layers.flush_pending()

    def _cancel_animation(self) -> None:
        if self.animator.is_animating:
            self.animator.cancel()
        self.layers.zooming = False

    def refresh(self) -> None:
        """Re-render the persistent layers (e.g. after a visibility toggle)."""
        if self.layers.zooming:
            self.layers.render_pending = True
            self.layers.heatmap_pending = True
            return
        self._render_now()

    def _render_now(self) -> None:
        groups = self.current_groups()
        markers = markers_for(groups)
        self.layers.render_markers(markers)
        self.layers.render_heatmap(markers)
        self.layers.render_polygons(polygons_for(groups), self._zoom)

    # ── Highlighting ──────────────────────────────────────────────────

    def highlight_outage(self, outage_id: Hashable) -> None:
        self.layers.highlight_outage(outage_id)

    def unhighlight_outage(self) -> None:
        self.layers.unhighlight_outage()

    def cleanup(self) -> None:
        self._build_generation += 1
        self._cancel_animation()
        self.layers.cleanup()
