"""
Render pipeline for outage markers and polygons.

``MapLayers`` owns every persistent item the map shows for outages:

  - the marker layer (rich markers, or bulk circles plus count labels),
  - the polygon overlay (only at or above POLYGON_VISIBLE_ZOOM),
  - an optional count-weighted heatmap, off by default,
  - a single highlight overlay for the outage the user is pointing at.

Marker renders triggered by data changes are debounced.  Marker and heatmap
renders requested while a zoom transition is playing are parked and replayed
once it ends.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Hashable, List, Optional, Union

from PyQt5 import QtCore, QtWidgets

from ..config import (
    BRAND_COLOR,
    BRAND_FILL,
    BRAND_HIGHLIGHT,
    BRAND_HIGHLIGHT_FILL,
    MapSettings,
)
from ..geo.outage import Event, Group
from ..geo.wkt import outline_rings, parse_wkt
from .markers import (
    CircleMarkerItem,
    ClusterLabelItem,
    HeatmapItem,
    OutageMarkerItem,
    polygon_path_item,
)
from .popup_data import PopupData, build_popup_data, build_tooltip_text
from .projector import SceneProjector
from .representation import (
    MarkerData,
    PolygonData,
    Representation,
    choose_representation,
    heat_points,
)

log = logging.getLogger(__name__)

MarkerItem = Union[OutageMarkerItem, CircleMarkerItem]
PopupBuilder = Callable[[Group], Optional[PopupData]]


class MapLayers(QtCore.QObject):
    """Persistent outage layers on a QGraphicsScene.

    Signals
    -------
    popup_opened(object, object)
        (group, popup data) when the user opens a marker's popup.
    markers_rendered(int)
        Number of markers drawn by the last real render.
    """

    popup_opened = QtCore.pyqtSignal(object, object)
    markers_rendered = QtCore.pyqtSignal(int)

    def __init__(
        self,
        scene: QtWidgets.QGraphicsScene,
        projector: Optional[SceneProjector] = None,
        popup_builder: PopupBuilder = build_popup_data,
        settings: Optional[MapSettings] = None,
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__(parent)
        self._scene = scene
        self._projector = projector or SceneProjector()
        self._popup_builder = popup_builder
        self._settings = settings or MapSettings()

        # User-facing toggles
        self.show_markers = True
        self.show_polygons = True
        self.show_heatmap = False

        # Zoom guard
        self.zooming = False
        self.render_pending = False
        self._pending_markers: Optional[List[MarkerData]] = None
        self.heatmap_pending = False
        self._pending_heat: Optional[List[MarkerData]] = None

        self.polygons_visible = False
        self.representation: Optional[Representation] = None

        self._marker_items: List[MarkerItem] = []
        self._label_items: List[ClusterLabelItem] = []
        self._polygon_items: List[QtWidgets.QGraphicsPathItem] = []
        self._heatmap_item: Optional[HeatmapItem] = None

        # Highlight tracking: outage id → containing marker / raw event
        self._outage_items: Dict[Hashable, MarkerItem] = {}
        self._outage_data: Dict[Hashable, Event] = {}
        self._highlight_id: Optional[Hashable] = None
        self._highlight_overlay: Optional[QtWidgets.QGraphicsPathItem] = None

        self._queued_markers: Optional[List[MarkerData]] = None
        self._debounce = QtCore.QTimer(self)
        self._debounce.setSingleShot(True)
        self._debounce.setInterval(self._settings.render_debounce_ms)
        self._debounce.timeout.connect(self._on_debounce)

    # ── Accessors ─────────────────────────────────────────────────────

    @property
    def marker_items(self) -> List[MarkerItem]:
        return list(self._marker_items)

    @property
    def label_items(self) -> List[ClusterLabelItem]:
        return list(self._label_items)

    @property
    def polygon_items(self) -> List[QtWidgets.QGraphicsPathItem]:
        return list(self._polygon_items)

    @property
    def heatmap_item(self) -> Optional[HeatmapItem]:
        return self._heatmap_item

    @property
    def highlighted_id(self) -> Optional[Hashable]:
        return self._highlight_id

    @property
    def highlight_overlay(self) -> Optional[QtWidgets.QGraphicsPathItem]:
        return self._highlight_overlay

    def item_for_outage(self, outage_id: Hashable) -> Optional[MarkerItem]:
        return self._outage_items.get(outage_id)

    def set_marker_opacity(self, opacity: float) -> None:
        """Fade every persistent marker item without removing it."""
        for item in self._marker_items + self._label_items:
            item.setOpacity(opacity)

    # ── Markers ───────────────────────────────────────────────────────

    def queue_marker_render(self, markers: List[MarkerData]) -> None:
        """Coalesce bursts of render requests into one render."""
        self._queued_markers = markers
        self._debounce.start()

    @property
    def render_queued(self) -> bool:
        return self._debounce.isActive()

    def cancel_queued_render(self) -> None:
        self._debounce.stop()
        self._queued_markers = None

    def _on_debounce(self) -> None:
        markers = self._queued_markers or []
        self._queued_markers = None
        self.render_markers(markers)

    def render_markers(self, markers: List[MarkerData]) -> None:
        if self.zooming:
            self.render_pending = True
            self._pending_markers = markers
            return
        self.render_pending = False
        self._pending_markers = None

        self.unhighlight_outage()
        self._clear_markers()

        if not self.show_markers:
            self.representation = None
            return

        rep = choose_representation(len(markers), self._settings.marker_threshold)
        self.representation = rep

        for marker in markers:
            pos = self._projector.to_scene(marker.lat, marker.lng)
            count = marker.count
            if rep is Representation.BULK:
                item: MarkerItem = CircleMarkerItem(marker.group, count, on_click=self.open_popup)
            else:
                item = OutageMarkerItem(marker.group, count)
                item.clicked.connect(self.open_popup)
            item.setPos(pos)
            item.setToolTip(build_tooltip_text(marker.group) if marker.group else "Outage")
            self._scene.addItem(item)
            self._marker_items.append(item)

            if marker.group is not None:
                for event in marker.group.events:
                    self._outage_items[event.id] = item
                    self._outage_data[event.id] = event

            if rep is Representation.BULK and count > 1:
                label = ClusterLabelItem(count)
                label.setPos(pos)
                self._scene.addItem(label)
                self._label_items.append(label)

        log.debug("Rendered %d markers (%s)", len(markers), rep.value)
        self.markers_rendered.emit(len(markers))

    def flush_pending(self) -> bool:
        """Replay renders that were parked during a zoom.  True if any ran."""
        if self.zooming:
            return False
        ran = False
        if self.render_pending:
            self.render_markers(self._pending_markers or [])
            ran = True
        if self.heatmap_pending:
            self.render_heatmap(self._pending_heat or [])
            ran = True
        return ran

    def _clear_markers(self) -> None:
        for item in self._marker_items + self._label_items:
            if item.scene() is self._scene:
                self._scene.removeItem(item)
        self._marker_items.clear()
        self._label_items.clear()
        self._outage_items.clear()
        self._outage_data.clear()

    # ── Heatmap ───────────────────────────────────────────────────────

    def render_heatmap(self, markers: List[MarkerData]) -> None:
        if self.zooming:
            self.heatmap_pending = True
            self._pending_heat = markers
            return
        self.heatmap_pending = False
        self._pending_heat = None

        self._clear_heatmap()
        if not self.show_heatmap or not markers:
            return

        points = [
            (self._projector.to_scene(p.lat, p.lng), p.intensity)
            for p in heat_points(markers)
        ]
        item = HeatmapItem(points, min_scale=float(2 ** self._settings.min_zoom))
        self._scene.addItem(item)
        self._heatmap_item = item
        log.debug("Rendered heatmap with %d points", len(points))

    def _clear_heatmap(self) -> None:
        if self._heatmap_item is not None:
            if self._heatmap_item.scene() is self._scene:
                self._scene.removeItem(self._heatmap_item)
            self._heatmap_item = None

    # ── Popups ────────────────────────────────────────────────────────

    def open_popup(self, item: MarkerItem) -> Optional[PopupData]:
        """Build (once) and announce the popup for *item*."""
        if item.group is None:
            return None
        if item.popup_data is None:
            item.popup_data = self._popup_builder(item.group)
        self.popup_opened.emit(item.group, item.popup_data)
        return item.popup_data

    # ── Polygons ──────────────────────────────────────────────────────

    def render_polygons(self, polygons: List[PolygonData], zoom: float) -> None:
        self._clear_polygons()
        self.polygons_visible = zoom >= self._settings.polygon_visible_zoom
        if not self.show_polygons or not self.polygons_visible or not polygons:
            return
        for poly in polygons:
            item = polygon_path_item(
                outline_rings(poly.geometry), self._projector.to_scene,
                BRAND_COLOR, BRAND_FILL,
            )
            item.setZValue(10)
            self._scene.addItem(item)
            self._polygon_items.append(item)

    def _clear_polygons(self) -> None:
        for item in self._polygon_items:
            if item.scene() is self._scene:
                self._scene.removeItem(item)
        self._polygon_items.clear()

    # ── Highlighting ──────────────────────────────────────────────────

    def highlight_outage(self, outage_id: Hashable) -> None:
        if self._highlight_id == outage_id:
            return
        self.unhighlight_outage()
        self._highlight_id = outage_id

        item = self._outage_items.get(outage_id)
        if item is not None:
            item.set_highlighted(True)

        event = self._outage_data.get(outage_id)
        geom = parse_wkt(event.polygon) if event is not None else None
        if geom is not None:
            overlay = polygon_path_item(
                outline_rings(geom), self._projector.to_scene,
                BRAND_HIGHLIGHT, BRAND_HIGHLIGHT_FILL, width=3.0,
            )
            overlay.setZValue(25)
            self._scene.addItem(overlay)
            self._highlight_overlay = overlay

    def unhighlight_outage(self) -> None:
        if self._highlight_id is None:
            return
        item = self._outage_items.get(self._highlight_id)
        if item is not None:
            item.set_highlighted(False)
        if self._highlight_overlay is not None:
            if self._highlight_overlay.scene() is self._scene:
                self._scene.removeItem(self._highlight_overlay)
            self._highlight_overlay = None
        self._highlight_id = None

    # ── Teardown ──────────────────────────────────────────────────────

    def cleanup(self) -> None:
        self.cancel_queued_render()
        self.unhighlight_outage()
        self._clear_markers()
        self._clear_polygons()
        self._clear_heatmap()
        self.render_pending = False
        self._pending_markers = None
        self.heatmap_pending = False
        self._pending_heat = None
