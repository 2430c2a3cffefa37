"""
Outage map widget: QGraphicsScene-based view of clustered outage events.

Renders outage events as clustered markers on a Web Mercator scene with:
  - cluster markers that split and merge as the zoom steps in and out
  - bulk circles with count labels once the marker count gets large
  - affected-area polygons from zoom 5 upwards
  - a detail line showing the popup of the last clicked marker

Coordinate system: scene units are Web Mercator world pixels at zoom 0
(256 px world); the view transform is a uniform ``2**zoom`` scale, so the
integer zoom the engine clusters at is always exact.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from PyQt5 import QtCore, QtGui, QtWidgets

from ..config import MapSettings
from ..geo.outage import Event
from ..geo.projection import TILE_SIZE
from .engine import ClusterMapEngine
from .projector import SceneProjector

log = logging.getLogger(__name__)

_BTN_SS = (
    "QPushButton { background: rgba(6,10,16,180); color: #7f99a8; "
    "border: 1px solid rgba(12,26,46,180); padding: 2px 8px; font-size: 10px; }"
    "QPushButton:hover { background: rgba(16,42,64,200); color: #18b8a6; }"
    "QPushButton:checked { background: rgba(0,40,36,200); "
    "color: #18b8a6; border: 1px solid #18b8a6; }"
)


class OutageMapWidget(QtWidgets.QWidget):
    """Interactive outage map.

    Signals
    -------
    outage_selected(object)
        Emitted with the group whose popup the user opened.
    """

    outage_selected = QtCore.pyqtSignal(object)

    def __init__(
        self,
        settings: Optional[MapSettings] = None,
        zoom: Optional[int] = None,
        parent: Optional[QtWidgets.QWidget] = None,
    ):
        super().__init__(parent)
        self._settings = settings or MapSettings()
        self._event_count = 0
        self._initial_fit_done = False

        # Build scene
        self._scene = QtWidgets.QGraphicsScene(self)
        self._scene.setSceneRect(0, 0, TILE_SIZE, TILE_SIZE)
        self._scene.setBackgroundBrush(QtGui.QBrush(QtGui.QColor(10, 14, 20)))

        # Build view
        self._view = QtWidgets.QGraphicsView(self._scene, self)
        self._view.setRenderHints(
            QtGui.QPainter.Antialiasing | QtGui.QPainter.SmoothPixmapTransform
        )
        self._view.setDragMode(QtWidgets.QGraphicsView.ScrollHandDrag)
        self._view.setTransformationAnchor(QtWidgets.QGraphicsView.AnchorUnderMouse)
        self._view.setResizeAnchor(QtWidgets.QGraphicsView.AnchorViewCenter)
        self._view.setHorizontalScrollBarPolicy(QtCore.Qt.ScrollBarAlwaysOff)
        self._view.setVerticalScrollBarPolicy(QtCore.Qt.ScrollBarAlwaysOff)
        self._view.setViewportUpdateMode(
            QtWidgets.QGraphicsView.MinimalViewportUpdate
        )
        self._view.setOptimizationFlag(
            QtWidgets.QGraphicsView.DontSavePainterState, True
        )
        self._view.setStyleSheet("border: none; background: #0a0e14;")

        self._engine = ClusterMapEngine(
            self._scene, SceneProjector(self._view), self._settings, zoom=zoom, parent=self,
        )
        self._apply_view_scale()
        self._view.viewport().installEventFilter(self)

        # ── Layout: view fills entire widget, controls float on top ──
        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)
        layout.addWidget(self._view, 1)

        self._overlay_top = QtWidgets.QWidget(self._view)
        self._overlay_top.setStyleSheet("background: transparent;")
        otl = QtWidgets.QHBoxLayout(self._overlay_top)
        otl.setContentsMargins(6, 4, 6, 0)
        otl.setSpacing(4)

        self._info_label = QtWidgets.QLabel("")
        self._info_label.setStyleSheet(
            "color: rgba(24,184,166,220); font-size: 11px; "
            "padding: 2px 4px; background: transparent;"
        )
        otl.addWidget(self._info_label)
        otl.addStretch(1)

        self._btn_markers = QtWidgets.QPushButton("Markers")
        self._btn_markers.setCheckable(True)
        self._btn_markers.setChecked(True)
        self._btn_markers.setStyleSheet(_BTN_SS)
        self._btn_markers.toggled.connect(self._on_markers_toggled)
        otl.addWidget(self._btn_markers)

        self._btn_polygons = QtWidgets.QPushButton("Areas")
        self._btn_polygons.setCheckable(True)
        self._btn_polygons.setChecked(True)
        self._btn_polygons.setStyleSheet(_BTN_SS)
        self._btn_polygons.toggled.connect(self._on_polygons_toggled)
        otl.addWidget(self._btn_polygons)

        self._btn_heatmap = QtWidgets.QPushButton("Heat")
        self._btn_heatmap.setCheckable(True)
        self._btn_heatmap.setChecked(False)
        self._btn_heatmap.setStyleSheet(_BTN_SS)
        self._btn_heatmap.toggled.connect(self._on_heatmap_toggled)
        otl.addWidget(self._btn_heatmap)

        btn_fit = QtWidgets.QPushButton("Fit")
        btn_fit.setStyleSheet(_BTN_SS)
        btn_fit.clicked.connect(self.fit_to_events)
        otl.addWidget(btn_fit)

        self._overlay_bottom = QtWidgets.QWidget(self._view)
        self._overlay_bottom.setAttribute(QtCore.Qt.WA_TransparentForMouseEvents, True)
        self._overlay_bottom.setStyleSheet("background: transparent;")
        obl = QtWidgets.QVBoxLayout(self._overlay_bottom)
        obl.setContentsMargins(6, 0, 6, 4)

        self._detail_label = QtWidgets.QLabel("")
        self._detail_label.setStyleSheet(
            "color: rgba(170,190,200,230); font-size: 10px; "
            "padding: 1px 4px; background: transparent;"
        )
        self._detail_label.setAlignment(QtCore.Qt.AlignLeft | QtCore.Qt.AlignBottom)
        obl.addWidget(self._detail_label)

        # Connect signals
        self._engine.layers.popup_opened.connect(self._on_popup_opened)
        self._engine.buckets_ready.connect(self._on_buckets_ready)
        self._engine.zoom_changed.connect(self._update_info)
        self._update_info()

    # ── Public API ────────────────────────────────────────────────────

    @property
    def engine(self) -> ClusterMapEngine:
        return self._engine

    @property
    def view(self) -> QtWidgets.QGraphicsView:
        return self._view

    def set_events(self, events: Iterable[Event]) -> None:
        events = list(events)
        self._event_count = len(events)
        log.info("Map received %d outage events", len(events))
        self._engine.set_events(events)

    def set_zoom(self, zoom: int) -> None:
        """Jump to *zoom*, keeping the view centre fixed."""
        self._view.setTransformationAnchor(QtWidgets.QGraphicsView.AnchorViewCenter)
        self._step_to(zoom)
        self._view.setTransformationAnchor(QtWidgets.QGraphicsView.AnchorUnderMouse)

    def center_on(self, lat: float, lon: float) -> None:
        self._view.centerOn(self._engine.projector.to_scene(lat, lon))

    def fit_to_events(self) -> None:
        """Centre the view on the current groups."""
        groups = self._engine.current_groups()
        if not groups:
            return
        lat = sum(g.center[0] for g in groups) / len(groups)
        lon = sum(g.center[1] for g in groups) / len(groups)
        self.center_on(lat, lon)

    def set_info(self, text: str) -> None:
        self._info_label.setText(text)

    # ── Zoom handling ─────────────────────────────────────────────────

    def _apply_view_scale(self) -> None:
        scale = float(2 ** self._engine.zoom)
        self._view.setTransform(QtGui.QTransform.fromScale(scale, scale))

    def _step_to(self, zoom: int) -> None:
        zoom = max(self._settings.min_zoom, min(self._settings.max_zoom, int(zoom)))
        if zoom == self._engine.zoom:
            return
        factor = float(2 ** (zoom - self._engine.zoom))
        # Scale first so the transition is planned against the new view
        self._view.scale(factor, factor)
        self._engine.set_zoom(zoom)

    def wheelEvent(self, event):
        """One zoom level per wheel notch, anchored under the mouse cursor."""
        step = 1 if event.angleDelta().y() > 0 else -1
        self._step_to(self._engine.zoom + step)
        event.accept()

    def eventFilter(self, obj, event):
        # The view would scroll on wheel input; zoom instead
        if obj is self._view.viewport() and event.type() == QtCore.QEvent.Wheel:
            self.wheelEvent(event)
            return True
        return super().eventFilter(obj, event)

    # ── Event handlers ────────────────────────────────────────────────

    def _on_markers_toggled(self, checked: bool) -> None:
        self._engine.layers.show_markers = checked
        self._engine.refresh()

    def _on_polygons_toggled(self, checked: bool) -> None:
        self._engine.layers.show_polygons = checked
        self._engine.refresh()

    def _on_heatmap_toggled(self, checked: bool) -> None:
        self._engine.layers.show_heatmap = checked
        self._engine.refresh()

    def _on_popup_opened(self, group, popup) -> None:
        if popup is not None:
            self._detail_label.setText(popup.as_text())
        self.outage_selected.emit(group)

    def _on_buckets_ready(self, group_count: int) -> None:
        # First non-empty build: bring the outages into view
        if group_count and not self._initial_fit_done:
            self._initial_fit_done = True
            self.fit_to_events()
        self._update_info()

    def _update_info(self, *_args) -> None:
        self.set_info(f"{self._event_count} outages  |  zoom {self._engine.zoom}")

    def resizeEvent(self, event):
        """Reposition floating overlays."""
        super().resizeEvent(event)
        vw = self._view.width()
        vh = self._view.height()
        self._overlay_top.setGeometry(0, 0, vw, 30)
        self._overlay_bottom.setGeometry(0, max(0, vh - 120), vw, 120)
