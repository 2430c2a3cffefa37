"""
Scene/screen projection for the map view.

Scene coordinates are Web Mercator world pixels at zoom 0 (a 256 px wide
world); the view's transform scales them by ``2**zoom``.  Screen
coordinates are viewport pixels.  Without a view (headless rendering)
screen and scene coordinates coincide.
"""
from __future__ import annotations

from typing import Optional, Tuple

from PyQt5 import QtCore, QtWidgets

from ..geo.projection import world_pixel


class SceneProjector:

    def __init__(self, view: Optional[QtWidgets.QGraphicsView] = None):
        self._view = view

    def to_scene(self, lat: float, lon: float) -> QtCore.QPointF:
        x, y = world_pixel(lat, lon, 0)
        return QtCore.QPointF(x, y)

    def to_screen(self, lat: float, lon: float) -> Tuple[float, float]:
        p = self.to_scene(lat, lon)
        if self._view is not None:
            p = self._view.viewportTransform().map(p)
        return p.x(), p.y()

    def screen_to_scene(self, x: float, y: float) -> QtCore.QPointF:
        p = QtCore.QPointF(x, y)
        if self._view is None:
            return p
        inverse, invertible = self._view.viewportTransform().inverted()
        return inverse.map(p) if invertible else p
