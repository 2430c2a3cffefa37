"""
Graphics items for outage markers.

Two marker flavours share the same group payload, and a heat layer sits
under them:

  - ``OutageMarkerItem``: rich marker (pulse dot or ringed cluster badge)
    with hover and highlight styling.  Drawn one at a time, which is what
    makes it animatable.
  - ``CircleMarkerItem``: plain filled circle for the bulk representation,
    paired with a ``ClusterLabelItem`` count overlay for clusters.
  - ``HeatmapItem``: one item painting a soft radial spot per marker,
    coloured by its count weight.

Markers and labels ignore the view transform so they keep a constant pixel
size while the map zooms underneath them.
"""
from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from PyQt5 import QtCore, QtGui, QtWidgets

from ..config import (
    BRAND_COLOR,
    BRAND_FILL,
    BRAND_HIGHLIGHT,
    BRAND_HIGHLIGHT_FILL,
    BRAND_OUTAGE_COLOR,
    HEATMAP_BLUR_PX,
    HEATMAP_MIN_OPACITY,
    HEATMAP_RADIUS_PX,
)
from ..geo.outage import Group
from .representation import circle_marker_radius, cluster_icon_size, heat_color

_SINGLE_SIZE = 20


def _qcolor(rgba: Tuple[int, int, int, int]) -> QtGui.QColor:
    return QtGui.QColor(*rgba)


class OutageMarkerItem(QtWidgets.QGraphicsObject):
    """Rich marker for one group.

    Signals
    -------
    clicked(object)
        Emitted with the item itself on left click.
    """

    clicked = QtCore.pyqtSignal(object)

    def __init__(self, group: Optional[Group], count: int = 1, interactive: bool = True):
        super().__init__()
        self.group = group
        self.count = group.count if group is not None else count
        self.popup_data = None      # built on first open
        self._hovered = False
        self._highlighted = False

        size = cluster_icon_size(self.count) if self.count > 1 else _SINGLE_SIZE
        self._rect = QtCore.QRectF(-size / 2.0, -size / 2.0, size, size)

        self.setFlag(QtWidgets.QGraphicsItem.ItemIgnoresTransformations, True)
        self.setZValue(20)
        if interactive:
            self.setAcceptHoverEvents(True)
            self.setCursor(QtCore.Qt.PointingHandCursor)
        else:
            self.setAcceptHoverEvents(False)
            self.setAcceptedMouseButtons(QtCore.Qt.NoButton)

    @property
    def highlighted(self) -> bool:
        return self._highlighted

    def set_highlighted(self, on: bool) -> None:
        if self._highlighted != on:
            self._highlighted = on
            self.setZValue(30 if on else 20)
            self.update()

    def boundingRect(self) -> QtCore.QRectF:
        return self._rect

    def paint(self, painter: QtGui.QPainter, option, widget=None) -> None:
        r = self._rect
        painter.setRenderHint(QtGui.QPainter.Antialiasing, True)
        if self._highlighted:
            stroke, fill = _qcolor(BRAND_HIGHLIGHT), _qcolor(BRAND_HIGHLIGHT_FILL)
        elif self.count > 1:
            stroke, fill = _qcolor(BRAND_COLOR), _qcolor(BRAND_FILL)
        else:
            stroke, fill = _qcolor(BRAND_OUTAGE_COLOR), _qcolor(BRAND_FILL)

        if self.count > 1:
            # Outer ring, solid core, count
            painter.setPen(QtCore.Qt.NoPen)
            painter.setBrush(fill)
            painter.drawEllipse(r)
            core = r.adjusted(r.width() * 0.15, r.height() * 0.15,
                              -r.width() * 0.15, -r.height() * 0.15)
            painter.setBrush(stroke)
            painter.drawEllipse(core)
            font = painter.font()
            font.setPixelSize(max(9, int(core.height() * 0.45)))
            font.setBold(True)
            painter.setFont(font)
            painter.setPen(QtGui.QColor(255, 255, 255))
            painter.drawText(core, QtCore.Qt.AlignCenter, str(self.count))
        else:
            # Pulse halo and dot
            painter.setPen(QtCore.Qt.NoPen)
            halo = QtGui.QColor(stroke)
            halo.setAlpha(90 if self._hovered else 60)
            painter.setBrush(halo)
            painter.drawEllipse(r)
            dot = r.adjusted(5, 5, -5, -5)
            pen = QtGui.QPen(QtGui.QColor(255, 255, 255))
            pen.setWidthF(1.5)
            painter.setPen(pen)
            painter.setBrush(stroke)
            painter.drawEllipse(dot)

        if self._hovered and not self._highlighted:
            pen = QtGui.QPen(QtGui.QColor(255, 255, 255, 200))
            pen.setWidthF(1.0)
            painter.setPen(pen)
            painter.setBrush(QtCore.Qt.NoBrush)
            painter.drawEllipse(r.adjusted(0.5, 0.5, -0.5, -0.5))

    def hoverEnterEvent(self, event):
        self._hovered = True
        self.update()
        super().hoverEnterEvent(event)

    def hoverLeaveEvent(self, event):
        self._hovered = False
        self.update()
        super().hoverLeaveEvent(event)

    def mousePressEvent(self, event):
        if event.button() == QtCore.Qt.LeftButton:
            self.clicked.emit(self)
            event.accept()
            return
        super().mousePressEvent(event)


class CircleMarkerItem(QtWidgets.QGraphicsEllipseItem):
    """Lightweight circle for the bulk representation."""

    def __init__(self, group: Optional[Group], count: int = 1,
                 on_click: Optional[Callable[["CircleMarkerItem"], None]] = None):
        radius = circle_marker_radius(group.count if group is not None else count)
        super().__init__(-radius, -radius, radius * 2, radius * 2)
        self.group = group
        self.count = group.count if group is not None else count
        self.popup_data = None
        self._on_click = on_click
        self._highlighted = False
        self.setFlag(QtWidgets.QGraphicsItem.ItemIgnoresTransformations, True)
        self.setZValue(20)
        self._apply_style()

    @property
    def highlighted(self) -> bool:
        return self._highlighted

    def set_highlighted(self, on: bool) -> None:
        if self._highlighted != on:
            self._highlighted = on
            self._apply_style()

    def _apply_style(self) -> None:
        if self._highlighted:
            color = _qcolor(BRAND_HIGHLIGHT)
            pen = QtGui.QPen(color)
            pen.setWidthF(3.0)
            fill = QtGui.QColor(color)
        else:
            color = _qcolor(BRAND_COLOR)
            pen = QtGui.QPen(color)
            pen.setWidthF(2.0)
            fill = QtGui.QColor(color)
            fill.setAlphaF(0.8)
        self.setPen(pen)
        self.setBrush(QtGui.QBrush(fill))
        self.setZValue(30 if self._highlighted else 20)

    def mousePressEvent(self, event):
        if event.button() == QtCore.Qt.LeftButton and self._on_click is not None:
            self._on_click(self)
            event.accept()
            return
        super().mousePressEvent(event)


class ClusterLabelItem(QtWidgets.QGraphicsSimpleTextItem):
    """Count label drawn over a bulk circle; never takes mouse input."""

    def __init__(self, count: int):
        super().__init__(str(count))
        font = self.font()
        font.setPixelSize(10)
        font.setBold(True)
        self.setFont(font)
        self.setBrush(QtGui.QBrush(QtGui.QColor(255, 255, 255)))
        self.setFlag(QtWidgets.QGraphicsItem.ItemIgnoresTransformations, True)
        self.setAcceptedMouseButtons(QtCore.Qt.NoButton)
        self.setAcceptHoverEvents(False)
        br = self.boundingRect()
        # Centre the text on the item position
        self.setTransform(QtGui.QTransform.fromTranslate(-br.width() / 2, -br.height() / 2))
        self.setZValue(21)


class HeatmapItem(QtWidgets.QGraphicsItem):
    """Count-weighted heat spots in scene coordinates.

    Spots keep a constant on-screen radius: ``paint`` divides the pixel
    radius by the current view scale.  ``min_scale`` is the smallest view
    scale the item will be shown at and sizes the bounding rect.
    """

    def __init__(
        self,
        points: Sequence[Tuple[QtCore.QPointF, float]],
        min_scale: float = 1.0,
        radius_px: float = HEATMAP_RADIUS_PX,
        blur_px: float = HEATMAP_BLUR_PX,
        min_opacity: float = HEATMAP_MIN_OPACITY,
    ):
        super().__init__()
        self.points = list(points)
        self._radius_px = radius_px
        self._blur_px = blur_px
        self._min_opacity = min_opacity

        pad = (radius_px + blur_px) / max(min_scale, 1e-9)
        rect = QtCore.QRectF()
        for pos, _ in self.points:
            rect = rect.united(QtCore.QRectF(pos.x() - pad, pos.y() - pad, 2 * pad, 2 * pad))
        self._rect = rect

        self.setAcceptedMouseButtons(QtCore.Qt.NoButton)
        self.setAcceptHoverEvents(False)
        self.setZValue(5)

    def boundingRect(self) -> QtCore.QRectF:
        return self._rect

    def paint(self, painter: QtGui.QPainter, option, widget=None) -> None:
        scale = abs(painter.worldTransform().m11()) or 1.0
        outer = (self._radius_px + self._blur_px) / scale
        core = self._radius_px / (self._radius_px + self._blur_px)
        painter.setPen(QtCore.Qt.NoPen)
        for pos, intensity in self.points:
            colour = _qcolor(heat_color(intensity))
            colour.setAlphaF(colour.alphaF() * max(self._min_opacity, intensity))
            soft = QtGui.QColor(colour)
            soft.setAlphaF(colour.alphaF() * 0.35)
            clear = QtGui.QColor(colour)
            clear.setAlpha(0)

            grad = QtGui.QRadialGradient(pos, outer)
            grad.setColorAt(0.0, colour)
            grad.setColorAt(core, soft)
            grad.setColorAt(1.0, clear)
            painter.setBrush(QtGui.QBrush(grad))
            painter.drawEllipse(pos, outer, outer)


def polygon_path_item(
    rings: Iterable[Sequence[Tuple[float, float]]],
    to_scene: Callable[[float, float], QtCore.QPointF],
    stroke: Tuple[int, int, int, int],
    fill: Tuple[int, int, int, int],
    width: float = 2.0,
) -> QtWidgets.QGraphicsPathItem:
    """Path item for (lon, lat) rings; odd-even fill keeps holes open."""
    path = QtGui.QPainterPath()
    path.setFillRule(QtCore.Qt.OddEvenFill)
    for ring in rings:
        points: List[QtCore.QPointF] = [to_scene(lat, lon) for lon, lat in ring]
        if len(points) < 3:
            continue
        path.addPolygon(QtGui.QPolygonF(points))
        path.closeSubpath()
    pen = QtGui.QPen(_qcolor(stroke))
    pen.setWidthF(width)
    pen.setCosmetic(True)
    item = QtWidgets.QGraphicsPathItem(path)
    item.setPen(pen)
    item.setBrush(QtGui.QBrush(_qcolor(fill)))
    item.setAcceptedMouseButtons(QtCore.Qt.NoButton)
    return item
