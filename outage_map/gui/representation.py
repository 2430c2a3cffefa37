"""
Marker representation choice and render payloads.

The render pipeline picks a representation fresh on every render from the
feature count alone; nothing stores a "current mode" that could go stale.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from ..config import CIRCLE_MARKER_THRESHOLD, HEATMAP_GRADIENT
from ..geo.outage import Group


class Representation(enum.Enum):
    ICON = "icon"   # individually styled markers, hover/click, animatable
    BULK = "bulk"   # plain circles plus a separate count label overlay


def choose_representation(count: int, threshold: int = CIRCLE_MARKER_THRESHOLD) -> Representation:
    return Representation.BULK if count > threshold else Representation.ICON


@dataclass
class MarkerData:
    lat: float
    lng: float
    count: int = 1
    group: Optional[Group] = None


@dataclass
class PolygonData:
    geometry: Any          # shapely geometry
    is_cluster: bool = False


def cluster_icon_size(count: int) -> int:
    """Pixel diameter of a rich cluster marker."""
    if count >= 100:
        return 52
    if count >= 20:
        return 44
    if count >= 5:
        return 36
    return 28


def circle_marker_radius(count: int) -> int:
    """Pixel radius of a bulk circle marker."""
    if count >= 100:
        return 14
    if count >= 20:
        return 11
    if count >= 5:
        return 9
    return 7 if count > 1 else 6


def markers_for(groups: List[Group]) -> List[MarkerData]:
    return [
        MarkerData(lat=g.center[0], lng=g.center[1], count=g.count, group=g)
        for g in groups
    ]


def polygons_for(groups: List[Group]) -> List[PolygonData]:
    """Polygon payloads for hydrated groups that actually have geometry."""
    return [
        PolygonData(geometry=g.polygon, is_cluster=g.is_cluster)
        for g in groups
        if g.has_geometry
    ]


# ── Heatmap ───────────────────────────────────────────────────────────

RGBA = Tuple[int, int, int, int]


@dataclass(frozen=True)
class HeatPoint:
    lat: float
    lng: float
    intensity: float


def heat_intensity(count: Optional[int]) -> float:
    """Weight of one marker in the heatmap: a single outage starts at 0.55,
    ten or more saturate at 1."""
    return min(1.0, 0.5 + (count or 1) / 20.0)


def heat_points(markers: List[MarkerData]) -> List[HeatPoint]:
    return [HeatPoint(m.lat, m.lng, heat_intensity(m.count)) for m in markers]


def heat_color(value: float, stops: Sequence[Tuple[float, RGBA]] = HEATMAP_GRADIENT) -> RGBA:
    """Colour at *value* on a piecewise-linear gradient, clamped to its ends."""
    if value <= stops[0][0]:
        return stops[0][1]
    for (t0, c0), (t1, c1) in zip(stops, stops[1:]):
        if value <= t1:
            f = (value - t0) / (t1 - t0) if t1 > t0 else 1.0
            return tuple(int(round(a + (b - a) * f)) for a, b in zip(c0, c1))  # type: ignore[return-value]
    return stops[-1][1]
