"""
Outage polygon helpers.

Outage outlines arrive as WKT (optionally with an ``SRID=4326;`` prefix)
with coordinates in lon/lat order.  This module parses them into shapely
geometries, merges member outlines into one geometry per cluster, and
computes zoom-to bounds and geodesic areas for popups.

Usage
-----
    from outage_map.geo.wkt import merge_polygons, bounds_and_area
    merged = merge_polygons([wkt_a, wkt_b])
    bounds, area_km2 = bounds_and_area(merged)
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Iterable, Optional, Tuple

import pyproj
from shapely import wkt as shapely_wkt
from shapely.errors import GEOSException, ShapelyError
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, mapping
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.validation import make_valid

log = logging.getLogger(__name__)

# ((south, west), (north, east))
Bounds = Tuple[Tuple[float, float], Tuple[float, float]]

_GEOD = pyproj.Geod(ellps="WGS84")

# Half-size (degrees) of the box used when an outage has no outline
_POINT_BOUNDS_PAD_DEG = 0.01


def strip_srid(text: str) -> str:
    trimmed = text.strip()
    if trimmed.upper().startswith("SRID="):
        _, _, rest = trimmed.partition(";")
        return rest.strip()
    return trimmed


def parse_wkt(text: Any) -> Optional[BaseGeometry]:
    """Parse a WKT polygon outline.  Unreadable or non-areal input → None."""
    if not isinstance(text, str) or not text:
        if text:
            log.debug("Ignoring non-text outage polygon of type %s", type(text).__name__)
        return None
    return _parse_wkt_cached(text)


@lru_cache(maxsize=4096)
def _parse_wkt_cached(text: str) -> Optional[BaseGeometry]:
    try:
        geom = shapely_wkt.loads(strip_srid(text))
    except (ShapelyError, ValueError) as exc:
        log.debug("Unreadable outage polygon %.60r: %s", text, exc)
        return None
    if not isinstance(geom, (Polygon, MultiPolygon)) or geom.is_empty:
        log.debug("Ignoring non-polygon geometry %s", geom.geom_type)
        return None
    if not geom.is_valid:
        geom = make_valid(geom)
    return geom


def merge_polygons(polygons: Iterable[str]) -> BaseGeometry:
    """Merge WKT outlines into one geometry.

    Outlines that fail to parse are skipped.  When nothing usable remains
    the result is an empty ``GeometryCollection``.
    """
    parts = [g for g in (parse_wkt(p) for p in polygons) if g is not None]
    if not parts:
        return GeometryCollection()
    if len(parts) == 1:
        return parts[0]
    try:
        return unary_union(parts)
    except GEOSException as exc:
        # Overlay can still fail on degenerate rings; keep the pieces apart
        log.debug("unary_union failed (%s), falling back to MultiPolygon", exc)
        polys = []
        for g in parts:
            polys.extend(g.geoms if isinstance(g, MultiPolygon) else [g])
        return MultiPolygon([p for p in polys if isinstance(p, Polygon)])


def fallback_point_bounds(lat: float, lon: float) -> Bounds:
    pad = _POINT_BOUNDS_PAD_DEG
    return ((lat - pad, lon - pad), (lat + pad, lon + pad))


def bounds_and_area(geom: Optional[BaseGeometry]) -> Tuple[Optional[Bounds], float]:
    """Return (zoom-to bounds, geodesic area in km²) of *geom*."""
    if geom is None or geom.is_empty:
        return None, 0.0
    min_lon, min_lat, max_lon, max_lat = geom.bounds
    area_m2, _ = _GEOD.geometry_area_perimeter(geom)
    return ((min_lat, min_lon), (max_lat, max_lon)), abs(area_m2) / 1e6


def to_geojson_text(geom: Optional[BaseGeometry]) -> Optional[str]:
    if geom is None or geom.is_empty:
        return None
    return json.dumps(mapping(geom))


def outline_rings(geom: Optional[BaseGeometry]) -> list:
    """List of (lon, lat) rings (exteriors and holes) for drawing."""
    if geom is None or geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        polys = [geom]
    elif hasattr(geom, "geoms"):
        polys = [g for g in geom.geoms if isinstance(g, Polygon)]
        for g in geom.geoms:
            if isinstance(g, MultiPolygon):
                polys.extend(g.geoms)
    else:
        return []
    rings = []
    for poly in polys:
        rings.append(list(poly.exterior.coords))
        rings.extend(list(r.coords) for r in poly.interiors)
    return rings
