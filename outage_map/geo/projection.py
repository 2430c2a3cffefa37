"""
Web Mercator projection helpers.

The clustering index and the map scene both work in *normalized* Web
Mercator space: x and y in [0, 1], origin at the north-west corner of the
world (lon -180, lat ~85.05).  Multiplying by ``TILE_SIZE * 2**zoom`` gives
map pixels at that zoom, which is how the fixed clustering radius in
pixels becomes a different ground distance at every zoom.

Projection goes through pyproj (EPSG:4326 → EPSG:3857) so the scene and the
index agree exactly with standard slippy-map tiles.
"""
from __future__ import annotations

from typing import Tuple

import numpy as np
import pyproj

WGS84 = pyproj.CRS("EPSG:4326")
WEB_MERCATOR = pyproj.CRS("EPSG:3857")

_to_merc = pyproj.Transformer.from_crs(WGS84, WEB_MERCATOR, always_xy=True)
_to_lonlat = pyproj.Transformer.from_crs(WEB_MERCATOR, WGS84, always_xy=True)

# Half the projected world width in metres (π · R)
HALF_WORLD_M = 20037508.342789244
MAX_LATITUDE = 85.0511287798066

TILE_SIZE = 256


def normalize(lons, lats) -> Tuple[np.ndarray, np.ndarray]:
    """Project lon/lat arrays to normalized [0, 1] Mercator x/y."""
    lons = np.asarray(lons, dtype=float)
    lats = np.clip(np.asarray(lats, dtype=float), -MAX_LATITUDE, MAX_LATITUDE)
    xm, ym = _to_merc.transform(lons, lats)
    x = np.asarray(xm) / (2.0 * HALF_WORLD_M) + 0.5
    y = 0.5 - np.asarray(ym) / (2.0 * HALF_WORLD_M)
    return x, np.clip(y, 0.0, 1.0)


def denormalize(x: float, y: float) -> Tuple[float, float]:
    """Inverse of :func:`normalize` for a single point → (lon, lat)."""
    xm = (x - 0.5) * 2.0 * HALF_WORLD_M
    ym = (0.5 - y) * 2.0 * HALF_WORLD_M
    lon, lat = _to_lonlat.transform(xm, ym)
    return float(lon), float(lat)


def world_pixel(lat: float, lon: float, zoom: float = 0.0) -> Tuple[float, float]:
    """Map pixel (x, y) of a lat/lon at *zoom* (256 px tiles)."""
    x, y = normalize([lon], [lat])
    scale = TILE_SIZE * (2.0 ** zoom)
    return float(x[0]) * scale, float(y[0]) * scale
