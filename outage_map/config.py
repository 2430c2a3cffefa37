"""
Map configuration constants.

Zoom range, clustering radius, render thresholds and animation timing used
across the clustering engine and the map widget.  ``MapSettings`` bundles
the tunable subset and can be overridden from ``OUTAGE_MAP_*`` environment
variables (kiosk deployments set these instead of editing code).

Usage
-----
    from outage_map.config import MapSettings
    settings = MapSettings.from_env()
    print(settings.cluster_radius_px)
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

# ── Zoom range ────────────────────────────────────────────────────────
MIN_ZOOM = 3    # continent view
MAX_ZOOM = 18   # street view

# ── Clustering ────────────────────────────────────────────────────────
CLUSTER_BUCKET_RADIUS_PX = 40
CLUSTER_EXTENT = 512
CLUSTER_MIN_POINTS = 2

# Region queried at every zoom (min_lon, min_lat, max_lon, max_lat)
SERVICE_AREA_BBOX: Tuple[float, float, float, float] = (-180.0, -90.0, 180.0, 90.0)

# ── Layer visibility ──────────────────────────────────────────────────
POLYGON_VISIBLE_ZOOM = 5

# ── Performance thresholds ────────────────────────────────────────────
CIRCLE_MARKER_THRESHOLD = 150       # bulk representation above this count
MARKER_RENDER_DEBOUNCE_MS = 80

# ── Transition animation ──────────────────────────────────────────────
CLUSTER_ANIMATION_DURATION_MS = 300
CLUSTER_ANIMATION_BUFFER_MS = 30
CLUSTER_ANIMATION_FRAME_MS = 16
SPLIT_START_SCALE = 0.4
FADED_OPACITY = 0.3

# ── Heatmap ───────────────────────────────────────────────────────────
HEATMAP_RADIUS_PX = 35
HEATMAP_BLUR_PX = 10
HEATMAP_MIN_OPACITY = 0.4
# (stop, RGBA) pairs, cool to hot
HEATMAP_GRADIENT = (
    (0.0, (30, 201, 104, 38)),
    (0.3, (30, 201, 104, 153)),
    (0.5, (240, 165, 0, 204)),
    (0.7, (255, 120, 0, 242)),
    (0.85, (244, 67, 54, 255)),
    (1.0, (183, 28, 28, 255)),
)

# ── Popup & tooltip ───────────────────────────────────────────────────
POPUP_MAX_ITEMS = 6

# ── Colours (RGBA) ────────────────────────────────────────────────────
BRAND_COLOR = (24, 184, 166, 255)
BRAND_FILL = (110, 233, 215, 64)
BRAND_OUTAGE_COLOR = (255, 156, 26, 255)
BRAND_HIGHLIGHT = (255, 77, 79, 255)
BRAND_HIGHLIGHT_FILL = (255, 120, 117, 90)

_ENV_PREFIX = "OUTAGE_MAP_"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(_ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def _env_bbox(
    env: Mapping[str, str], name: str, default: Tuple[float, float, float, float],
) -> Tuple[float, float, float, float]:
    raw = env.get(_ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    parts = [p.strip() for p in raw.split(",")]
    try:
        values = tuple(float(p) for p in parts)
    except ValueError:
        raise ValueError(
            f"{_ENV_PREFIX}{name} must be 'min_lon,min_lat,max_lon,max_lat', got {raw!r}"
        ) from None
    if len(values) != 4:
        raise ValueError(
            f"{_ENV_PREFIX}{name} must have 4 comma-separated numbers, got {raw!r}"
        )
    return values  # type: ignore[return-value]


@dataclass(frozen=True)
class MapSettings:
    """Tunable engine settings.  Defaults mirror the module constants."""

    min_zoom: int = MIN_ZOOM
    max_zoom: int = MAX_ZOOM
    cluster_radius_px: int = CLUSTER_BUCKET_RADIUS_PX
    service_area_bbox: Tuple[float, float, float, float] = SERVICE_AREA_BBOX
    marker_threshold: int = CIRCLE_MARKER_THRESHOLD
    render_debounce_ms: int = MARKER_RENDER_DEBOUNCE_MS
    polygon_visible_zoom: int = POLYGON_VISIBLE_ZOOM
    animation_duration_ms: int = CLUSTER_ANIMATION_DURATION_MS

    def __post_init__(self) -> None:
        if self.min_zoom < 0 or self.max_zoom < self.min_zoom:
            raise ValueError(
                f"invalid zoom range {self.min_zoom}..{self.max_zoom}"
            )
        if self.cluster_radius_px <= 0:
            raise ValueError("cluster_radius_px must be positive")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "MapSettings":
        """Build settings from ``OUTAGE_MAP_*`` variables (missing → default)."""
        env = os.environ if env is None else env
        return cls(
            min_zoom=_env_int(env, "MIN_ZOOM", MIN_ZOOM),
            max_zoom=_env_int(env, "MAX_ZOOM", MAX_ZOOM),
            cluster_radius_px=_env_int(env, "CLUSTER_RADIUS_PX", CLUSTER_BUCKET_RADIUS_PX),
            service_area_bbox=_env_bbox(env, "SERVICE_AREA_BBOX", SERVICE_AREA_BBOX),
            marker_threshold=_env_int(env, "MARKER_THRESHOLD", CIRCLE_MARKER_THRESHOLD),
            render_debounce_ms=_env_int(env, "RENDER_DEBOUNCE_MS", MARKER_RENDER_DEBOUNCE_MS),
            polygon_visible_zoom=_env_int(env, "POLYGON_VISIBLE_ZOOM", POLYGON_VISIBLE_ZOOM),
            animation_duration_ms=_env_int(
                env, "ANIMATION_DURATION_MS", CLUSTER_ANIMATION_DURATION_MS
            ),
        )
