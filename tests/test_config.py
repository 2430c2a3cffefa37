import pytest

from outage_map.config import (
    CIRCLE_MARKER_THRESHOLD,
    MAX_ZOOM,
    MIN_ZOOM,
    SERVICE_AREA_BBOX,
    MapSettings,
)


def test_defaults_mirror_constants():
    settings = MapSettings.from_env({})
    assert (settings.min_zoom, settings.max_zoom) == (MIN_ZOOM, MAX_ZOOM) == (3, 18)
    assert settings.cluster_radius_px == 40
    assert settings.marker_threshold == CIRCLE_MARKER_THRESHOLD == 150
    assert settings.render_debounce_ms == 80
    assert settings.polygon_visible_zoom == 5
    assert settings.animation_duration_ms == 300
    assert settings.service_area_bbox == SERVICE_AREA_BBOX


def test_env_overrides():
    settings = MapSettings.from_env({
        "OUTAGE_MAP_MAX_ZOOM": "16",
        "OUTAGE_MAP_CLUSTER_RADIUS_PX": "60",
        "OUTAGE_MAP_SERVICE_AREA_BBOX": "-95.2, 41.6, -74.3, 56.9",
        "OUTAGE_MAP_RENDER_DEBOUNCE_MS": "",
    })
    assert settings.max_zoom == 16
    assert settings.cluster_radius_px == 60
    assert settings.service_area_bbox == (-95.2, 41.6, -74.3, 56.9)
    assert settings.render_debounce_ms == 80


@pytest.mark.parametrize("env,name", [
    ({"OUTAGE_MAP_MIN_ZOOM": "three"}, "OUTAGE_MAP_MIN_ZOOM"),
    ({"OUTAGE_MAP_SERVICE_AREA_BBOX": "1,2,3"}, "OUTAGE_MAP_SERVICE_AREA_BBOX"),
    ({"OUTAGE_MAP_SERVICE_AREA_BBOX": "a,b,c,d"}, "OUTAGE_MAP_SERVICE_AREA_BBOX"),
])
def test_bad_values_name_the_variable(env, name):
    with pytest.raises(ValueError, match=name):
        MapSettings.from_env(env)


def test_invalid_ranges_rejected():
    with pytest.raises(ValueError):
        MapSettings(min_zoom=10, max_zoom=5)
    with pytest.raises(ValueError):
        MapSettings(cluster_radius_px=0)
