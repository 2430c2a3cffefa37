from datetime import datetime

import pytest

from outage_map.geo.outage import summarize_group
from outage_map.geo.wkt import merge_polygons
from outage_map.gui.popup_data import (
    build_popup_data,
    build_tooltip_text,
    format_timestamp,
    nickname_for_index,
)

BIG_WKT = "POLYGON((-75.9 45.3, -75.5 45.3, -75.5 45.6, -75.9 45.6, -75.9 45.3))"


def _group(events):
    group = summarize_group(events, (events[0].latitude, events[0].longitude), key="k")
    group.polygon = merge_polygons([e.polygon for e in events if e.polygon])
    return group


def test_tooltip_single_and_cluster(make_event):
    single = _group([make_event("a", 45.0, -75.0, provider="hydro")])
    assert build_tooltip_text(single) == "hydro\nClick for details"

    nameless = _group([make_event("a", 45.0, -75.0, provider="")])
    assert build_tooltip_text(nameless).startswith("Outage\n")

    cluster = _group([
        make_event("a", 45.0, -75.0, provider="hydro"),
        make_event("b", 45.0, -75.0, provider="hydro"),
        make_event("c", 45.0, -75.0, provider="grid-co"),
    ])
    assert build_tooltip_text(cluster) == "3 events\n2 providers"


def test_nicknames():
    assert nickname_for_index(0) == "Outage A"
    assert nickname_for_index(25) == "Outage Z"
    assert nickname_for_index(26) == "Outage A2"


def test_format_timestamp_accepts_milliseconds():
    ts = datetime(2025, 3, 4, 15, 7, 9).timestamp()
    assert format_timestamp(ts) == "Mar 4, 2025 3:07:09 PM"
    assert format_timestamp(ts * 1000) == "Mar 4, 2025 3:07:09 PM"


def test_popup_ranks_by_weighted_area_and_duration(make_event):
    events = [
        make_event("short", 45.4, -75.7, provider="p1", start_ts=1000.0, end_ts=1600.0),
        make_event("big", 45.4, -75.7, provider="p2", polygon=BIG_WKT,
                   start_ts=1000.0, end_ts=1060.0),
        make_event("long", 45.4, -75.7, provider="p3", start_ts=0.0, end_ts=7200.0),
    ]
    popup = build_popup_data(_group(events))

    assert popup.title == "3 events"
    # ~1000 km² scores ~2100; two hours scores 7200
    assert [i.provider for i in popup.items] == ["p3", "p2", "p1"]
    assert [i.nickname for i in popup.items] == ["Outage A", "Outage B", "Outage C"]
    assert popup.items[0].size_label == "120 min"
    assert popup.items[1].size_label.endswith("km²")
    assert popup.items[2].size_label == "10 min"
    assert popup.extra_count == 0
    assert popup.geojson_text is not None
    assert popup.coords_text.startswith("POLYGON")


def test_popup_caps_items_and_counts_rest(make_event):
    events = [make_event(str(i), 45.0, -75.0, provider=f"p{i}") for i in range(9)]
    popup = build_popup_data(_group(events))
    assert len(popup.items) == 6
    assert popup.extra_count == 3
    assert "+3 more" in popup.as_text()


def test_popup_bounds_fall_back_to_point(make_event):
    popup = build_popup_data(_group([make_event("a", 45.0, -75.0)]))
    (south, west), (north, east) = popup.items[0].bounds
    assert (south, west, north, east) == pytest.approx((44.99, -75.01, 45.01, -74.99))
    assert popup.geojson_text is None
    assert popup.title == "hydro"


def test_popup_carries_descriptive_fields(make_event):
    event = make_event("a", 45.0, -75.0, customer_count=420, cause="Tree contact",
                       outage_type="unplanned", is_planned=False, etr="18:30")
    item = build_popup_data(_group([event])).items[0]
    assert (item.customer_count, item.cause, item.etr) == (420, "Tree contact", "18:30")
    assert item.is_planned is False
