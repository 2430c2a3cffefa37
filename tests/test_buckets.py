import math
import random
from collections import Counter

import pytest
from shapely.geometry import GeometryCollection, Polygon

from outage_map.config import MAX_ZOOM, MIN_ZOOM
from outage_map.geo.buckets import (
    BucketCache,
    ZoomLinkage,
    build_cluster_buckets,
    round_zoom,
)
from outage_map.geo.outage import Event


def _member_ids(bucket):
    return Counter(e.id for g in bucket.groups for e in g.events)


def test_every_zoom_covers_every_event_once(spread_events):
    result = build_cluster_buckets(spread_events)
    expected = Counter(e.id for e in spread_events)
    assert sorted(result.buckets) == list(range(MIN_ZOOM, MAX_ZOOM + 1))
    for bucket in result.buckets.values():
        assert _member_ids(bucket) == expected


def test_build_is_deterministic(spread_events):
    first = build_cluster_buckets(spread_events)
    second = build_cluster_buckets(spread_events)
    for zoom in first.buckets:
        a = [(g.key, sorted(e.id for e in g.events), g.center) for g in first.buckets[zoom].groups]
        b = [(g.key, sorted(e.id for e in g.events), g.center) for g in second.buckets[zoom].groups]
        assert a == b
    assert first.linkage.child_to_parent == second.linkage.child_to_parent


def test_keys_index_their_groups(spread_events):
    result = build_cluster_buckets(spread_events)
    for bucket in result.buckets.values():
        assert len(bucket.key_to_group) == len(bucket.groups)
        for key, group in bucket.key_to_group.items():
            assert group.key == key
            assert key.startswith("c:" if group.is_cluster else "p:")


def test_linkage_is_consistent_and_complete(spread_events):
    result = build_cluster_buckets(spread_events)
    linkage = result.linkage
    for child, parent in linkage.child_to_parent.items():
        assert child in linkage.parent_to_children[parent]

    for zoom in range(MIN_ZOOM, MAX_ZOOM):
        coarse = result.buckets[zoom].key_to_group
        for key in result.buckets[zoom + 1].key_to_group:
            assert key in linkage.child_to_parent or key in coarse


@pytest.fixture(scope="module")
def dense_events():
    """Seeded city-scale hotspots plus duplicates and points on the world edges."""
    rng = random.Random(20240611)
    hubs = [(45.42, -75.69), (43.65, -79.38), (-33.87, 151.21), (51.5, -0.12), (0.0, 179.9)]
    events = []
    for i in range(2500):
        lat0, lon0 = hubs[i % len(hubs)]
        spread = rng.choice([0.0005, 0.01, 0.2, 2.0])
        lat = max(-90.0, min(90.0, lat0 + rng.gauss(0.0, spread)))
        lon = max(-180.0, min(180.0, lon0 + rng.gauss(0.0, spread)))
        events.append(Event(id=f"d{i}", latitude=lat, longitude=lon, provider=f"p{i % 3}"))
    for i in range(40):
        events.append(Event(id=f"dup{i}", latitude=45.42, longitude=-75.69))
    for i, (lat, lon) in enumerate([(90.0, 0.0), (-90.0, 0.0), (0.0, 180.0), (0.0, -180.0),
                                    (90.0, 180.0), (-90.0, -180.0), (89.99, 179.99)]):
        events.append(Event(id=f"edge{i}", latitude=lat, longitude=lon))
    return events


def test_dense_set_covers_every_event_at_every_zoom(dense_events):
    result = build_cluster_buckets(dense_events)
    expected = Counter(e.id for e in dense_events)
    assert result.event_count == len(dense_events)
    for bucket in result.buckets.values():
        assert _member_ids(bucket) == expected

    # clusters nest over several levels, and duplicates never separate
    sizes = [len(result.bucket(z)) for z in range(MIN_ZOOM, MAX_ZOOM + 1)]
    assert sizes == sorted(sizes)
    assert sizes[0] < sizes[8] < sizes[-1]
    street = result.bucket(MAX_ZOOM)
    dup_groups = {g.key for g in street.groups for e in g.events if e.id.startswith("dup")}
    assert len(dup_groups) == 1


def test_dense_linkage_is_consistent_and_complete(dense_events):
    result = build_cluster_buckets(dense_events)
    linkage = result.linkage
    for child, parent in linkage.child_to_parent.items():
        assert child in linkage.parent_to_children[parent]
    for parent, children in linkage.parent_to_children.items():
        assert all(linkage.child_to_parent[c] == parent for c in children)

    for zoom in range(MIN_ZOOM, MAX_ZOOM):
        coarse = result.buckets[zoom].key_to_group
        fine = result.buckets[zoom + 1]
        for group in fine.groups:
            if group.key in coarse:
                continue
            parent = coarse[linkage.child_to_parent[group.key]]
            assert {e.id for e in group.events} <= {e.id for e in parent.events}


def test_close_pair_clusters_when_zoomed_out(close_pair):
    result = build_cluster_buckets(close_pair)

    continent = result.bucket(4)
    assert len(continent) == 1
    assert continent.groups[0].count == 2
    assert continent.groups[0].providers == ["hydro", "grid-co"]

    street = result.bucket(18)
    assert len(street) == 2
    assert all(g.count == 1 for g in street.groups)


def test_split_children_point_at_cluster(close_pair):
    result = build_cluster_buckets(close_pair)
    cluster_key = result.bucket(4).groups[0].key
    assert result.linkage.parent_of("p:a") == cluster_key
    assert result.linkage.parent_of("p:b") == cluster_key
    assert sorted(result.linkage.children_of(cluster_key)) == ["p:a", "p:b"]


def test_invalid_coordinates_are_dropped(make_event):
    events = [
        make_event("ok", 45.0, -75.0),
        make_event("nan", math.nan, -75.0),
        make_event("inf", 45.0, math.inf),
        make_event("north", 91.0, 0.0),
        make_event("west", 0.0, -180.5),
    ]
    result = build_cluster_buckets(events)
    assert result.event_count == 1
    for bucket in result.buckets.values():
        assert [e.id for g in bucket.groups for e in g.events] == ["ok"]


def test_empty_input_gives_empty_buckets():
    result = build_cluster_buckets([])
    assert result.event_count == 0
    assert all(len(b) == 0 for b in result.buckets.values())
    assert result.linkage == ZoomLinkage()


def test_polygons_start_unhydrated(spread_events):
    result = build_cluster_buckets(spread_events)
    assert all(g.polygon is None for b in result.buckets.values() for g in b.groups)


@pytest.mark.parametrize("zoom,expected", [(4.4, 4), (4.5, 5), (17.9, 18), (3.0, 3)])
def test_round_zoom(zoom, expected):
    assert round_zoom(zoom) == expected


class CountingMerge:
    def __init__(self):
        self.calls = 0

    def __call__(self, outlines):
        self.calls += 1
        return Polygon([(0, 0), (1, 0), (1, 1)])


def test_lookup_before_build_is_empty():
    cache = BucketCache()
    assert cache.lookup(10) == []
    assert cache.bucket(10) is None
    assert not cache.is_built


def test_lookup_hydrates_once(spread_events):
    merge = CountingMerge()
    cache = BucketCache(merge=merge)
    cache.build(spread_events)

    groups = cache.lookup(12)
    with_outline = [g for g in groups if any(e.polygon for e in g.events)]
    assert merge.calls == len(with_outline) > 0
    polygons = [g.polygon for g in groups]

    again = cache.lookup(12.2)
    assert merge.calls == len(with_outline)
    assert [g.polygon for g in again] == polygons
    assert all(a is b for a, b in zip(polygons, (g.polygon for g in again)))


def test_groups_without_outlines_get_empty_geometry(make_event):
    cache = BucketCache()
    cache.build([make_event("x", 10.0, 10.0)])
    (group,) = cache.lookup(8)
    assert isinstance(group.polygon, GeometryCollection)
    assert group.is_hydrated and not group.has_geometry


def test_lookup_only_hydrates_requested_zoom(spread_events):
    cache = BucketCache()
    cache.build(spread_events)
    cache.lookup(6)
    assert all(g.polygon is None for g in cache.bucket(14).groups)


def test_generation_changes_on_every_swap(close_pair):
    cache = BucketCache()
    assert cache.generation == 0
    cache.build(close_pair)
    assert cache.generation == 1
    first = cache.result
    cache.build(close_pair)
    assert cache.generation == 2
    assert cache.result is not first
    cache.clear()
    assert cache.generation == 3
    assert cache.lookup(4) == []
