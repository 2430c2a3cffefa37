"""
Per-zoom cluster buckets and cross-zoom linkage.

One :class:`~outage_map.geo.cluster_index.ClusterIndex` is built per event
set with a fixed pixel radius.  The builder then walks every integer zoom
in [MIN_ZOOM, MAX_ZOOM], turning the index's output into ``Group``s (one
``Bucket`` per zoom), and records which feature absorbed which between
adjacent zooms (``ZoomLinkage``).  The transition animator reads that
linkage to decide what splits and what merges.

The ``BucketCache`` holds the newest build and swaps it atomically on
rebuild.  Group geometry is merged lazily, only for the zoom actually
being displayed.

Usage
-----
    cache = BucketCache()
    cache.build(events)
    groups = cache.lookup(zoom_level)   # hydrates polygons for that zoom
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from shapely.geometry import GeometryCollection
from shapely.geometry.base import BaseGeometry

from ..config import (
    CLUSTER_BUCKET_RADIUS_PX,
    CLUSTER_EXTENT,
    MAX_ZOOM,
    MIN_ZOOM,
    SERVICE_AREA_BBOX,
)
from .cluster_index import BBox, ClusterFeature, ClusterIndex, ClusterLookupError
from .outage import Event, Group, summarize_group
from .wkt import merge_polygons

log = logging.getLogger(__name__)

FeatureKey = str            # "c:<cluster id>" or "p:<event id>"
MergeFn = Callable[[List[str]], BaseGeometry]


def feature_key(feature: ClusterFeature) -> FeatureKey:
    if feature.is_cluster:
        return f"c:{feature.id}"
    return f"p:{feature.payload.id}"


def round_zoom(zoom: float) -> int:
    """Round half up, matching the map widget's notion of 'nearest zoom'."""
    return int(math.floor(zoom + 0.5))


@dataclass
class Bucket:
    """All groups visible at one integer zoom."""
    zoom: int
    groups: List[Group] = field(default_factory=list)
    key_to_group: Dict[FeatureKey, Group] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.groups)


@dataclass
class ZoomLinkage:
    """Parent/child feature keys between adjacent zooms of one build.

    ``child_to_parent`` maps a key at zoom z+1 to the key that absorbed it
    at zoom z.  A key missing here simply persists unchanged across the
    boundary.
    """
    child_to_parent: Dict[FeatureKey, FeatureKey] = field(default_factory=dict)
    parent_to_children: Dict[FeatureKey, List[FeatureKey]] = field(default_factory=dict)

    def parent_of(self, key: FeatureKey) -> Optional[FeatureKey]:
        return self.child_to_parent.get(key)

    def children_of(self, key: FeatureKey) -> List[FeatureKey]:
        return self.parent_to_children.get(key, [])


@dataclass
class ClusterBucketResult:
    buckets: Dict[int, Bucket]
    linkage: ZoomLinkage
    event_count: int = 0

    def bucket(self, zoom: float) -> Optional[Bucket]:
        return self.buckets.get(round_zoom(zoom))


def _feature_to_group(
    feature: ClusterFeature, index: ClusterIndex, key: FeatureKey,
) -> Group:
    if feature.is_cluster:
        leaves = index.get_leaves(feature.id, limit=None)
        events = [leaf.payload for leaf in leaves if leaf.payload is not None]
    else:
        events = [feature.payload]
    return summarize_group(events, (feature.lat, feature.lon), key=key)


def build_cluster_buckets(
    events: Iterable[Event],
    radius_px: float = CLUSTER_BUCKET_RADIUS_PX,
    min_zoom: int = MIN_ZOOM,
    max_zoom: int = MAX_ZOOM,
    bbox: BBox = SERVICE_AREA_BBOX,
) -> ClusterBucketResult:
    """Cluster *events* at every zoom in [min_zoom, max_zoom] and link zooms.

    Events with unusable coordinates are dropped silently.  The result is a
    pure function of the valid events (in order) and the parameters.
    """
    events = list(events)
    valid = [e for e in events if e.has_valid_location]

    # max_zoom + 1 so get_children still works for clusters at max_zoom
    index = ClusterIndex(
        radius=radius_px, min_zoom=0, max_zoom=max_zoom + 1, extent=CLUSTER_EXTENT,
    )
    index.load(
        [e.longitude for e in valid], [e.latitude for e in valid], valid,
    )

    buckets: Dict[int, Bucket] = {}
    zoom_features: Dict[int, List[ClusterFeature]] = {}

    for zoom in range(min_zoom, max_zoom + 1):
        features = index.get_clusters(bbox, zoom) if valid else []
        zoom_features[zoom] = features
        bucket = Bucket(zoom=zoom)
        for feature in features:
            key = feature_key(feature)
            group = _feature_to_group(feature, index, key)
            bucket.key_to_group[key] = group
            bucket.groups.append(group)
        buckets[zoom] = bucket

    linkage = _build_linkage(index, zoom_features, min_zoom, max_zoom)

    log.info(
        "Built cluster buckets: %d events (%d dropped), zoom %d→%d groups: %d→%d",
        len(valid), len(events) - len(valid), min_zoom, max_zoom,
        len(buckets[min_zoom]) if min_zoom in buckets else 0,
        len(buckets[max_zoom]) if max_zoom in buckets else 0,
    )
    return ClusterBucketResult(buckets=buckets, linkage=linkage, event_count=len(valid))


def _build_linkage(
    index: ClusterIndex,
    zoom_features: Dict[int, List[ClusterFeature]],
    min_zoom: int,
    max_zoom: int,
) -> ZoomLinkage:
    child_to_parent: Dict[FeatureKey, FeatureKey] = {}
    parent_to_children: Dict[FeatureKey, List[FeatureKey]] = {}
    ambiguous: set = set()

    for zoom in range(min_zoom, max_zoom):
        for feature in zoom_features.get(zoom, []):
            if not feature.is_cluster:
                continue
            parent_key = feature_key(feature)
            if parent_key in parent_to_children:
                # Same cluster persisting over several zooms: children already known
                continue
            try:
                children = index.get_children(feature.id)
            except ClusterLookupError as exc:
                log.debug("No linkage for %s at zoom %d: %s", parent_key, zoom, exc)
                continue

            child_keys: List[FeatureKey] = []
            for child in children:
                child_key = feature_key(child)
                known = child_to_parent.get(child_key)
                if known is not None and known != parent_key:
                    ambiguous.add(child_key)
                child_to_parent.setdefault(child_key, parent_key)
                child_keys.append(child_key)
            parent_to_children[parent_key] = child_keys

    if ambiguous:
        log.warning("Dropping linkage for %d features with more than one parent",
                    len(ambiguous))
        for child_key in ambiguous:
            del child_to_parent[child_key]
        for siblings in parent_to_children.values():
            siblings[:] = [k for k in siblings if k not in ambiguous]

    return ZoomLinkage(child_to_parent=child_to_parent, parent_to_children=parent_to_children)


def hydrate_polygons(groups: Iterable[Group], merge: MergeFn = merge_polygons) -> int:
    """Fill ``polygon`` for every group that has not been hydrated yet.

    Returns how many groups were hydrated by this call.  Groups whose
    members carry no outline get an empty geometry so they are not
    retried.
    """
    hydrated = 0
    for group in groups:
        if group.polygon is not None:
            continue
        outlines = [e.polygon for e in group.events if e.polygon]
        group.polygon = merge(outlines) if outlines else GeometryCollection()
        hydrated += 1
    return hydrated


class BucketCache:
    """Holds the newest bucket build and hydrates geometry on demand.

    Only ``build``/``replace``/``clear`` mutate the cache, and they swap the
    whole result at once; ``generation`` increments on every swap so
    consumers holding on to groups from an older build can tell.
    """

    def __init__(
        self,
        merge: MergeFn = merge_polygons,
        radius_px: float = CLUSTER_BUCKET_RADIUS_PX,
        min_zoom: int = MIN_ZOOM,
        max_zoom: int = MAX_ZOOM,
        bbox: BBox = SERVICE_AREA_BBOX,
    ):
        self._merge = merge
        self._radius_px = radius_px
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self._bbox = bbox
        self._result: Optional[ClusterBucketResult] = None
        self.generation = 0

    @property
    def result(self) -> Optional[ClusterBucketResult]:
        return self._result

    @property
    def linkage(self) -> Optional[ZoomLinkage]:
        return self._result.linkage if self._result else None

    @property
    def is_built(self) -> bool:
        return self._result is not None

    def build(self, events: Iterable[Event]) -> ClusterBucketResult:
        result = build_cluster_buckets(
            events,
            radius_px=self._radius_px,
            min_zoom=self.min_zoom,
            max_zoom=self.max_zoom,
            bbox=self._bbox,
        )
        self.replace(result)
        return result

    def replace(self, result: Optional[ClusterBucketResult]) -> None:
        self._result = result
        self.generation += 1

    def clear(self) -> None:
        self.replace(None)

    def bucket(self, zoom: float) -> Optional[Bucket]:
        """Raw bucket for *zoom* without hydrating geometry."""
        if self._result is None:
            return None
        return self._result.bucket(zoom)

    def lookup(self, zoom: float) -> List[Group]:
        """Groups for the nearest integer zoom, geometry hydrated."""
        bucket = self.bucket(zoom)
        if bucket is None:
            return []
        count = hydrate_polygons(bucket.groups, self._merge)
        if count:
            log.debug("Hydrated %d group polygons at zoom %d", count, bucket.zoom)
        return bucket.groups
