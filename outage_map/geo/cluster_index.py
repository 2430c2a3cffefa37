"""
Hierarchical point clustering index.

Points are clustered greedily, one zoom level at a time, from the finest
zoom down to the coarsest, with a single clustering radius expressed in
*screen pixels*.  Because the radius is converted to ground distance at
each zoom's own scale, clusters look equally dense at every zoom.

Behaviour matches the widely used "supercluster" scheme:

  - Each zoom keeps its own tree of entries (points or clusters).
  - Building zoom ``z`` from zoom ``z + 1``: every unvisited entry absorbs
    all unvisited neighbours within ``radius / (extent * 2**z)``; the new
    cluster sits at the count-weighted centroid.
  - Cluster ids encode the entry index and the zoom they were created
    from, so ``get_children`` can find them again without a lookup table.

Entries are visited in insertion order and neighbour sets are order
independent, so the index is a pure function of its input.

Usage
-----
    index = ClusterIndex(radius=40, max_zoom=19)
    index.load(lons, lats, payloads)
    for feature in index.get_clusters((-180, -90, 180, 90), zoom=6):
        print(feature.is_cluster, feature.point_count, feature.lat, feature.lon)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .projection import denormalize, normalize

log = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]


class ClusterLookupError(LookupError):
    """Raised for a cluster id that does not exist in this index."""


@dataclass(frozen=True)
class ClusterFeature:
    """One entry returned by the index: a cluster or an original point."""

    is_cluster: bool
    id: int                  # cluster id, or position of the point in load()
    point_count: int
    lon: float
    lat: float
    payload: Any = None      # original payload (points only)


class _ZoomTree:
    """Entries of one zoom level plus a KD-tree over their positions."""

    def __init__(self, xs: List[float], ys: List[float], ids: List[int], nums: List[int]):
        self.xs = xs
        self.ys = ys
        self.ids = ids
        self.nums = nums
        self.visited = [math.inf] * len(xs)   # zoom at which the entry was consumed
        self.parents = [-1] * len(xs)
        self._kd = cKDTree(np.column_stack([xs, ys])) if xs else None
        self._x_arr = np.asarray(xs, dtype=float)
        self._y_arr = np.asarray(ys, dtype=float)

    def __len__(self) -> int:
        return len(self.xs)

    def within(self, x: float, y: float, r: float) -> List[int]:
        if self._kd is None:
            return []
        return sorted(self._kd.query_ball_point((x, y), r))

    def range(self, min_x: float, min_y: float, max_x: float, max_y: float) -> List[int]:
        if self._kd is None:
            return []
        mask = (
            (self._x_arr >= min_x) & (self._x_arr <= max_x)
            & (self._y_arr >= min_y) & (self._y_arr <= max_y)
        )
        return np.flatnonzero(mask).tolist()


class ClusterIndex:
    """Multi-zoom cluster tree over a fixed set of lon/lat points."""

    def __init__(
        self,
        radius: float = 40.0,
        min_zoom: int = 0,
        max_zoom: int = 16,
        extent: int = 512,
        min_points: int = 2,
    ):
        if max_zoom + 1 >= 32:
            raise ValueError("max_zoom must be below 31 (zoom is packed into 5 bits)")
        self.radius = radius
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.extent = extent
        self.min_points = min_points
        self._payloads: List[Any] = []
        self._lonlat: List[Tuple[float, float]] = []
        self._trees: Dict[int, _ZoomTree] = {}

    # ── Building ─────────────────────────────────────────────────────

    def load(
        self,
        lons: Sequence[float],
        lats: Sequence[float],
        payloads: Optional[Sequence[Any]] = None,
    ) -> "ClusterIndex":
        """(Re)build every zoom tree from scratch."""
        if len(lons) != len(lats):
            raise ValueError("lons and lats must have the same length")
        n = len(lons)
        self._payloads = list(payloads) if payloads is not None else [None] * n
        self._lonlat = [(float(lo), float(la)) for lo, la in zip(lons, lats)]
        self._trees = {}

        xs, ys = normalize(lons, lats) if n else (np.empty(0), np.empty(0))
        tree = _ZoomTree(
            [float(v) for v in xs], [float(v) for v in ys],
            list(range(n)), [1] * n,
        )
        self._trees[self.max_zoom + 1] = tree

        for z in range(self.max_zoom, self.min_zoom - 1, -1):
            tree = self._cluster(tree, z)
            self._trees[z] = tree

        log.debug("ClusterIndex loaded %d points over zooms %d..%d",
                  n, self.min_zoom, self.max_zoom + 1)
        return self

    def _cluster(self, tree: _ZoomTree, zoom: int) -> _ZoomTree:
        r = self.radius / (self.extent * (2 ** zoom))
        n_points = len(self._payloads)
        xs: List[float] = []
        ys: List[float] = []
        ids: List[int] = []
        nums: List[int] = []

        for i in range(len(tree)):
            if tree.visited[i] <= zoom:
                continue
            tree.visited[i] = zoom

            x, y = tree.xs[i], tree.ys[i]
            neighbours = tree.within(x, y, r)

            num_origin = tree.nums[i]
            num = num_origin
            for k in neighbours:
                if tree.visited[k] > zoom:
                    num += tree.nums[k]

            if num > num_origin and num >= self.min_points:
                wx = x * num_origin
                wy = y * num_origin
                cluster_id = (i << 5) + (zoom + 1) + n_points
                for k in neighbours:
                    if tree.visited[k] <= zoom:
                        continue
                    tree.visited[k] = zoom
                    nk = tree.nums[k]
                    wx += tree.xs[k] * nk
                    wy += tree.ys[k] * nk
                    tree.parents[k] = cluster_id
                tree.parents[i] = cluster_id
                xs.append(wx / num)
                ys.append(wy / num)
                ids.append(cluster_id)
                nums.append(num)
            else:
                xs.append(x)
                ys.append(y)
                ids.append(tree.ids[i])
                nums.append(num_origin)
                if num > 1:
                    # Too few to form a cluster; carry neighbours over unchanged
                    for k in neighbours:
                        if tree.visited[k] <= zoom:
                            continue
                        tree.visited[k] = zoom
                        xs.append(tree.xs[k])
                        ys.append(tree.ys[k])
                        ids.append(tree.ids[k])
                        nums.append(tree.nums[k])

        return _ZoomTree(xs, ys, ids, nums)

    # ── Queries ──────────────────────────────────────────────────────

    def _limit_zoom(self, zoom: float) -> int:
        return max(self.min_zoom, min(int(math.floor(zoom)), self.max_zoom + 1))

    def _feature(self, tree: _ZoomTree, k: int) -> ClusterFeature:
        if tree.nums[k] > 1:
            lon, lat = denormalize(tree.xs[k], tree.ys[k])
            return ClusterFeature(True, tree.ids[k], tree.nums[k], lon, lat)
        idx = tree.ids[k]
        lon, lat = self._lonlat[idx]
        return ClusterFeature(False, idx, 1, lon, lat, self._payloads[idx])

    def get_clusters(self, bbox: BBox, zoom: float) -> List[ClusterFeature]:
        """Clusters and points inside *bbox* (min_lon, min_lat, max_lon, max_lat)."""
        min_lng = ((bbox[0] + 180.0) % 360.0) - 180.0
        min_lat = max(-90.0, min(90.0, bbox[1]))
        max_lng = 180.0 if bbox[2] == 180 else ((bbox[2] + 180.0) % 360.0) - 180.0
        max_lat = max(-90.0, min(90.0, bbox[3]))

        if bbox[2] - bbox[0] >= 360:
            min_lng, max_lng = -180.0, 180.0
        elif min_lng > max_lng:
            # Query crosses the antimeridian
            eastern = self.get_clusters((min_lng, min_lat, 180.0, max_lat), zoom)
            western = self.get_clusters((-180.0, min_lat, max_lng, max_lat), zoom)
            return eastern + western

        tree = self._trees.get(self._limit_zoom(zoom))
        if tree is None:
            return []
        (x0, x1), (y_top, y_bottom) = (
            normalize([min_lng, max_lng], [max_lat, min_lat])
        )
        ids = tree.range(float(x0), float(y_top), float(x1), float(y_bottom))
        return [self._feature(tree, k) for k in ids]

    def _origin(self, cluster_id: int) -> Tuple[int, int]:
        n = len(self._payloads)
        if cluster_id < n:
            raise ClusterLookupError(f"No cluster with the specified id: {cluster_id}")
        return (cluster_id - n) >> 5, (cluster_id - n) % 32

    def get_children(self, cluster_id: int) -> List[ClusterFeature]:
        """Entries one zoom finer that were merged into *cluster_id*."""
        origin_id, origin_zoom = self._origin(cluster_id)
        tree = self._trees.get(origin_zoom)
        if tree is None or origin_id >= len(tree):
            raise ClusterLookupError(f"No cluster with the specified id: {cluster_id}")

        r = self.radius / (self.extent * (2 ** (origin_zoom - 1)))
        x, y = tree.xs[origin_id], tree.ys[origin_id]
        children = [
            self._feature(tree, k)
            for k in tree.within(x, y, r)
            if tree.parents[k] == cluster_id
        ]
        if not children:
            raise ClusterLookupError(f"No cluster with the specified id: {cluster_id}")
        return children

    def get_leaves(
        self, cluster_id: int, limit: Optional[int] = 10, offset: int = 0,
    ) -> List[ClusterFeature]:
        """Original points under *cluster_id* (``limit=None`` → all)."""
        leaves: List[ClusterFeature] = []
        self._append_leaves(leaves, cluster_id, limit, offset, 0)
        return leaves

    def _append_leaves(
        self, result: List[ClusterFeature], cluster_id: int,
        limit: Optional[int], offset: int, skipped: int,
    ) -> int:
        for child in self.get_children(cluster_id):
            if child.is_cluster:
                if skipped + child.point_count <= offset:
                    skipped += child.point_count
                else:
                    skipped = self._append_leaves(result, child.id, limit, offset, skipped)
            elif skipped < offset:
                skipped += 1
            else:
                result.append(child)
            if limit is not None and len(result) == limit:
                break
        return skipped

    def get_cluster_expansion_zoom(self, cluster_id: int) -> int:
        """Zoom at which *cluster_id* first breaks into several entries."""
        _, origin_zoom = self._origin(cluster_id)
        expansion = origin_zoom - 1
        while expansion <= self.max_zoom:
            children = self.get_children(cluster_id)
            expansion += 1
            if len(children) != 1:
                break
            cluster_id = children[0].id
        return expansion

    def __len__(self) -> int:
        return len(self._payloads)
