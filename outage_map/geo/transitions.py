"""
Zoom transition planning.

Given two adjacent zoom levels of one bucket build, work out which groups
split out of a parent (zooming in), which collapse into a parent (zooming
out), and which simply stay put.  The result is a list of
``TransitionItem``s in screen pixels that the animator plays back.

Planning is pure: it needs the build and a projection function, nothing
from the GUI toolkit.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..config import CIRCLE_MARKER_THRESHOLD
from .buckets import Bucket, ClusterBucketResult, round_zoom
from .outage import Group

# (lat, lon) → screen (x, y) for the current map view
ProjectFn = Callable[[float, float], Tuple[float, float]]


class TransitionKind(enum.Enum):
    SPLIT = "split"     # child emerges from its parent's old position
    MERGE = "merge"     # child collapses into its parent's new position
    STATIC = "static"   # same feature on both levels


@dataclass(frozen=True)
class TransitionItem:
    group: Group
    key: str
    start: Tuple[float, float]   # screen px
    dx: float
    dy: float
    kind: TransitionKind

    @property
    def end(self) -> Tuple[float, float]:
        return self.start[0] + self.dx, self.start[1] + self.dy


def _item(
    group: Group, key: str, origin: Group, target: Group,
    kind: TransitionKind, project: ProjectFn,
) -> TransitionItem:
    sx, sy = project(*origin.center)
    ex, ey = project(*target.center)
    return TransitionItem(group=group, key=key, start=(sx, sy),
                          dx=ex - sx, dy=ey - sy, kind=kind)


def should_animate(
    from_bucket: Optional[Bucket],
    to_bucket: Optional[Bucket],
    from_zoom: int,
    to_zoom: int,
    bulk_threshold: int = CIRCLE_MARKER_THRESHOLD,
) -> bool:
    """False for every case that snaps straight to the final state."""
    if from_bucket is None or to_bucket is None:
        return False
    if len(to_bucket.groups) > bulk_threshold:
        return False
    return abs(to_zoom - from_zoom) == 1


def plan_transition(
    result: Optional[ClusterBucketResult],
    from_zoom: float,
    to_zoom: float,
    project: ProjectFn,
    bulk_threshold: int = CIRCLE_MARKER_THRESHOLD,
) -> Optional[List[TransitionItem]]:
    """Transition items for a one-step zoom change, or None to skip animating.

    An empty list means the zoom is animatable but nothing on screen has a
    counterpart on the other level.
    """
    if result is None:
        return None
    src_zoom, dst_zoom = round_zoom(from_zoom), round_zoom(to_zoom)
    src = result.buckets.get(src_zoom)
    dst = result.buckets.get(dst_zoom)
    if not should_animate(src, dst, src_zoom, dst_zoom, bulk_threshold):
        return None

    linkage = result.linkage
    items: List[TransitionItem] = []

    if dst_zoom > src_zoom:
        for key, group in dst.key_to_group.items():
            parent_key = linkage.parent_of(key)
            parent = src.key_to_group.get(parent_key) if parent_key else None
            if parent is not None:
                items.append(_item(group, key, parent, group, TransitionKind.SPLIT, project))
                continue
            before = src.key_to_group.get(key)
            if before is not None:
                items.append(_item(group, key, before, group, TransitionKind.STATIC, project))
    else:
        for key, group in src.key_to_group.items():
            parent_key = linkage.parent_of(key)
            parent = dst.key_to_group.get(parent_key) if parent_key else None
            if parent is not None:
                items.append(_item(group, key, group, parent, TransitionKind.MERGE, project))
                continue
            after = dst.key_to_group.get(key)
            if after is not None:
                items.append(_item(group, key, group, after, TransitionKind.STATIC, project))

    return items
