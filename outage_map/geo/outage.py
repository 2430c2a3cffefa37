"""
Outage data model.

An ``Event`` is one outage record as delivered by the data-loading layer.
A ``Group`` is what the map actually draws at one zoom level: either a
cluster of nearby events or a single event on its own.

Example
-------
    event = Event(id=17, latitude=45.42, longitude=-75.69, provider="hydro")
    group = summarize_group([event], center=(45.42, -75.69), key="p:17")
    group.is_cluster   # False
    group.polygon      # None until the bucket cache hydrates it
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

LatLon = Tuple[float, float]

log = logging.getLogger(__name__)


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class Event:
    """A single geolocated outage record.  Immutable once loaded."""

    id: Hashable
    latitude: float
    longitude: float
    provider: str = ""
    ts: float = 0.0                   # observed, epoch seconds
    start_ts: Optional[float] = None  # outage start, epoch seconds
    end_ts: Optional[float] = None
    polygon: Optional[str] = None     # WKT POLYGON / MULTIPOLYGON, SRID prefix allowed

    # Descriptive fields carried through to popups
    customer_count: Optional[int] = None
    cause: Optional[str] = None
    outage_type: Optional[str] = None
    is_planned: Optional[bool] = None
    etr: Optional[str] = None

    @property
    def started(self) -> float:
        return self.start_ts if self.start_ts is not None else self.ts

    @property
    def has_valid_location(self) -> bool:
        """Finite latitude in [-90, 90] and finite longitude in [-180, 180]."""
        lat, lon = self.latitude, self.longitude
        if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            return False
        return (
            math.isfinite(lat) and math.isfinite(lon)
            and abs(lat) <= 90.0 and abs(lon) <= 180.0
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Build an event from a decoded JSON record.

        Accepts both ``start_ts`` and the camel-cased ``startTs`` spelling.
        Coordinates that cannot be read become NaN so the builder drops them
        instead of the loader failing.
        """
        if data.get("id") is None:
            raise ValueError("outage record has no id")

        def _coord(name: str) -> float:
            try:
                return float(data.get(name))
            except (TypeError, ValueError):
                return math.nan

        start = data.get("start_ts", data.get("startTs"))
        end = data.get("end_ts", data.get("endTs"))
        ts = _opt_float(data.get("ts"))
        count = data.get("customer_count")
        polygon = data.get("polygon") or None
        if polygon is not None and not isinstance(polygon, str):
            log.debug("Outage %s: dropping non-WKT polygon of type %s",
                      data["id"], type(polygon).__name__)
            polygon = None
        return cls(
            id=data["id"],
            latitude=_coord("latitude"),
            longitude=_coord("longitude"),
            provider=str(data.get("provider") or ""),
            ts=ts if ts is not None else (_opt_float(start) or 0.0),
            start_ts=_opt_float(start),
            end_ts=_opt_float(end),
            polygon=polygon,
            customer_count=int(count) if count is not None else None,
            cause=data.get("cause"),
            outage_type=data.get("outage_type"),
            is_planned=data.get("is_planned"),
            etr=data.get("etr_local") or data.get("etr_utc") or data.get("etr"),
        )


@dataclass(eq=False)
class Group:
    """A rendered cluster (two or more events) or singleton (one event).

    ``polygon`` starts as ``None`` and is filled once by the bucket cache
    with the merged geometry of every member polygon.  An empty geometry
    means "hydrated, nothing to draw".
    """

    events: List[Event]
    center: LatLon
    radius: float = 0.0
    providers: List[str] = field(default_factory=list)
    ts: float = 0.0
    key: str = ""
    polygon: Optional[Any] = None   # shapely geometry once hydrated

    @property
    def count(self) -> int:
        return len(self.events)

    @property
    def is_cluster(self) -> bool:
        return len(self.events) > 1

    @property
    def is_hydrated(self) -> bool:
        return self.polygon is not None

    @property
    def has_geometry(self) -> bool:
        return self.polygon is not None and not self.polygon.is_empty

    @property
    def start_ts(self) -> float:
        return min(e.started for e in self.events)

    def __repr__(self) -> str:
        return (
            f"Group(key={self.key!r}, count={self.count}, "
            f"center=({self.center[0]:.5f}, {self.center[1]:.5f}))"
        )


def summarize_group(events: Sequence[Event], center: LatLon, key: str = "") -> Group:
    """Summarize member events without touching geometry.

    The radius is a plain Euclidean distance in degrees; it is only used
    for bounds-fitting so haversine precision is not needed.
    """
    if not events:
        raise ValueError("cannot summarize an empty group")
    providers: List[str] = []
    for e in events:
        if e.provider not in providers:
            providers.append(e.provider)
    latest = max(e.ts for e in events)

    max_dist = 0.0
    for e in events:
        d = math.hypot(e.latitude - center[0], e.longitude - center[1])
        if d > max_dist:
            max_dist = d

    return Group(
        events=list(events),
        center=center,
        radius=max_dist,
        providers=providers,
        ts=latest,
        key=key,
    )
