"""
Tooltip text and popup content for rendered groups.

Tooltips are cheap (count and top provider) and built for every marker up
front.  Popups rank every member outage by size and duration, so they are
only built when the user actually opens one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..config import POPUP_MAX_ITEMS
from ..geo.outage import Group
from ..geo.wkt import (
    Bounds,
    bounds_and_area,
    fallback_point_bounds,
    parse_wkt,
    to_geojson_text,
)

_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass
class PopupItem:
    provider: str
    nickname: str
    bounds: Optional[Bounds]
    size_label: Optional[str] = None
    outage_type: Optional[str] = None
    cause: Optional[str] = None
    customer_count: Optional[int] = None
    is_planned: Optional[bool] = None
    etr: Optional[str] = None


@dataclass
class PopupData:
    title: str
    time_label: str
    items: List[PopupItem] = field(default_factory=list)
    extra_count: int = 0
    geojson_text: Optional[str] = None
    coords_text: Optional[str] = None

    def as_text(self) -> str:
        lines = [self.title, self.time_label]
        for item in self.items:
            label = f"{item.nickname} · {item.provider}"
            if item.size_label:
                label += f" · {item.size_label}"
            lines.append(label)
        if self.extra_count:
            lines.append(f"+{self.extra_count} more")
        return "\n".join(lines)


def format_timestamp(ts: float) -> str:
    """Local time as e.g. 'Mar 4, 2025 3:07:09 PM'.  Millisecond input is accepted."""
    if ts > 1e11:
        ts = ts / 1000.0
    value = datetime.fromtimestamp(ts)
    hour = value.strftime("%I").lstrip("0") or "12"
    return f"{value:%b} {value.day}, {value.year} {hour}:{value:%M:%S %p}"


def nickname_for_index(idx: int) -> str:
    letter = _ALPHABET[idx % len(_ALPHABET)]
    suffix = str(idx // len(_ALPHABET) + 1) if idx >= len(_ALPHABET) else ""
    return f"Outage {letter}{suffix}"


def build_tooltip_text(group: Group) -> str:
    count = group.count
    if count == 1:
        title = group.providers[0] if group.providers and group.providers[0] else "Outage"
        return f"{title}\nClick for details"
    n = len(group.providers)
    return f"{count} events\n{n} provider{'s' if n != 1 else ''}"


def build_popup_data(group: Group, block_ts: Optional[float] = None) -> Optional[PopupData]:
    """Full breakdown of *group* for its popup; None for an empty group."""
    events = group.events
    if not events:
        return None

    title = (events[0].provider or "Outage") if len(events) == 1 else f"{len(events)} events"
    time_label = format_timestamp(group.start_ts)

    geometry = group.polygon if group.has_geometry else None
    group_bounds, _ = bounds_and_area(geometry)

    scored = []
    for event in events:
        bounds, area_km2 = bounds_and_area(parse_wkt(event.polygon))
        end = event.end_ts if event.end_ts is not None else (
            block_ts if block_ts is not None else event.ts
        )
        duration_s = max(0.0, end - event.started)
        # Area weighs a bit more than duration
        score = area_km2 * 2 + duration_s
        scored.append((event, area_km2, bounds, duration_s, score))

    scored.sort(key=lambda s: (-s[4], s[0].provider))

    items: List[PopupItem] = []
    for idx, (event, area_km2, bounds, duration_s, _) in enumerate(scored[:POPUP_MAX_ITEMS]):
        minutes = round(duration_s / 60)
        if area_km2 > 0.1:
            size_label: Optional[str] = f"{round(area_km2)} km²"
        elif minutes > 0:
            size_label = f"{minutes} min"
        else:
            size_label = None
        items.append(PopupItem(
            provider=event.provider,
            nickname=nickname_for_index(idx),
            bounds=bounds or group_bounds or fallback_point_bounds(
                event.latitude, event.longitude),
            size_label=size_label,
            outage_type=event.outage_type,
            cause=event.cause,
            customer_count=event.customer_count,
            is_planned=event.is_planned,
            etr=event.etr,
        ))

    return PopupData(
        title=title,
        time_label=time_label,
        items=items,
        extra_count=max(0, len(events) - POPUP_MAX_ITEMS),
        geojson_text=to_geojson_text(geometry),
        coords_text=geometry.wkt if geometry is not None else None,
    )
