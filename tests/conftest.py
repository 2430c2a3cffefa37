from __future__ import annotations

import os

# Qt tests render headless
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from outage_map.geo.outage import Event

# 15 m north of a point, in degrees of latitude
FIFTEEN_M_LAT = 15.0 / 111320.0

SQUARE_WKT = "POLYGON((-75.70 45.41, -75.68 45.41, -75.68 45.43, -75.70 45.43, -75.70 45.41))"
SQUARE_WKT_EAST = "POLYGON((-75.69 45.41, -75.67 45.41, -75.67 45.43, -75.69 45.43, -75.69 45.41))"


@pytest.fixture
def make_event():
    def _make(id, lat, lon, **kwargs):
        kwargs.setdefault("provider", "hydro")
        kwargs.setdefault("ts", 1_700_000_000.0)
        return Event(id=id, latitude=lat, longitude=lon, **kwargs)
    return _make


@pytest.fixture
def close_pair(make_event):
    """Two outages 15 m apart at latitude 45."""
    return [
        make_event("a", 45.0, -75.0, polygon=SQUARE_WKT),
        make_event("b", 45.0 + FIFTEEN_M_LAT, -75.0, provider="grid-co"),
    ]


@pytest.fixture
def spread_events(make_event):
    """A mix of nearby and far-apart outages across two continents."""
    events = []
    for i in range(6):
        events.append(make_event(f"ott-{i}", 45.40 + i * 0.002, -75.70 + i * 0.003,
                                 polygon=SQUARE_WKT if i % 2 == 0 else SQUARE_WKT_EAST))
    for i in range(4):
        events.append(make_event(f"tor-{i}", 43.65 + i * 0.01, -79.38 - i * 0.01,
                                 provider="toronto-hydro"))
    for i in range(3):
        events.append(make_event(f"syd-{i}", -33.86 - i * 0.05, 151.20 + i * 0.05,
                                 provider="ausgrid"))
    events.append(make_event("lone", 64.84, -147.72, provider="gvea"))
    return events


@pytest.fixture(scope="session")
def qapp():
    QtWidgets = pytest.importorskip("PyQt5.QtWidgets")
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication([])
    yield app
