import pytest

pytest.importorskip("PyQt5.QtWidgets")

from PyQt5 import QtWidgets
from PyQt5.QtTest import QTest

from outage_map.geo.buckets import BucketCache
from outage_map.gui.layers import MapLayers
from outage_map.gui.markers import CircleMarkerItem, ClusterLabelItem, HeatmapItem, OutageMarkerItem
from outage_map.gui.representation import MarkerData, Representation, markers_for, polygons_for


@pytest.fixture
def scene(qapp):
    return QtWidgets.QGraphicsScene()


@pytest.fixture
def layers(scene):
    return MapLayers(scene)


@pytest.fixture
def street_groups(close_pair):
    cache = BucketCache()
    cache.build(close_pair)
    return cache.lookup(18)


def _items_of(scene, cls):
    return [i for i in scene.items() if isinstance(i, cls)]


def test_icon_render_builds_markers_and_tooltips(scene, layers, street_groups):
    layers.render_markers(markers_for(street_groups))
    assert layers.representation is Representation.ICON
    markers = _items_of(scene, OutageMarkerItem)
    assert len(markers) == 2
    assert sorted(m.toolTip() for m in markers) == [
        "grid-co\nClick for details", "hydro\nClick for details",
    ]
    assert layers.item_for_outage("a").group.events[0].id == "a"


def test_bulk_render_above_threshold(scene, layers):
    markers = [MarkerData(lat=-40.0 + i * 0.1, lng=10.0, count=1) for i in range(150)]
    markers.append(MarkerData(lat=0.0, lng=0.0, count=12))
    layers.render_markers(markers)
    assert layers.representation is Representation.BULK
    assert len(_items_of(scene, CircleMarkerItem)) == 151
    assert len(_items_of(scene, ClusterLabelItem)) == 1
    assert not _items_of(scene, OutageMarkerItem)


def test_rerender_replaces_previous_items(scene, layers, street_groups):
    layers.render_markers(markers_for(street_groups))
    layers.render_markers(markers_for(street_groups[:1]))
    assert len(_items_of(scene, OutageMarkerItem)) == 1


def test_hidden_markers_render_nothing(scene, layers, street_groups):
    layers.show_markers = False
    layers.render_markers(markers_for(street_groups))
    assert not scene.items()
    assert layers.representation is None


def test_debounce_coalesces_requests(layers, street_groups):
    rendered = []
    layers.markers_rendered.connect(rendered.append)
    layers.queue_marker_render(markers_for(street_groups[:1]))
    layers.queue_marker_render(markers_for(street_groups[:1]))
    layers.queue_marker_render(markers_for(street_groups))
    assert layers.render_queued
    assert rendered == []
    QTest.qWait(250)
    assert rendered == [2]
    assert not layers.render_queued


def test_renders_wait_for_zoom_to_finish(scene, layers, street_groups):
    layers.zooming = True
    layers.render_markers(markers_for(street_groups))
    assert layers.render_pending
    assert not scene.items()
    assert not layers.flush_pending()

    layers.zooming = False
    assert layers.flush_pending()
    assert not layers.render_pending
    assert len(_items_of(scene, OutageMarkerItem)) == 2
    assert not layers.flush_pending()


def test_polygons_only_from_visible_zoom(scene, layers, street_groups):
    polygons = polygons_for(street_groups)
    assert len(polygons) == 1

    layers.render_polygons(polygons, 4)
    assert not layers.polygons_visible
    assert layers.polygon_items == []

    layers.render_polygons(polygons, 5)
    assert layers.polygons_visible
    assert len(layers.polygon_items) == 1
    assert layers.polygon_items[0].scene() is scene

    layers.show_polygons = False
    layers.render_polygons(polygons, 12)
    assert layers.polygon_items == []


def test_highlight_is_exclusive(scene, layers, street_groups):
    layers.render_markers(markers_for(street_groups))
    item_a, item_b = layers.item_for_outage("a"), layers.item_for_outage("b")

    layers.highlight_outage("a")
    assert item_a.highlighted
    overlay = layers.highlight_overlay
    assert overlay is not None and overlay.scene() is scene

    layers.highlight_outage("a")
    assert layers.highlight_overlay is overlay

    layers.highlight_outage("b")
    assert not item_a.highlighted
    assert item_a.zValue() == 20
    assert item_b.highlighted
    assert layers.highlighted_id == "b"
    # "b" has no outline of its own
    assert layers.highlight_overlay is None
    assert overlay.scene() is None

    layers.unhighlight_outage()
    assert not item_b.highlighted
    assert layers.highlighted_id is None


def test_highlight_unknown_id_is_harmless(layers, street_groups):
    layers.render_markers(markers_for(street_groups))
    layers.highlight_outage("missing")
    assert layers.highlighted_id == "missing"
    layers.unhighlight_outage()
    assert layers.highlighted_id is None


def test_popup_is_built_lazily_once(scene, street_groups):
    calls = []

    def builder(group):
        calls.append(group)
        return "popup for %s" % group.key

    layers = MapLayers(scene, popup_builder=builder)
    opened = []
    layers.popup_opened.connect(lambda group, popup: opened.append(popup))
    layers.render_markers(markers_for(street_groups))
    assert calls == []

    item = layers.item_for_outage("a")
    layers.open_popup(item)
    layers.open_popup(item)
    assert len(calls) == 1
    assert opened == ["popup for p:a", "popup for p:a"]


def test_marker_click_opens_popup(scene, street_groups):
    opened = []
    layers = MapLayers(scene, popup_builder=lambda group: group.key)
    layers.popup_opened.connect(lambda group, popup: opened.append(popup))
    layers.render_markers(markers_for(street_groups))
    layers.item_for_outage("b").clicked.emit(layers.item_for_outage("b"))
    assert opened == ["p:b"]


def test_cleanup_removes_everything(scene, layers, street_groups):
    layers.render_markers(markers_for(street_groups))
    layers.render_polygons(polygons_for(street_groups), 18)
    layers.highlight_outage("a")
    layers.queue_marker_render(markers_for(street_groups))
    layers.cleanup()
    assert not scene.items()
    assert not layers.render_queued


def test_heatmap_is_off_until_toggled(scene, layers, street_groups):
    layers.render_heatmap(markers_for(street_groups))
    assert layers.heatmap_item is None
    assert not _items_of(scene, HeatmapItem)

    layers.show_heatmap = True
    layers.render_heatmap(markers_for(street_groups))
    (heat,) = _items_of(scene, HeatmapItem)
    assert heat is layers.heatmap_item
    assert sorted(i for _, i in heat.points) == [pytest.approx(0.55)] * 2

    layers.show_heatmap = False
    layers.render_heatmap(markers_for(street_groups))
    assert not _items_of(scene, HeatmapItem)


def test_heatmap_rerender_replaces_layer(scene, layers):
    layers.show_heatmap = True
    layers.render_heatmap([MarkerData(lat=45.0, lng=-75.0, count=30)])
    layers.render_heatmap([MarkerData(lat=45.0, lng=-75.0, count=2),
                           MarkerData(lat=46.0, lng=-75.0, count=1)])
    (heat,) = _items_of(scene, HeatmapItem)
    assert len(heat.points) == 2
    layers.render_heatmap([])
    assert layers.heatmap_item is None


def test_heatmap_waits_for_zoom_to_finish(scene, layers, street_groups):
    layers.show_heatmap = True
    layers.zooming = True
    layers.render_heatmap(markers_for(street_groups))
    assert layers.heatmap_pending
    assert layers.heatmap_item is None

    layers.zooming = False
    assert layers.flush_pending()
    assert not layers.heatmap_pending
    assert len(layers.heatmap_item.points) == 2
    assert not layers.flush_pending()


def test_cleanup_removes_heatmap(scene, layers, street_groups):
    layers.show_heatmap = True
    layers.render_heatmap(markers_for(street_groups))
    layers.zooming = True
    layers.render_heatmap(markers_for(street_groups))
    layers.cleanup()
    assert not scene.items()
    assert not layers.heatmap_pending
