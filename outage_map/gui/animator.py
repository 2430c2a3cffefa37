"""
Animated cluster split/merge between adjacent zoom levels.

Once the view has settled on a new integer zoom, the animator:

  1. plans transition items from the bucket linkage (pure, see
     ``geo.transitions``),
  2. fades the persistent markers to fully transparent (they stay in the
     scene so the renderer can reveal them unchanged),
  3. drops one temporary marker per item at its start position,
  4. on the next event-loop turn starts a frame timer that moves, scales
     and fades every temporary marker with an ease-in-out curve,
  5. after the duration plus a small buffer removes the temporary markers
     and calls ``on_complete``.

Starting a new animation, cancelling, or a bucket rebuild (cache
generation change) tears the temporary markers and timers down at once.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Tuple

from PyQt5 import QtCore, QtWidgets

from ..config import (
    CLUSTER_ANIMATION_BUFFER_MS,
    CLUSTER_ANIMATION_FRAME_MS,
    FADED_OPACITY,
    SPLIT_START_SCALE,
    MapSettings,
)
from ..geo.buckets import BucketCache
from ..geo.transitions import TransitionItem, TransitionKind, plan_transition
from .layers import MapLayers
from .markers import OutageMarkerItem
from .projector import SceneProjector

log = logging.getLogger(__name__)


def ease_in_out_cubic(t: float) -> float:
    if t < 0.5:
        return 4 * t * t * t
    return 1 - pow(-2 * t + 2, 3) / 2


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


# (scale, opacity) at the start and end of each kind
_KIND_STYLE = {
    TransitionKind.SPLIT: ((SPLIT_START_SCALE, FADED_OPACITY), (1.0, 1.0)),
    TransitionKind.MERGE: ((1.0, 1.0), (SPLIT_START_SCALE, FADED_OPACITY)),
    TransitionKind.STATIC: ((1.0, 1.0), (1.0, 1.0)),
}


class ClusterTransitionAnimator(QtCore.QObject):
    """Plays split/merge transitions between two zoom levels.

    State is ``idle`` or ``animating``; a new ``animate`` call while one is
    in flight cancels the old one first (its ``on_complete`` never runs).
    """

    def __init__(
        self,
        scene: QtWidgets.QGraphicsScene,
        cache: BucketCache,
        projector: Optional[SceneProjector] = None,
        layers: Optional[MapLayers] = None,
        settings: Optional[MapSettings] = None,
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__(parent)
        self._scene = scene
        self._cache = cache
        self._projector = projector or SceneProjector()
        self._layers = layers
        self._settings = settings or MapSettings()
        self._duration_s = self._settings.animation_duration_ms / 1000.0

        self._items: List[TransitionItem] = []
        self._temp: List[Tuple[TransitionItem, OutageMarkerItem]] = []
        self._on_complete: Optional[Callable[[], None]] = None
        self._generation = -1
        self._start_time = 0.0
        self._animating = False
        self._markers_hidden = False

        self._frame_timer = QtCore.QTimer(self)
        self._frame_timer.setInterval(CLUSTER_ANIMATION_FRAME_MS)
        self._frame_timer.timeout.connect(self._on_frame)

        # Next-frame kick-off and completion are single-shot timers we own,
        # so cancel() can stop them (QTimer.singleShot cannot be cancelled)
        self._start_timer = QtCore.QTimer(self)
        self._start_timer.setSingleShot(True)
        self._start_timer.timeout.connect(self._begin_motion)

        self._done_timer = QtCore.QTimer(self)
        self._done_timer.setSingleShot(True)
        self._done_timer.timeout.connect(self._finish)

    # ── Public API ────────────────────────────────────────────────────

    @property
    def is_animating(self) -> bool:
        return self._animating

    @property
    def transition_items(self) -> List[TransitionItem]:
        return list(self._items)

    @property
    def temporary_items(self) -> List[OutageMarkerItem]:
        return [marker for _, marker in self._temp]

    @property
    def timers_active(self) -> bool:
        return (self._start_timer.isActive() or self._frame_timer.isActive()
                or self._done_timer.isActive())

    def animate(self, from_zoom: float, to_zoom: float, on_complete: Callable[[], None]) -> bool:
        """Animate from *from_zoom* to *to_zoom*.  False if it snapped instead.

        ``on_complete`` runs synchronously when there is nothing to animate.
        """
        self.cancel()

        items = plan_transition(
            self._cache.result, from_zoom, to_zoom,
            self._projector.to_screen, self._settings.marker_threshold,
        )
        if not items:
            on_complete()
            return False

        self._items = items
        self._on_complete = on_complete
        self._generation = self._cache.generation
        self._animating = True

        if self._layers is not None:
            self._layers.set_marker_opacity(0.0)
            self._markers_hidden = True

        for item in items:
            marker = OutageMarkerItem(item.group, interactive=False)
            marker.setPos(self._projector.screen_to_scene(*item.start))
            (scale, opacity), _ = _KIND_STYLE[item.kind]
            marker.setScale(scale)
            marker.setOpacity(opacity)
            self._scene.addItem(marker)
            self._temp.append((item, marker))

        log.debug("Animating %d items zoom %s→%s", len(items), from_zoom, to_zoom)
        self._start_timer.start(0)
        return True

    def cancel(self) -> None:
        """Stop any running transition and put the persistent markers back."""
        self._start_timer.stop()
        self._frame_timer.stop()
        self._done_timer.stop()
        self._remove_temporary()
        self._restore_markers()
        self._on_complete = None
        self._animating = False

    # ── Internals ─────────────────────────────────────────────────────

    def _stale(self) -> bool:
        if self._generation != self._cache.generation:
            log.debug("Bucket cache rebuilt mid-animation; cancelling")
            self.cancel()
            return True
        return False

    def _begin_motion(self) -> None:
        if self._stale():
            return
        self._start_time = time.monotonic()
        self._frame_timer.start()
        self._done_timer.start(self._settings.animation_duration_ms + CLUSTER_ANIMATION_BUFFER_MS)

    def _on_frame(self) -> None:
        if self._stale():
            return
        elapsed = time.monotonic() - self._start_time
        t = min(elapsed / self._duration_s, 1.0) if self._duration_s > 0 else 1.0
        self._apply(ease_in_out_cubic(t))
        if t >= 1.0:
            self._frame_timer.stop()

    def _apply(self, ease: float) -> None:
        for item, marker in self._temp:
            x = item.start[0] + item.dx * ease
            y = item.start[1] + item.dy * ease
            marker.setPos(self._projector.screen_to_scene(x, y))
            (s0, o0), (s1, o1) = _KIND_STYLE[item.kind]
            marker.setScale(_lerp(s0, s1, ease))
            marker.setOpacity(_lerp(o0, o1, ease))

    def _finish(self) -> None:
        if self._stale():
            return
        self._frame_timer.stop()
        self._apply(1.0)
        callback = self._on_complete
        self._remove_temporary()
        self._restore_markers()
        self._on_complete = None
        self._animating = False
        if callback is not None:
            callback()

    def _restore_markers(self) -> None:
        if self._markers_hidden and self._layers is not None:
            self._layers.set_marker_opacity(1.0)
        self._markers_hidden = False

    def _remove_temporary(self) -> None:
        for _, marker in self._temp:
            if marker.scene() is self._scene:
                self._scene.removeItem(marker)
        self._temp.clear()
        self._items = []
