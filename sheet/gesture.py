# sheet/gesture.py
"""Pointer-to-drag translation for the bottom sheet.

`GestureTracker` turns raw pointer primitives coming from a container surface into a
drag sequence (start / move / end) and decides whether that sequence belongs to the
panel. Samples carry cumulative vertical distance and a velocity estimated from the
most recent pointer history.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import math
import traceback
from typing import Any, Callable, Deque, Optional, Tuple

import numpy as np

from sheet.controller import PanelPositionController
from sheet.models import DragSample, finite_or_zero


# Node -> parent lookup supplied by the embedding environment (Qt: parentWidget()).
ParentOf = Callable[[Any], Any]

# Registers the tracker's handlers on a surface and returns the matching disposer.
Disposer = Callable[[], None]
RegisterFn = Callable[["GestureTracker"], Disposer]

# Hard stop for the ancestor walk in case a parent_of implementation misbehaves.
_MAX_ANCESTOR_DEPTH = 1024


def is_descendant_of(candidate: Any, root: Any, *, parent_of: ParentOf) -> bool:
    """
    Walk the ancestor chain of `candidate` and report whether `root` is on it.

    `candidate` itself counts (a drag starting on the panel frame is a panel drag).

    The walk stops with False when:
    - parent_of returns None (top of the tree),
    - parent_of raises RuntimeError (node torn down / removed mid-walk),
    - a node repeats (cycle) or the depth cap is hit.
    """
    if candidate is None or root is None:
        return False

    seen: set[int] = set()
    node = candidate
    for _ in range(_MAX_ANCESTOR_DEPTH):
        if node is root:
            return True
        if id(node) in seen:
            return False
        seen.add(id(node))
        try:
            node = parent_of(node)
        except RuntimeError:
            return False
        if node is None:
            return False
    return False


@dataclass(frozen=True)
class PointerEvent:
    """
    Normalized pointer primitive.

    - origin: the node the event was delivered to (used for the ancestor walk).
    - y: vertical pointer position in surface/global pixels (downward positive).
    - timestamp_ms: monotonic event time in milliseconds.
    """

    origin: Any
    y: float
    timestamp_ms: float


class VelocityEstimator:
    """
    Windowed vertical velocity estimate in px/ms.

    Keeps the last `max_samples` (t, y) pairs and fits a least-squares line through the
    ones within `window_ms` of the newest sample. Holding the pointer still before
    release therefore decays the estimate to 0, which is what separates a flick from a
    slow drag.
    """

    def __init__(self, *, window_ms: float = 100.0, max_samples: int = 32) -> None:
        self._window_ms = max(1.0, float(window_ms))
        self._samples: Deque[Tuple[float, float]] = deque(maxlen=max(2, int(max_samples)))

    def reset(self) -> None:
        self._samples.clear()

    def add(self, timestamp_ms: float, y: float) -> None:
        t = finite_or_zero(timestamp_ms)
        # Out-of-order timestamps would produce a bogus slope; keep arrival order but
        # clamp time so it never runs backwards.
        if self._samples and t < self._samples[-1][0]:
            t = self._samples[-1][0]
        self._samples.append((t, finite_or_zero(y)))

    def velocity(self) -> float:
        if len(self._samples) < 2:
            return 0.0

        arr = np.asarray(self._samples, dtype=np.float64)
        t_last = arr[-1, 0]
        recent = arr[arr[:, 0] >= t_last - self._window_ms]
        if recent.shape[0] < 2:
            return 0.0

        t = recent[:, 0] - t_last
        y = recent[:, 1]
        if float(np.ptp(t)) <= 0.0:
            return 0.0

        # Slope of the least-squares line y = a*t + b.
        t_mean = float(t.mean())
        dt = t - t_mean
        denom = float(np.dot(dt, dt))
        if denom <= 0.0:
            return 0.0
        slope = float(np.dot(dt, y - float(y.mean())) / denom)
        return slope if math.isfinite(slope) else 0.0


class GestureTracker:
    """
    Gate and normalize one pointer sequence at a time for a single panel.

    Lifecycle:
    - attach(register) subscribes the handlers on the container surface once.
    - dispose() deregisters them; any event arriving afterwards is dropped.

    Contract:
    - Exactly one sequence may be active; a new drag start restarts the sequence.
    - Only sequences whose start origin is inside `panel` reach the controller.
    """

    def __init__(
        self,
        *,
        panel: Any,
        controller: PanelPositionController,
        parent_of: ParentOf,
        velocity_window_ms: float = 100.0,
    ) -> None:
        self._panel = panel
        self._controller = controller
        self._parent_of = parent_of
        self._velocity = VelocityEstimator(window_ms=velocity_window_ms)

        self._active = False
        self._start_y = 0.0

        self._disposer: Optional[Disposer] = None
        self._disposed = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def disposed(self) -> bool:
        return self._disposed

    def attach(self, register: RegisterFn) -> None:
        if self._disposed:
            raise RuntimeError("tracker already disposed")
        if self._disposer is not None:
            raise RuntimeError("tracker already attached")
        self._disposer = register(self)

    def dispose(self) -> None:
        """Deregister from the surface. Safe to call repeatedly and mid-drag."""
        if self._disposed:
            return
        self._disposed = True
        if self._active:
            print("[gesture]", "disposed mid-drag; dropping remaining samples", flush=True)
        self._active = False

        disposer, self._disposer = self._disposer, None
        if disposer is None:
            return
        try:
            disposer()
        except Exception:
            traceback.print_exc()

    # ----------------------------
    # Drag sequence
    # ----------------------------

    def on_drag_start(self, event: PointerEvent) -> None:
        if self._disposed:
            return
        self._active = is_descendant_of(event.origin, self._panel, parent_of=self._parent_of)
        self._start_y = finite_or_zero(event.y)
        self._velocity.reset()
        self._velocity.add(event.timestamp_ms, event.y)

    def on_drag_move(self, event: PointerEvent) -> None:
        if self._disposed or not self._active:
            return
        self._controller.on_drag_move_sample(self._sample(event))

    def on_drag_end(self, event: PointerEvent) -> None:
        if self._disposed:
            return
        try:
            if self._active:
                self._controller.on_drag_end_sample(self._sample(event))
        finally:
            self._active = False
            self._velocity.reset()

    def _sample(self, event: PointerEvent) -> DragSample:
        self._velocity.add(event.timestamp_ms, event.y)
        return DragSample(
            distance_y=finite_or_zero(event.y) - self._start_y,
            velocity_y=self._velocity.velocity(),
        )
