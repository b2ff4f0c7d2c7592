# sheet/controller.py
"""Position controller for one shown bottom sheet.

`PanelPositionController` owns the committed `PanelState`, the live offset applied to
the panel, and the snap decision at drag end. It renders through a callback so the
same controller drives the Qt panel in the app and a recording stub in tests.
"""

from __future__ import annotations

import traceback
from typing import Callable, Optional

from sheet.models import DragSample, PanelState, RenderFrame, SheetGeometry
from sheet.snap import SnapDecision, decide_snap, drag_offset


Renderer = Callable[[RenderFrame], None]
# (previous, current, reason); reason is the snap rule, or "setter" for direct commits.
StateListener = Callable[[PanelState, PanelState, str], None]

# Default snap animation duration.
DEFAULT_TRANSITION_MS = 500

COMMIT_SETTER = "setter"


class PanelPositionController:
    """
    Discrete state + continuous offset for a single sheet instance.

    Responsibilities:
    - Commit one of the three states through the setters, resetting the offset to the
      state's baseline and rendering with the snap transition.
    - While dragging, map samples to a transient offset (rendered with transition 0)
      without touching the committed state.
    - At drag end, run the snap decision against the pre-drag state and commit it.

    Notes:
    - Construction does not render; the lifecycle commits the initial state explicitly.
    - Renderer / listener failures are printed and swallowed so a broken view never
      leaves the state machine half-updated.
    """

    def __init__(
        self,
        *,
        geometry: SheetGeometry,
        renderer: Optional[Renderer] = None,
        on_state_change: Optional[StateListener] = None,
        transition_ms: int = DEFAULT_TRANSITION_MS,
        initial_state: PanelState = PanelState.HALFWAY,
    ) -> None:
        # Geometry is fixed for the lifetime of this controller.
        self._geometry = geometry
        self._renderer = renderer
        self._on_state_change = on_state_change
        self._transition_ms = max(0, int(transition_ms))

        self._state = PanelState(initial_state)
        self._offset = geometry.baseline_offset(self._state)
        self._dragging = False

        self._last_decision: Optional[SnapDecision] = None

        # Why the most recent commit happened: a snap rule, or "setter" for direct calls.
        self._commit_reason = COMMIT_SETTER

    # ----------------------------
    # Read-only views
    # ----------------------------

    @property
    def geometry(self) -> SheetGeometry:
        return self._geometry

    @property
    def state(self) -> PanelState:
        return self._state

    def current_state(self) -> PanelState:
        return self._state

    @property
    def offset(self) -> float:
        """Live offset without padding; equals the baseline whenever not dragging."""
        return self._offset

    @property
    def dragging(self) -> bool:
        return self._dragging

    @property
    def transition_ms(self) -> int:
        return self._transition_ms

    @property
    def last_decision(self) -> Optional[SnapDecision]:
        return self._last_decision

    @property
    def commit_reason(self) -> str:
        return self._commit_reason

    # ----------------------------
    # Setters (commit)
    # ----------------------------

    def set_expanded(self) -> None:
        self.set_state(PanelState.EXPANDED)

    def set_halfway(self) -> None:
        self.set_state(PanelState.HALFWAY)

    def set_minimized(self) -> None:
        self.set_state(PanelState.MINIMIZED)

    def set_state(self, state: PanelState) -> None:
        """
        Commit `state` unconditionally.

        Idempotent: committing the current state again re-renders the same baseline frame
        and does not notify listeners.
        """
        self._commit(PanelState(state), reason=COMMIT_SETTER)

    def _commit(self, state: PanelState, *, reason: str) -> None:
        previous = self._state

        self._state = state
        self._offset = self._geometry.baseline_offset(state)
        self._dragging = False
        self._commit_reason = reason

        self._render(transition_ms=self._transition_ms)

        if previous is not state and self._on_state_change is not None:
            try:
                self._on_state_change(previous, state, reason)
            except Exception:
                traceback.print_exc()

    # ----------------------------
    # Drag samples
    # ----------------------------

    def on_drag_move_sample(self, sample: DragSample) -> float:
        """
        Apply a transient offset for an in-progress drag and return it.

        The committed state is the reference for the offset math; it does not change here.
        """
        s = sample.normalized()
        self._dragging = True
        self._offset = drag_offset(self._state, s.distance_y, self._geometry)
        self._render(transition_ms=0)
        return self._offset

    def on_drag_end_sample(self, sample: DragSample) -> SnapDecision:
        """
        Finish a drag: render the final sample, decide the resting state, commit it.
        """
        s = sample.normalized()
        self.on_drag_move_sample(s)

        decision = decide_snap(state=self._state, sample=s, geometry=self._geometry)
        self._last_decision = decision

        print(
            "[sheet]",
            "snap",
            "from=",
            self._state.value,
            "to=",
            decision.state.value,
            "rule=",
            decision.rule,
            "distance_y=",
            round(s.distance_y, 2),
            "velocity_y=",
            round(s.velocity_y, 4),
            flush=True,
        )

        self._commit(decision.state, reason=decision.rule)
        return decision

    # ----------------------------
    # Internals
    # ----------------------------

    def _render(self, *, transition_ms: int) -> None:
        if self._renderer is None:
            return
        frame = RenderFrame(
            offset_px=self._offset + self._geometry.padding_px,
            transition_ms=int(transition_ms),
            state=self._state,
            dragging=self._dragging,
        )
        try:
            self._renderer(frame)
        except Exception:
            traceback.print_exc()
