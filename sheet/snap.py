# sheet/snap.py
from __future__ import annotations

from dataclasses import dataclass

from sheet.models import DragSample, PanelState, SheetGeometry


# Rule labels reported with each decision. Kept as `str` so they serialize as-is on
# the status surface.
RULE_FLICK_OR_DRAG = "flick_or_drag"
RULE_FAR_DRAG = "far_drag"
RULE_STAY = "stay"
RULE_NEAREST = "nearest"

SnapRule = str

# Order used when scanning baselines; also the tie-break order after the pre-drag state.
_STATES = (PanelState.EXPANDED, PanelState.HALFWAY, PanelState.MINIMIZED)


@dataclass(frozen=True)
class SnapDecision:
    """
    Output of the snap decision.

    Attributes:
        state:
            The state the panel commits to at drag end.
        rule:
            Which branch of the table produced it:
            - "flick_or_drag": short drag or flick toward the adjacent stop
            - "far_drag": drag past the adjacent stop; direction taken from velocity sign
            - "stay": no threshold met, snap back to the pre-drag state
            - "nearest": a distance/velocity condition matched but the velocity sign did
              not pick a direction; commit to the nearest baseline
    """

    state: PanelState
    rule: SnapRule


def drag_offset(state: PanelState, distance_y: float, geometry: SheetGeometry) -> float:
    """
    Map a pre-drag state and cumulative drag distance to a transient offset.

    - Expanded: dragging up has no effect, dragging down follows the pointer 1:1.
    - Halfway / Minimized: follows 1:1, but never above the expanded baseline (0).
    """
    L = geometry.viewport_height
    if state is PanelState.EXPANDED:
        return max(0.0, distance_y)
    if state is PanelState.HALFWAY:
        M = geometry.halfway_height
        return (L - M) + max(distance_y, M - L)
    S = geometry.minimized_height
    return (L - S) + max(distance_y, S - L)


def nearest_state(offset: float, geometry: SheetGeometry, *, prefer: PanelState | None = None) -> PanelState:
    """
    Return the state whose baseline is closest to `offset`.

    Ties go to `prefer` when it is among the closest, then to the first state in
    expanded -> halfway -> minimized order.
    """

    def key(s: PanelState) -> tuple[float, int, int]:
        return (abs(geometry.baseline_offset(s) - offset), 0 if s is prefer else 1, _STATES.index(s))

    return min(_STATES, key=key)


def decide_snap(*, state: PanelState, sample: DragSample, geometry: SheetGeometry) -> SnapDecision:
    """
    Decide the resting state after a drag ends.

    Inputs:
    - state: the committed state before the drag began.
    - sample: the final drag sample; non-finite values are treated as 0.
    - geometry: thresholds and heights for this sheet.

    Distance alone confirms a deliberate drag past a stop, velocity alone confirms a
    flick; the two are OR-ed. When a far drag is detected, the direction comes from the
    velocity sign. If the sign picks no direction (zero, or pointing the other way in the
    halfway branches), the panel commits to the nearest baseline instead of leaving the
    rendered offset out of sync with the state.

    Always returns one of the three states.
    """
    s = sample.normalized()
    D = s.distance_y
    V = s.velocity_y
    dT = geometry.distance_threshold
    vT = geometry.velocity_threshold
    H = geometry.halfway_gap
    Z = geometry.minimized_span

    def nearest() -> SnapDecision:
        offset = drag_offset(state, D, geometry)
        return SnapDecision(state=nearest_state(offset, geometry, prefer=state), rule=RULE_NEAREST)

    if state is PanelState.EXPANDED:
        if (dT < D < H and V > 0) or (0 < D < H and V > vT):
            return SnapDecision(state=PanelState.HALFWAY, rule=RULE_FLICK_OR_DRAG)
        if D > dT + H or (D > H and V > vT):
            if V > 0:
                return SnapDecision(state=PanelState.MINIMIZED, rule=RULE_FAR_DRAG)
            if V < 0:
                return SnapDecision(state=PanelState.HALFWAY, rule=RULE_FAR_DRAG)
            return nearest()
        return SnapDecision(state=PanelState.EXPANDED, rule=RULE_STAY)

    if state is PanelState.HALFWAY:
        if D > 0 and (D > dT or V > vT):
            if V > 0:
                return SnapDecision(state=PanelState.MINIMIZED, rule=RULE_FLICK_OR_DRAG)
            return nearest()
        if D < 0 and (D < -dT or V < -vT):
            if V < 0:
                return SnapDecision(state=PanelState.EXPANDED, rule=RULE_FLICK_OR_DRAG)
            return nearest()
        return SnapDecision(state=PanelState.HALFWAY, rule=RULE_STAY)

    # Minimized.
    if (-dT < D < 0 and D > Z and V < 0) or (D < 0 and D > Z and V < -vT):
        return SnapDecision(state=PanelState.HALFWAY, rule=RULE_FLICK_OR_DRAG)
    if D < Z - dT or (D < Z and V < -vT):
        if V < 0:
            return SnapDecision(state=PanelState.EXPANDED, rule=RULE_FAR_DRAG)
        if V > 0:
            return SnapDecision(state=PanelState.HALFWAY, rule=RULE_FAR_DRAG)
        return nearest()
    return SnapDecision(state=PanelState.MINIMIZED, rule=RULE_STAY)
