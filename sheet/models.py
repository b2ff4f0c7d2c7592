# sheet/models.py
"""Value types shared by the bottom sheet core.

Everything here is plain data: the discrete panel states, the per-instance geometry
measured once when a sheet is shown, the drag samples produced while a pointer is
down, and the frames handed to a renderer. No Qt imports so the state machine can be
exercised without a display.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import math
from typing import Any


class PanelState(str, Enum):
    """
    Committed resting position of the sheet.

    The string values double as wire values on the HTTP status surface and as the
    dynamic `sheetState` property used for styling the Qt panel.
    """

    EXPANDED = "expanded"
    HALFWAY = "halfway"
    MINIMIZED = "minimized"

    @classmethod
    def parse(cls, raw: Any) -> "PanelState":
        """
        Parse a wire value ("expanded" / "halfway" / "minimized"), case-insensitive.

        Raises:
            ValueError: unknown or non-string value.
        """
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            raise ValueError(f"invalid panel state: {raw!r}")
        key = raw.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"invalid panel state: {raw!r}")


def finite_or_zero(v: Any) -> float:
    """
    Coerce a numeric input to a finite float; anything else becomes 0.0.

    Covers None, NaN, +/-inf, bools and non-numeric junk coming from event sources.
    """
    if v is None or isinstance(v, bool):
        return 0.0
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    return f if math.isfinite(f) else 0.0


# Component defaults.
DEFAULT_VELOCITY_THRESHOLD = 0.5  # px/ms
DEFAULT_DISTANCE_THRESHOLD = 20.0  # px
DEFAULT_HALFWAY_RATIO = 0.6
DEFAULT_MINIMIZED_HEIGHT = 56.0  # toolbar height


@dataclass(frozen=True)
class SheetGeometry:
    """
    Immutable geometry for one shown sheet.

    Heights are in the same pixel unit as pointer coordinates. Offsets are measured
    from the top of the viewport to the top of the panel, so a larger offset means the
    panel sits lower.

    Fields:
    - viewport_height (L): full height; the expanded baseline offset is 0.
    - halfway_height (M): visible panel height when halfway; baseline L - M.
    - minimized_height (S): visible panel height when minimized; baseline L - S.
    - velocity_threshold: minimum |velocity| in px/ms that counts as a flick.
    - distance_threshold: minimum |distance| in px that counts as a deliberate drag.
    - padding_px: constant added to every rendered offset (not part of the decision math).
    """

    viewport_height: float
    halfway_height: float
    minimized_height: float
    velocity_threshold: float = DEFAULT_VELOCITY_THRESHOLD
    distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD
    padding_px: float = 0.0

    def __post_init__(self) -> None:
        for name in (
            "viewport_height",
            "halfway_height",
            "minimized_height",
            "velocity_threshold",
            "distance_threshold",
            "padding_px",
        ):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
                raise ValueError(f"geometry.{name} must be a finite number")

        if self.viewport_height <= 0:
            raise ValueError("geometry.viewport_height must be > 0")
        if not (0 < self.minimized_height <= self.halfway_height <= self.viewport_height):
            raise ValueError("geometry requires 0 < minimized_height <= halfway_height <= viewport_height")
        if self.velocity_threshold < 0:
            raise ValueError("geometry.velocity_threshold must be >= 0")
        if self.distance_threshold < 0:
            raise ValueError("geometry.distance_threshold must be >= 0")

    @classmethod
    def from_viewport(
        cls,
        viewport_height: float,
        *,
        halfway_ratio: float = DEFAULT_HALFWAY_RATIO,
        minimized_height: float = DEFAULT_MINIMIZED_HEIGHT,
        velocity_threshold: float = DEFAULT_VELOCITY_THRESHOLD,
        distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD,
        padding_px: float = 0.0,
    ) -> "SheetGeometry":
        """
        Derive geometry from a measured viewport height.

        The halfway height is a fraction of the viewport; the minimized height is a fixed
        pixel strip, clamped so it never exceeds the halfway height on tiny viewports.
        """
        L = float(viewport_height)
        M = L * float(halfway_ratio)
        S = min(float(minimized_height), M)
        return cls(
            viewport_height=L,
            halfway_height=M,
            minimized_height=S,
            velocity_threshold=float(velocity_threshold),
            distance_threshold=float(distance_threshold),
            padding_px=float(padding_px),
        )

    @property
    def halfway_gap(self) -> float:
        """H = L - M: distance between the expanded and halfway baselines."""
        return self.viewport_height - self.halfway_height

    @property
    def minimized_span(self) -> float:
        """Z = S - M: (negative) drag distance from the minimized to the halfway baseline."""
        return self.minimized_height - self.halfway_height

    def baseline_offset(self, state: PanelState) -> float:
        if state is PanelState.EXPANDED:
            return 0.0
        if state is PanelState.HALFWAY:
            return self.viewport_height - self.halfway_height
        return self.viewport_height - self.minimized_height

    def to_dict(self) -> dict[str, float]:
        return {
            "viewport_height": float(self.viewport_height),
            "halfway_height": float(self.halfway_height),
            "minimized_height": float(self.minimized_height),
            "velocity_threshold": float(self.velocity_threshold),
            "distance_threshold": float(self.distance_threshold),
            "padding_px": float(self.padding_px),
        }


@dataclass(frozen=True)
class DragSample:
    """
    One sample of an active drag.

    - distance_y: signed pixels moved since drag start; positive = downward.
    - velocity_y: signed px/ms at the moment of sampling.
    """

    distance_y: float = 0.0
    velocity_y: float = 0.0

    def normalized(self) -> "DragSample":
        """Return a copy with non-finite or missing values replaced by 0.0."""
        return replace(
            self,
            distance_y=finite_or_zero(self.distance_y),
            velocity_y=finite_or_zero(self.velocity_y),
        )


@dataclass(frozen=True)
class RenderFrame:
    """
    Visual instruction for the renderer.

    offset_px already includes geometry.padding_px. transition_ms is 0 while the
    pointer is dragging and the configured snap duration otherwise.
    """

    offset_px: float
    transition_ms: int
    state: PanelState
    dragging: bool = False
