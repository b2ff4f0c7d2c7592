"""Thread-safe in-memory state store shared by the Qt host and HTTP routes.

The store is the single source of truth for the sheet's published status (committed
state, live offset, geometry), a rolling history of state transitions, pending remote
commands, and the quit flag. Keeping this centralized keeps server routes thin and
lets the UI thread publish without knowing about HTTP.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import threading
import time
from typing import Any, Deque, Dict, List, Optional

from sheet.models import PanelState, RenderFrame, SheetGeometry


JsonDict = Dict[str, Any]

# Remote visibility actions accepted by /panel/visibility.
VISIBILITY_ACTIONS = ("show", "hide", "cancel")

# Commands kept for pollers that fall behind; older ones are dropped.
COMMAND_BACKLOG = 64


@dataclass(frozen=True)
class TransitionSample:
    """
    One history entry: a committed state change.

    `rule` is the snap rule when the change came from a drag, or "command" / "setter"
    for programmatic changes.
    """

    ts: float
    previous: str
    current: str
    rule: str

    def to_dict(self) -> JsonDict:
        return {"ts": self.ts, "previous": self.previous, "current": self.current, "rule": self.rule}


class SheetStatusStore:
    """
    Thread-safe store for sheet status shared across threads.

    Responsibilities:
      - Latest panel status (written by the Qt thread on every rendered frame)
      - Rolling history of state transitions (trimmed to history_seconds)
      - Pending commands, a bounded backlog (written by HTTP routes, polled by the Qt thread)
      - Quit signalling (web endpoint requests shutdown; main loop polls this)

    Threading model:
      - All state is protected by a single lock; operations are small and bounded.
    """

    def __init__(self, history_seconds: float) -> None:
        self._history_seconds = max(1.0, float(history_seconds))
        self._lock = threading.Lock()

        self._showing = False
        self._state: Optional[str] = None
        self._offset_px = 0.0
        self._dragging = False
        self._last_rule: Optional[str] = None
        self._geometry: Optional[JsonDict] = None
        self._updated_ts = time.time()

        self._history: Deque[TransitionSample] = deque()

        # Commands are versioned by seq so pollers can detect "new since last seen".
        # Every command is queued so two requests between polls are both delivered.
        self._command_seq = 0
        self._commands: Deque[JsonDict] = deque(maxlen=COMMAND_BACKLOG)

        self._quit_requested = False

    # ----------------------------
    # Publishing (Qt thread)
    # ----------------------------

    def set_showing(self, showing: bool) -> None:
        with self._lock:
            self._showing = bool(showing)
            if not self._showing:
                self._state = None
                self._dragging = False
                self._geometry = None
            self._updated_ts = time.time()

    def set_geometry(self, geometry: SheetGeometry) -> None:
        with self._lock:
            self._geometry = geometry.to_dict()

    def record_frame(self, frame: RenderFrame) -> None:
        with self._lock:
            self._state = frame.state.value
            self._offset_px = float(frame.offset_px)
            self._dragging = bool(frame.dragging)
            self._updated_ts = time.time()

    def record_transition(self, previous: PanelState, current: PanelState, rule: str) -> None:
        now = time.time()
        with self._lock:
            self._last_rule = str(rule)
            self._history.append(
                TransitionSample(ts=now, previous=previous.value, current=current.value, rule=str(rule))
            )
            self._trim_locked(now=now)

    # ----------------------------
    # Reading (HTTP threads)
    # ----------------------------

    def get_payload(self) -> JsonDict:
        """
        Return the public status schema:

        {
          "timestamp": float,
          "panel": {"showing", "state", "offset_px", "dragging", "last_rule"},
          "geometry": {...} | null,
          "command": {"seq", "state", "action"}
        }
        """
        with self._lock:
            return {
                "timestamp": self._updated_ts,
                "panel": {
                    "showing": self._showing,
                    "state": self._state,
                    "offset_px": self._offset_px,
                    "dragging": self._dragging,
                    "last_rule": self._last_rule,
                },
                "geometry": dict(self._geometry) if self._geometry is not None else None,
                "command": self._command_locked(),
            }

    def get_history(self) -> List[JsonDict]:
        now = time.time()
        with self._lock:
            self._trim_locked(now=now)
            return [s.to_dict() for s in self._history]

    def get_history_seconds(self) -> float:
        with self._lock:
            return float(self._history_seconds)

    # ----------------------------
    # Commands
    # ----------------------------

    def request_state(self, state: PanelState) -> JsonDict:
        with self._lock:
            return self._push_command_locked(state=PanelState(state).value, action=None)

    def request_visibility(self, action: str) -> JsonDict:
        a = str(action).strip().lower()
        if a not in VISIBILITY_ACTIONS:
            raise ValueError(f"invalid visibility action: {action!r}")
        with self._lock:
            return self._push_command_locked(state=None, action=a)

    def get_command(self) -> JsonDict:
        """Latest command, or {"seq": 0, "state": None, "action": None} before the first one."""
        with self._lock:
            return self._command_locked()

    def get_commands(self, after_seq: int = 0) -> List[JsonDict]:
        """
        Queued commands with seq > after_seq, oldest first.

        Only the last COMMAND_BACKLOG commands are kept; a poller further behind than
        that misses the oldest ones.
        """
        with self._lock:
            return [dict(c) for c in self._commands if c["seq"] > after_seq]

    # ----------------------------
    # Quit
    # ----------------------------

    def request_quit(self) -> None:
        with self._lock:
            self._quit_requested = True

    def quit_requested(self) -> bool:
        with self._lock:
            return bool(self._quit_requested)

    # ----------------------------
    # Internals
    # ----------------------------

    def _push_command_locked(self, *, state: Optional[str], action: Optional[str]) -> JsonDict:
        self._command_seq += 1
        cmd = {"seq": self._command_seq, "state": state, "action": action}
        self._commands.append(cmd)
        return dict(cmd)

    def _command_locked(self) -> JsonDict:
        if not self._commands:
            return {"seq": self._command_seq, "state": None, "action": None}
        return dict(self._commands[-1])

    def _trim_locked(self, *, now: float) -> None:
        cutoff = now - self._history_seconds
        while self._history and self._history[0].ts < cutoff:
            self._history.popleft()
